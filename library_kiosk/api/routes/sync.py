# =======================================================================================
# library_kiosk/api/routes/sync.py - Synchronization Endpoints
# =======================================================================================
from fastapi import APIRouter, Depends
from ...config import config
from ...models.schemas import SyncReport, SyncStatusResponse
from ...services.sync_service import SyncService
from ...workers.sync_worker import SyncWorker
from ..dependencies import get_sync_service, get_sync_worker

router = APIRouter()


def _status(sync_service: SyncService, worker: SyncWorker) -> SyncStatusResponse:
    return sync_service.get_status(enabled=config.SYNC_ENABLED, paused=worker.paused)


@router.get("/sync/status", response_model=SyncStatusResponse)
def get_sync_status(
    sync_service: SyncService = Depends(get_sync_service),
    worker: SyncWorker = Depends(get_sync_worker),
):
    """Unsynced count plus the outcome of the last sync attempt."""
    return _status(sync_service, worker)


@router.post("/sync/trigger", response_model=SyncReport)
def trigger_sync(sync_service: SyncService = Depends(get_sync_service)):
    """Run one sync cycle now; returns SKIPPED if the background cycle is mid-flight."""
    return sync_service.run_once()


@router.post("/sync/pause", response_model=SyncStatusResponse)
def pause_sync(
    sync_service: SyncService = Depends(get_sync_service),
    worker: SyncWorker = Depends(get_sync_worker),
):
    worker.pause()
    return _status(sync_service, worker)


@router.post("/sync/resume", response_model=SyncStatusResponse)
def resume_sync(
    sync_service: SyncService = Depends(get_sync_service),
    worker: SyncWorker = Depends(get_sync_worker),
):
    worker.resume()
    return _status(sync_service, worker)
