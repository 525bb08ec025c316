# =======================================================================================
# library_kiosk/api/routes/dashboard.py - Badges, Transaction Log, Backup
# =======================================================================================
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...models.schemas import ImportResult, LedgerSnapshot, StatsResponse, Transaction
from ...services.dashboard_service import DashboardService
from ..dependencies import get_dashboard_service

router = APIRouter()


@router.get("/stats", response_model=StatsResponse)
def get_stats(dashboard: DashboardService = Depends(get_dashboard_service)):
    return dashboard.get_stats()


@router.get("/transactions", response_model=List[Transaction])
def get_transactions(
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    limit: int = Query(500, ge=1, le=5000),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    return dashboard.get_transactions(since=since, until=until, limit=limit)


@router.get("/backup/export", response_model=LedgerSnapshot)
def export_backup(dashboard: DashboardService = Depends(get_dashboard_service)):
    return dashboard.export_snapshot()


@router.post("/backup/import", response_model=ImportResult)
def import_backup(
    snapshot: LedgerSnapshot, dashboard: DashboardService = Depends(get_dashboard_service)
):
    return dashboard.import_snapshot(snapshot)
