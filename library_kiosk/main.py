# =======================================================================================
# library_kiosk/main.py - FastAPI Application Entry Point
# =======================================================================================
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import config
from .api.routes.students import router as students_router
from .api.routes.loans import router as loans_router
from .api.routes.sync import router as sync_router
from .api.routes.dashboard import router as dashboard_router
from .api.routes.scan import router as scan_router
from .api import dependencies
from .database import db_manager
from .models.schemas import HealthResponse
from .utils.exceptions import (
    DuplicateError, InvalidStateError, LibraryKioskError, LimitExceededError, NotFoundError,
    RemoteError, StorageUnavailableError, ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins
_ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (LimitExceededError, 409),
    (DuplicateError, 409),
    (InvalidStateError, 409),
    (StorageUnavailableError, 503),
    (RemoteError, 502),
)


def _configure_logging():
    logging.basicConfig(
        level=logging.DEBUG if config.API_DEBUG else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def kiosk_error_handler(request: Request, exc: LibraryKioskError):
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    return JSONResponse(status_code=status_code, content=body)


def create_app() -> FastAPI:
    _configure_logging()

    app = FastAPI(
        title="Library Kiosk API",
        version="1.0.0",
        description="Offline-first RFID borrowing kiosk: local ledger, loan lifecycle and outbox sync",
        debug=config.API_DEBUG,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LibraryKioskError, kiosk_error_handler)

    # Routers
    app.include_router(students_router, prefix="/api", tags=["students"])
    app.include_router(loans_router, prefix="/api", tags=["loans"])
    app.include_router(sync_router, prefix="/api", tags=["sync"])
    app.include_router(dashboard_router, prefix="/api", tags=["dashboard"])
    app.include_router(scan_router, prefix="/api", tags=["scan"])

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    def api_health():
        try:
            db_manager.fetch_one("SELECT 1")
            return HealthResponse(status="ok", dataAvailable=True, message=None)
        except StorageUnavailableError as e:
            return HealthResponse(
                status="error", dataAvailable=False, message=str(e)
            )

    @app.on_event("startup")
    async def startup_event():
        db_manager.init_schema()
        dependencies.sync_worker.start()
        dependencies.serial_worker.start()
        logger.info("Library Kiosk API started (device=%s, remote=%s)",
                    config.DEVICE_ID, dependencies.remote_syncer.name)

    @app.on_event("shutdown")
    async def shutdown_event():
        dependencies.serial_worker.stop()
        dependencies.sync_worker.stop()
        dependencies.scan_session.clear()
        dependencies.remote_syncer.close()
        db_manager.dispose()

    return app


app = create_app()
