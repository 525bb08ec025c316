# =======================================================================================
# library_kiosk/api/dependencies.py - FastAPI Dependencies
# =======================================================================================
from ..database import db_manager
from ..services.dashboard_service import DashboardService
from ..services.ledger_store import LedgerStore
from ..services.loan_service import LoanService
from ..services.remote_client import build_remote_syncer
from ..services.serial_service import LineFramer, ScanSession
from ..services.student_service import StudentService
from ..services.sync_service import SyncService
from ..workers.serial_worker import SerialWorker
from ..workers.sync_worker import SyncWorker

# ----------------------------------------------------------------------
# Process-wide instances, created at import and torn down on app shutdown
# ----------------------------------------------------------------------
ledger_store = LedgerStore()
remote_syncer = build_remote_syncer()

student_service = StudentService(db_manager, ledger_store)
loan_service = LoanService(db_manager, ledger_store)
sync_service = SyncService(db_manager, remote_syncer, ledger_store)
dashboard_service = DashboardService(db_manager, ledger_store)

scan_session = ScanSession()
bridge_framer = LineFramer()

sync_worker = SyncWorker(sync_service)
serial_worker = SerialWorker(scan_session)


def get_student_service() -> StudentService:
    return student_service

def get_loan_service() -> LoanService:
    return loan_service

def get_sync_service() -> SyncService:
    return sync_service

def get_sync_worker() -> SyncWorker:
    return sync_worker

def get_dashboard_service() -> DashboardService:
    return dashboard_service

def get_scan_session() -> ScanSession:
    return scan_session

def get_bridge_framer() -> LineFramer:
    return bridge_framer
