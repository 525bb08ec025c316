# =======================================================================================
# library_kiosk/services/__init__.py - Services Package
# =======================================================================================
from .ledger_store import LedgerStore
from .student_service import StudentService
from .loan_service import LoanService
from .remote_client import RemoteSyncer, NullSyncer, HttpSyncer, DatabaseSyncer, build_remote_syncer
from .sync_service import SyncService
from .serial_service import LineFramer, ScanSession, parse_line
from .dashboard_service import DashboardService

__all__ = [
    "LedgerStore", "StudentService", "LoanService", "RemoteSyncer", "NullSyncer",
    "HttpSyncer", "DatabaseSyncer", "build_remote_syncer", "SyncService",
    "LineFramer", "ScanSession", "parse_line", "DashboardService",
]
