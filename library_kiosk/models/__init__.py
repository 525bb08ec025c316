# =======================================================================================
# library_kiosk/models/__init__.py - Models Package
# =======================================================================================
from .schemas import *
from .enums import *

__all__ = [
    "Student", "Loan", "Transaction", "StudentCreateRequest", "StudentListResponse",
    "BorrowRequest", "BorrowResponse", "ReturnResponse", "StatsResponse", "HealthResponse",
    "UpsertResult", "SyncReport", "SyncStatusResponse", "LedgerSnapshot", "ImportResult",
    "CardEvent", "ItemEvent", "StatusEvent", "RawEvent", "ScanEvent", "ScanLinesRequest",
    "ScanSessionResponse", "ScanLinesResponse", "LoanStatus", "TxAction", "ScanKind",
    "SyncStatus", "SerialPrefix",
]
