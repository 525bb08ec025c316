# =======================================================================================
# library_kiosk/utils/__init__.py - Utils Package
# =======================================================================================
from .exceptions import *
from .validators import *
from .locks import KeyedLock

__all__ = [
    "LibraryKioskError", "ValidationError", "NotFoundError", "StudentNotFoundError",
    "LoanNotFoundError", "DuplicateError", "LimitExceededError", "InvalidStateError",
    "StorageUnavailableError", "RemoteError", "RemoteUnreachableError",
    "RemoteRejectedError", "LedgerValidator", "KeyedLock",
]
