# =======================================================================================
# library_kiosk/utils/exceptions.py - Custom Exceptions
# =======================================================================================
class LibraryKioskError(Exception):
    """Base exception for the library kiosk."""
    pass

class ValidationError(LibraryKioskError):
    """Raised when input fails field validation."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field

class NotFoundError(LibraryKioskError):
    """Raised when a student or loan does not exist."""
    pass

class StudentNotFoundError(NotFoundError):
    pass

class LoanNotFoundError(NotFoundError):
    pass

class DuplicateError(LibraryKioskError):
    """Raised when a unique business key is already taken."""
    pass

class LimitExceededError(LibraryKioskError):
    """Raised when a student already holds the maximum number of active loans."""

    def __init__(self, student_index: str, active: int, limit: int):
        super().__init__(
            f"Loan limit reached: {student_index} already has {active} active loan(s) (max {limit})"
        )
        self.student_index = student_index
        self.active = active
        self.limit = limit

class InvalidStateError(LibraryKioskError):
    """Raised when an operation does not apply to the record's current state."""
    pass

class StorageUnavailableError(LibraryKioskError):
    """Raised when the local ledger database cannot be used."""
    pass

class RemoteError(LibraryKioskError):
    """Base class for remote reconciliation failures. Always retried."""
    pass

class RemoteUnreachableError(RemoteError):
    pass

class RemoteRejectedError(RemoteError):
    pass
