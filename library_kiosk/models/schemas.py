# =======================================================================================
# library_kiosk/models/schemas.py - Pydantic Models
# =======================================================================================
from datetime import datetime
from typing import Annotated, Optional, List, Dict, Any, Literal, Union
from pydantic import BaseModel, Field
from .enums import LoanStatus, TxAction, SyncStatus

# ========== Ledger records ==========
class Student(BaseModel):
    """Registered borrower."""
    id: Optional[int] = None
    index_number: str
    full_name: str
    program: Optional[str] = None
    level: Optional[str] = None
    phone: Optional[str] = None
    card_uid: Optional[str] = None
    created_at: Optional[datetime] = None

class Loan(BaseModel):
    """Mutable projection of a borrow; flipped to RETURNED exactly once."""
    id: str
    student_index: Optional[str] = None
    user_uid: Optional[str] = None
    item_tag: str
    item_title: Optional[str] = None
    borrowed_at: datetime
    due_at: datetime
    returned_at: Optional[datetime] = None
    status: LoanStatus
    device_id: str

class Transaction(BaseModel):
    """Append-only audit record. Only `synced` ever changes, and only 0 -> 1."""
    id: str
    user_uid: Optional[str] = None
    student_index: Optional[str] = None
    item_tag: str
    action: TxAction
    occurred_at: datetime
    device_id: str
    synced: int = 0

# ========== Students ==========
class StudentCreateRequest(BaseModel):
    index_number: str = Field(..., description="Student index number (unique)")
    full_name: str = Field(..., description="Student's full name")
    program: Optional[str] = None
    level: Optional[str] = None
    phone: Optional[str] = None
    card_uid: Optional[str] = Field(None, description="RFID card UID")

class StudentListResponse(BaseModel):
    success: bool
    data: List[Student]

# ========== Loans ==========
class BorrowRequest(BaseModel):
    """Borrow request; either the card UID or the student index identifies the borrower."""
    card_uid: Optional[str] = Field(None, description="Scanned card UID")
    student_index: Optional[str] = Field(None, description="Student index number")
    item_tag: str = Field(..., description="Item RFID tag or barcode")
    item_title: Optional[str] = None
    days: Optional[int] = Field(None, description="Loan duration in days, clamped to policy bounds")

class BorrowResponse(BaseModel):
    success: bool
    message: str
    loan: Loan
    transaction: Transaction

class ReturnResponse(BaseModel):
    success: bool
    changed: bool
    message: str
    loan: Optional[Loan] = None
    transaction: Optional[Transaction] = None

# ========== Dashboard ==========
class StatsResponse(BaseModel):
    total: int
    today: int
    unsynced: int
    borrowed: int
    returned: int

class HealthResponse(BaseModel):
    status: str                 # "ok" | "error"
    dataAvailable: bool
    message: Optional[str] = None

# ========== Sync ==========
class UpsertResult(BaseModel):
    """Remote reply to a batch upsert. `acked_ids` is None when the remote acks the whole batch."""
    ok: bool
    acked_ids: Optional[List[str]] = None
    error: Optional[str] = None

class SyncReport(BaseModel):
    status: SyncStatus
    submitted: int = 0
    synced: int = 0
    error: Optional[str] = None
    started_at: datetime

class SyncStatusResponse(BaseModel):
    enabled: bool
    paused: bool
    in_flight: bool
    remote: str
    unsynced: int
    last_attempt_at: Optional[datetime] = None
    last_status: Optional[SyncStatus] = None
    last_error: Optional[str] = None
    last_success_at: Optional[datetime] = None

# ========== Backup ==========
class LedgerSnapshot(BaseModel):
    version: int = 1
    exported_at: datetime
    students: List[Student] = Field(default_factory=list)
    loans: List[Loan] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)

class ImportResult(BaseModel):
    students: int
    loans: int
    transactions: int
    rejected: int = 0

# ========== Device scan events ==========
class CardEvent(BaseModel):
    kind: Literal["card"] = "card"
    uid: str

class ItemEvent(BaseModel):
    kind: Literal["item"] = "item"
    tag: str

class StatusEvent(BaseModel):
    kind: Literal["status"] = "status"
    ts: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

class RawEvent(BaseModel):
    kind: Literal["raw"] = "raw"
    line: str

ScanEvent = Annotated[Union[CardEvent, ItemEvent, StatusEvent, RawEvent], Field(discriminator="kind")]

class ScanLinesRequest(BaseModel):
    """Raw reader output forwarded by an external bridge."""
    data: str = Field(..., description="Reader text; only complete lines are parsed")

class ScanSessionResponse(BaseModel):
    last_card_uid: Optional[str] = None
    last_item_tag: Optional[str] = None
    log: List[str] = Field(default_factory=list)

class ScanLinesResponse(BaseModel):
    events: List[ScanEvent]
    session: ScanSessionResponse
