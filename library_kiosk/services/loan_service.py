# =======================================================================================
# library_kiosk/services/loan_service.py - Loan Lifecycle (Core Business Logic)
# =======================================================================================
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from ..config import config
from ..database import DatabaseManager
from ..models.schemas import Loan, Transaction
from ..utils.exceptions import (
    InvalidStateError, LimitExceededError, LoanNotFoundError,
)
from ..utils.locks import KeyedLock
from ..utils.time_utils import utcnow
from ..utils.validators import LedgerValidator
from .ledger_store import LedgerStore
from .student_service import StudentService

logger = logging.getLogger(__name__)


class LoanService:
    """
    Drives the per-item loan state machine: no-loan -> ACTIVE -> RETURNED.

    Every transition writes the Loan row and its Transaction in one database
    transaction, so the audit log and the loan table never disagree.
    """

    def __init__(
        self,
        db: DatabaseManager,
        store: Optional[LedgerStore] = None,
        *,
        max_active_loans: int = config.MAX_ACTIVE_LOANS,
        default_days: int = config.LOAN_DAYS_DEFAULT,
        min_days: int = config.LOAN_DAYS_MIN,
        max_days: int = config.LOAN_DAYS_MAX,
        due_soon_days: int = config.DUE_SOON_DAYS,
        device_id: str = config.DEVICE_ID,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.store = store or LedgerStore()
        self.students = StudentService(db, self.store)
        self.max_active_loans = max_active_loans
        self.default_days = default_days
        self.min_days = min_days
        self.max_days = max_days
        self.due_soon_days = due_soon_days
        self.device_id = device_id
        self.clock = clock
        self._student_locks = KeyedLock()

    # ------------------------------------------------------------------
    # Borrow
    # ------------------------------------------------------------------
    def borrow(
        self,
        item_tag: str,
        card_uid: Optional[str] = None,
        student_index: Optional[str] = None,
        item_title: Optional[str] = None,
        days: Optional[int] = None,
    ) -> Tuple[Loan, Transaction]:
        """
        Lend `item_tag` to the student identified by index (preferred) or card UID.

        Raises ValidationError, StudentNotFoundError or LimitExceededError; on any of
        them nothing has been written.
        """
        item_tag = LedgerValidator.item_tag(item_tag)
        item_title = LedgerValidator.optional_text(item_title, "item_title", 200)
        card_uid = LedgerValidator.optional_card_uid(card_uid)
        days = LedgerValidator.clamp_days(days, self.default_days, self.min_days, self.max_days)

        with self.db.get_connection() as conn:
            student = self.students.resolve(conn, student_index=student_index, card_uid=card_uid)

        # Limit check and insert form one critical section per student.
        with self._student_locks.hold(student.index_number):
            with self.db.get_connection() as conn:
                active = self.store.count_active_loans(conn, student.index_number)
                if active >= self.max_active_loans:
                    logger.warning(
                        "Borrow rejected: student=%s active=%s limit=%s item=%s",
                        student.index_number, active, self.max_active_loans, item_tag,
                    )
                    raise LimitExceededError(student.index_number, active, self.max_active_loans)

                now = self.clock()
                loan = Loan(
                    id=str(uuid.uuid4()),
                    student_index=student.index_number,
                    user_uid=card_uid,
                    item_tag=item_tag,
                    item_title=item_title,
                    borrowed_at=now,
                    due_at=now + timedelta(days=days),
                    returned_at=None,
                    status="ACTIVE",
                    device_id=self.device_id,
                )
                # The conditional write also holds the ceiling against other processes.
                if not self.store.insert_loan_if_under_limit(conn, loan, self.max_active_loans):
                    active = self.store.count_active_loans(conn, student.index_number)
                    logger.warning(
                        "Borrow lost race: student=%s active=%s item=%s",
                        student.index_number, active, item_tag,
                    )
                    raise LimitExceededError(student.index_number, active, self.max_active_loans)

                tx = Transaction(
                    id=str(uuid.uuid4()),
                    user_uid=card_uid,
                    student_index=student.index_number,
                    item_tag=item_tag,
                    action="BORROW",
                    occurred_at=now,
                    device_id=self.device_id,
                    synced=0,
                )
                self.store.append_transaction(conn, tx)

        logger.info(
            "[BORROW] %s -> %s (due %s)", student.index_number, item_tag, loan.due_at.date().isoformat()
        )
        return loan, tx

    # ------------------------------------------------------------------
    # Return
    # ------------------------------------------------------------------
    def return_loan(self, loan_id: str) -> Tuple[Loan, Transaction]:
        """
        ACTIVE -> RETURNED plus one RETURN transaction.

        Raises LoanNotFoundError, or InvalidStateError when the loan is already
        returned; the latter is a no-op and appends nothing.
        """
        with self.db.get_connection() as conn:
            loan = self.store.get_loan(conn, loan_id)
            if loan is None:
                raise LoanNotFoundError(f"Loan {loan_id} not found")
            if loan.status != "ACTIVE":
                raise InvalidStateError(f"Loan {loan_id} is already {loan.status}")

            now = self.clock()
            if not self.store.mark_loan_returned(conn, loan_id, now):
                # Another return won between the read and the update.
                raise InvalidStateError(f"Loan {loan_id} is already RETURNED")

            tx = Transaction(
                id=str(uuid.uuid4()),
                user_uid=loan.user_uid,
                student_index=loan.student_index,
                item_tag=loan.item_tag,
                action="RETURN",
                occurred_at=now,
                device_id=self.device_id,
                synced=0,
            )
            self.store.append_transaction(conn, tx)

        returned = loan.model_copy(update={"status": "RETURNED", "returned_at": now})
        logger.info("[RETURN] %s -> %s", loan.student_index, loan.item_tag)
        return returned, tx

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_loan(self, loan_id: str) -> Loan:
        with self.db.get_connection() as conn:
            loan = self.store.get_loan(conn, loan_id)
        if loan is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")
        return loan

    def active_loans_for(
        self, student_index: Optional[str] = None, card_uid: Optional[str] = None
    ) -> List[Loan]:
        """Active loans of one student, earliest due first."""
        with self.db.get_connection() as conn:
            student = self.students.resolve(conn, student_index=student_index, card_uid=card_uid)
            return self.store.query_loans(conn, status="ACTIVE", student_index=student.index_number)

    def due_soon_or_overdue(self, horizon_days: Optional[int] = None) -> List[Loan]:
        """All active loans due within `horizon_days` (or already overdue), earliest first."""
        if horizon_days is None:
            horizon_days = self.due_soon_days
        cutoff = self.clock() + timedelta(days=horizon_days)
        with self.db.get_connection() as conn:
            return self.store.query_loans(conn, status="ACTIVE", due_before=cutoff)
