# =======================================================================================
# library_kiosk/services/student_service.py - Student Registration Service
# =======================================================================================
import logging
from typing import List, Optional, Union

from ..database import DatabaseManager
from ..models.schemas import Student, StudentCreateRequest
from ..utils.exceptions import InvalidStateError, StudentNotFoundError, ValidationError
from ..utils.validators import LedgerValidator
from .ledger_store import LedgerStore

logger = logging.getLogger(__name__)


class StudentService:
    """Handles student registration and lookup."""

    def __init__(self, db: DatabaseManager, store: Optional[LedgerStore] = None):
        self.db = db
        self.store = store or LedgerStore()

    @staticmethod
    def validate(fields: Union[StudentCreateRequest, Student]) -> Student:
        """Normalized copy of typed or imported student fields; raises ValidationError naming the field."""
        return Student(
            index_number=LedgerValidator.index_number(fields.index_number),
            full_name=LedgerValidator.full_name(fields.full_name),
            program=LedgerValidator.optional_text(fields.program, "program", 100),
            level=LedgerValidator.optional_text(fields.level, "level", 50),
            phone=LedgerValidator.phone(fields.phone),
            card_uid=LedgerValidator.optional_card_uid(fields.card_uid),
        )

    def register(self, request: StudentCreateRequest) -> Student:
        """Validate and register a new student. Index number and card UID must be unused."""
        student = self.validate(request)
        with self.db.get_connection() as conn:
            created = self.store.insert_student(conn, student)

        logger.info("Registered student %s (card=%s)", created.index_number, created.card_uid)
        return created

    def get(self, student_index: Optional[str] = None, card_uid: Optional[str] = None) -> Student:
        with self.db.get_connection() as conn:
            return self.resolve(conn, student_index=student_index, card_uid=card_uid)

    def resolve(self, conn, student_index: Optional[str] = None, card_uid: Optional[str] = None) -> Student:
        """
        Find a student by index number, or by card UID when no index is given.
        Raises StudentNotFoundError if nothing matches.
        """
        student_index = (student_index or "").strip() or None
        if student_index:
            student = self.store.get_student_by_index(conn, student_index)
            if not student:
                raise StudentNotFoundError(f"Student {student_index} not found. Register the student first.")
            return student

        if card_uid and card_uid.strip():
            uid = LedgerValidator.card_uid(card_uid)
            student = self.store.get_student_by_card(conn, uid)
            if not student:
                raise StudentNotFoundError(f"No student registered for card {uid}. Register the student first.")
            return student

        raise ValidationError("Scan/enter a card UID or provide a student index.", "card_uid")

    def search(self, query: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Student]:
        if limit < 1 or limit > 1000:
            raise ValidationError("limit must be between 1 and 1000", "limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", "offset")
        query = (query or "").strip()
        if len(query) > 100:
            raise ValidationError("query must be at most 100 characters long", "query")

        with self.db.get_connection() as conn:
            return self.store.list_students(conn, query or None, limit, offset)

    def delete(self, student_index: str) -> None:
        """Administrative removal; refused while the student still holds active loans."""
        with self.db.get_connection() as conn:
            student = self.resolve(conn, student_index=student_index)
            active = self.store.count_active_loans(conn, student.index_number)
            if active:
                raise InvalidStateError(
                    f"Student {student.index_number} still has {active} active loan(s)"
                )
            self.store.delete_student(conn, student.index_number)

        logger.info("Deleted student %s", student_index)
