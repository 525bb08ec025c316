# =======================================================================================
# library_kiosk/services/ledger_store.py - Ledger Data Access
# =======================================================================================
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from ..models.schemas import ImportResult, LedgerSnapshot, Loan, Student, Transaction
from ..utils.exceptions import DuplicateError
from ..utils.time_utils import parse_iso, to_iso, utcnow

_STUDENT_COLS = "id, index_number, full_name, program, level, phone, card_uid, created_at"
_LOAN_COLS = (
    "id, student_index, user_uid, item_tag, item_title, borrowed_at, due_at, "
    "returned_at, status, device_id"
)
_TX_COLS = "id, user_uid, student_index, item_tag, action, occurred_at, device_id, synced"


def _loan_params(loan: Loan) -> Dict:
    params = loan.model_dump()
    for key in ("borrowed_at", "due_at", "returned_at"):
        params[key] = to_iso(params[key])
    return params


def _tx_params(tx: Transaction) -> Dict:
    params = tx.model_dump()
    params["occurred_at"] = to_iso(params["occurred_at"])
    return params


class LedgerStore:
    """
    Data access for students, loans and transactions.

    No business rules live here. Every method runs on the caller's connection so
    several writes can share one database transaction.
    """

    # ------------------------------------------------------------------
    # Students
    # ------------------------------------------------------------------
    def insert_student(self, conn: Connection, student: Student) -> Student:
        if self.get_student_by_index(conn, student.index_number):
            raise DuplicateError(f"Student {student.index_number} is already registered")
        if student.card_uid and self.get_student_by_card(conn, student.card_uid):
            raise DuplicateError(f"Card {student.card_uid} is already assigned to another student")

        created_at = student.created_at or utcnow()
        try:
            result = conn.execute(
                text("""
                    INSERT INTO students (index_number, full_name, program, level, phone, card_uid, created_at)
                    VALUES (:index_number, :full_name, :program, :level, :phone, :card_uid, :created_at)
                """),
                {
                    "index_number": student.index_number,
                    "full_name": student.full_name,
                    "program": student.program,
                    "level": student.level,
                    "phone": student.phone,
                    "card_uid": student.card_uid,
                    "created_at": to_iso(created_at),
                },
            )
        except IntegrityError as e:
            raise DuplicateError("Index number or card UID already exists") from e

        return student.model_copy(update={"id": result.lastrowid, "created_at": created_at})

    def get_student(self, conn: Connection, student_id: int) -> Optional[Student]:
        row = conn.execute(
            text(f"SELECT {_STUDENT_COLS} FROM students WHERE id = :id"), {"id": student_id}
        ).mappings().first()
        return Student(**row) if row else None

    def get_student_by_index(self, conn: Connection, index_number: str) -> Optional[Student]:
        row = conn.execute(
            text(f"SELECT {_STUDENT_COLS} FROM students WHERE index_number = :idx"),
            {"idx": index_number},
        ).mappings().first()
        return Student(**row) if row else None

    def get_student_by_card(self, conn: Connection, card_uid: str) -> Optional[Student]:
        row = conn.execute(
            text(f"SELECT {_STUDENT_COLS} FROM students WHERE card_uid = :uid"),
            {"uid": card_uid},
        ).mappings().first()
        return Student(**row) if row else None

    def list_students(
        self, conn: Connection, query: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[Student]:
        """Newest first; `query` matches any text field, case-insensitively."""
        where = ""
        params = {"limit": limit, "offset": offset}
        if query:
            where = """
                WHERE LOWER(index_number) LIKE :q OR LOWER(full_name) LIKE :q
                   OR LOWER(COALESCE(program, '')) LIKE :q OR LOWER(COALESCE(level, '')) LIKE :q
                   OR LOWER(COALESCE(phone, '')) LIKE :q OR LOWER(COALESCE(card_uid, '')) LIKE :q
            """
            params["q"] = f"%{query.lower()}%"

        rows = conn.execute(
            text(f"""
                SELECT {_STUDENT_COLS} FROM students
                {where}
                ORDER BY created_at DESC, id DESC
                LIMIT :limit OFFSET :offset
            """),
            params,
        ).mappings().all()
        return [Student(**row) for row in rows]

    def delete_student(self, conn: Connection, index_number: str) -> bool:
        result = conn.execute(
            text("DELETE FROM students WHERE index_number = :idx"), {"idx": index_number}
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Loans
    # ------------------------------------------------------------------
    def insert_loan(self, conn: Connection, loan: Loan) -> None:
        conn.execute(
            text(f"""
                INSERT INTO loans ({_LOAN_COLS})
                VALUES (:id, :student_index, :user_uid, :item_tag, :item_title, :borrowed_at,
                        :due_at, :returned_at, :status, :device_id)
            """),
            _loan_params(loan),
        )

    def insert_loan_if_under_limit(self, conn: Connection, loan: Loan, limit: int) -> bool:
        """
        Conditional insert: the row is written only while the student holds fewer
        than `limit` ACTIVE loans. Returns False when the ceiling was already reached.
        """
        params = _loan_params(loan)
        params["limit"] = limit
        result = conn.execute(
            text(f"""
                INSERT INTO loans ({_LOAN_COLS})
                SELECT :id, :student_index, :user_uid, :item_tag, :item_title, :borrowed_at,
                       :due_at, :returned_at, :status, :device_id
                WHERE (
                    SELECT COUNT(*) FROM loans
                    WHERE status = 'ACTIVE' AND student_index = :student_index
                ) < :limit
            """),
            params,
        )
        return result.rowcount == 1

    def get_loan(self, conn: Connection, loan_id: str) -> Optional[Loan]:
        row = conn.execute(
            text(f"SELECT {_LOAN_COLS} FROM loans WHERE id = :id"), {"id": loan_id}
        ).mappings().first()
        return Loan(**row) if row else None

    def query_loans(
        self,
        conn: Connection,
        status: Optional[str] = None,
        student_index: Optional[str] = None,
        due_before: Optional[datetime] = None,
    ) -> List[Loan]:
        """Current snapshot of matching loans, earliest due first."""
        clauses = []
        params = {}
        if status is not None:
            clauses.append("status = :status")
            params["status"] = status
        if student_index is not None:
            clauses.append("student_index = :student_index")
            params["student_index"] = student_index
        if due_before is not None:
            clauses.append("due_at <= :due_before")
            params["due_before"] = to_iso(due_before)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = conn.execute(
            text(f"SELECT {_LOAN_COLS} FROM loans {where} ORDER BY due_at ASC, borrowed_at ASC, seq ASC"),
            params,
        ).mappings().all()
        return [Loan(**row) for row in rows]

    def count_active_loans(self, conn: Connection, student_index: str) -> int:
        return conn.execute(
            text("SELECT COUNT(*) FROM loans WHERE status = 'ACTIVE' AND student_index = :idx"),
            {"idx": student_index},
        ).scalar_one()

    def mark_loan_returned(self, conn: Connection, loan_id: str, returned_at: datetime) -> bool:
        """ACTIVE -> RETURNED. Returns False if the loan was not ACTIVE any more."""
        result = conn.execute(
            text("""
                UPDATE loans SET status = 'RETURNED', returned_at = :returned_at
                WHERE id = :id AND status = 'ACTIVE'
            """),
            {"id": loan_id, "returned_at": to_iso(returned_at)},
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def append_transaction(self, conn: Connection, tx: Transaction) -> None:
        conn.execute(
            text(f"""
                INSERT INTO transactions ({_TX_COLS})
                VALUES (:id, :user_uid, :student_index, :item_tag, :action, :occurred_at,
                        :device_id, :synced)
            """),
            _tx_params(tx),
        )

    def get_transaction(self, conn: Connection, tx_id: str) -> Optional[Transaction]:
        row = conn.execute(
            text(f"SELECT {_TX_COLS} FROM transactions WHERE id = :id"), {"id": tx_id}
        ).mappings().first()
        return Transaction(**row) if row else None

    def list_transactions(
        self,
        conn: Connection,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = 500,
    ) -> List[Transaction]:
        """Most recent first, optionally bounded by an occurred_at range (inclusive)."""
        clauses = []
        params = {}
        if since is not None:
            clauses.append("occurred_at >= :since")
            params["since"] = to_iso(since)
        if until is not None:
            clauses.append("occurred_at <= :until")
            params["until"] = to_iso(until)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT :limit"
            params["limit"] = limit

        rows = conn.execute(
            text(f"SELECT {_TX_COLS} FROM transactions {where} ORDER BY occurred_at DESC {limit_sql}"),
            params,
        ).mappings().all()
        return [Transaction(**row) for row in rows]

    def unsynced_transactions(self, conn: Connection, limit: Optional[int] = None) -> List[Transaction]:
        """Outbox scan, oldest first."""
        params = {}
        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT :limit"
            params["limit"] = limit
        rows = conn.execute(
            text(f"SELECT {_TX_COLS} FROM transactions WHERE synced = 0 ORDER BY occurred_at ASC {limit_sql}"),
            params,
        ).mappings().all()
        return [Transaction(**row) for row in rows]

    def mark_synced(self, conn: Connection, ids: Iterable[str]) -> int:
        """Flip synced 0 -> 1 for the given ids; rows already synced are left alone."""
        ids = list(ids)
        if not ids:
            return 0
        stmt = text(
            "UPDATE transactions SET synced = 1 WHERE synced = 0 AND id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        return conn.execute(stmt, {"ids": ids}).rowcount

    def count_unsynced(self, conn: Connection) -> int:
        return conn.execute(text("SELECT COUNT(*) FROM transactions WHERE synced = 0")).scalar_one()

    def stats(self, conn: Connection, now: Optional[datetime] = None) -> Dict[str, int]:
        """Badge counters: total, today (UTC), unsynced, borrowed, returned."""
        day_start = parse_iso(now or utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
        row = conn.execute(
            text("""
                SELECT
                  COUNT(*) AS total,
                  COALESCE(SUM(CASE WHEN occurred_at >= :day_start AND occurred_at < :day_end THEN 1 ELSE 0 END), 0) AS today,
                  COALESCE(SUM(CASE WHEN synced = 0 THEN 1 ELSE 0 END), 0) AS unsynced,
                  COALESCE(SUM(CASE WHEN action = 'BORROW' THEN 1 ELSE 0 END), 0) AS borrowed,
                  COALESCE(SUM(CASE WHEN action = 'RETURN' THEN 1 ELSE 0 END), 0) AS returned
                FROM transactions
            """),
            {"day_start": to_iso(day_start), "day_end": to_iso(day_start + timedelta(days=1))},
        ).mappings().first()
        return {key: int(row[key] or 0) for key in ("total", "today", "unsynced", "borrowed", "returned")}

    # ------------------------------------------------------------------
    # Backup / restore
    # ------------------------------------------------------------------
    def export_snapshot(self, conn: Connection) -> LedgerSnapshot:
        students = conn.execute(
            text(f"SELECT {_STUDENT_COLS} FROM students ORDER BY id")
        ).mappings().all()
        loans = conn.execute(
            text(f"SELECT {_LOAN_COLS} FROM loans ORDER BY borrowed_at, seq")
        ).mappings().all()
        txs = conn.execute(
            text(f"SELECT {_TX_COLS} FROM transactions ORDER BY occurred_at")
        ).mappings().all()
        return LedgerSnapshot(
            exported_at=utcnow(),
            students=[Student(**r) for r in students],
            loans=[Loan(**r) for r in loans],
            transactions=[Transaction(**r) for r in txs],
        )

    def has_transaction(
        self, conn: Connection, action: str, student_index: Optional[str], item_tag: str, occurred_at: datetime
    ) -> bool:
        """True when the log holds the `action` record a loan transition must be paired with."""
        count = conn.execute(
            text("""
                SELECT COUNT(*) FROM transactions
                WHERE action = :action AND item_tag = :item_tag AND occurred_at = :occurred_at
                  AND (student_index = :student_index OR (student_index IS NULL AND :student_index IS NULL))
            """),
            {
                "action": action,
                "student_index": student_index,
                "item_tag": item_tag,
                "occurred_at": to_iso(occurred_at),
            },
        ).scalar_one()
        return count > 0

    def import_snapshot(self, conn: Connection, snapshot: LedgerSnapshot, max_active_loans: int) -> ImportResult:
        """
        Merge a snapshot, replacing records by identity.

        Transactions go in before loans, so a loan is accepted only when the
        ledger then holds its BORROW record (and its RETURN record when the
        loan is RETURNED). New ACTIVE loans respect `max_active_loans`. A
        transaction's `synced` flag never goes back to 0, and a RETURNED loan
        is never reopened. Loans that fail a rule are counted in `rejected`.
        """
        students = 0
        for student in snapshot.students:
            existing = self.get_student_by_index(conn, student.index_number)
            if existing is None:
                self.insert_student(conn, student.model_copy(update={"id": None}))
            else:
                self._update_student(conn, student)
            students += 1

        transactions = 0
        for tx in snapshot.transactions:
            existing = self.get_transaction(conn, tx.id)
            if existing is None:
                self.append_transaction(conn, tx.model_copy(update={"synced": 1 if tx.synced else 0}))
                transactions += 1
            elif tx.synced and not existing.synced:
                self.mark_synced(conn, [tx.id])
                transactions += 1

        loans = 0
        rejected = 0
        for loan in snapshot.loans:
            if not self.has_transaction(conn, "BORROW", loan.student_index, loan.item_tag, loan.borrowed_at):
                rejected += 1
                continue
            returned = loan.status == "RETURNED"
            if returned and (
                loan.returned_at is None
                or not self.has_transaction(conn, "RETURN", loan.student_index, loan.item_tag, loan.returned_at)
            ):
                rejected += 1
                continue

            existing = self.get_loan(conn, loan.id)
            if existing is None:
                if returned:
                    self.insert_loan(conn, loan)
                elif not self.insert_loan_if_under_limit(conn, loan, max_active_loans):
                    rejected += 1
                    continue
                loans += 1
            elif existing.status == "ACTIVE" and returned:
                if self.mark_loan_returned(conn, loan.id, loan.returned_at):
                    loans += 1

        return ImportResult(students=students, loans=loans, transactions=transactions, rejected=rejected)

    def _update_student(self, conn: Connection, student: Student) -> None:
        try:
            conn.execute(
                text("""
                    UPDATE students SET full_name = :full_name, program = :program, level = :level,
                           phone = :phone, card_uid = :card_uid
                    WHERE index_number = :index_number
                """),
                {
                    "full_name": student.full_name,
                    "program": student.program,
                    "level": student.level,
                    "phone": student.phone,
                    "card_uid": student.card_uid,
                    "index_number": student.index_number,
                },
            )
        except IntegrityError as e:
            raise DuplicateError(f"Card {student.card_uid} is already assigned to another student") from e
