# =======================================================================================
# library_kiosk/services/dashboard_service.py - Badges, Transaction Log, Backup
# =======================================================================================
import logging
from datetime import datetime
from typing import List, Optional

from ..config import config
from ..database import DatabaseManager
from ..models.schemas import ImportResult, LedgerSnapshot, StatsResponse, Transaction
from ..utils.exceptions import ValidationError
from ..utils.time_utils import parse_iso
from .ledger_store import LedgerStore
from .student_service import StudentService

logger = logging.getLogger(__name__)


class DashboardService:
    """Read-side helpers for the kiosk header badges and admin screens."""

    def __init__(
        self,
        db: DatabaseManager,
        store: Optional[LedgerStore] = None,
        max_active_loans: int = config.MAX_ACTIVE_LOANS,
    ):
        self.db = db
        self.store = store or LedgerStore()
        self.max_active_loans = max_active_loans

    # ---------- badges ----------

    def get_stats(self, now: Optional[datetime] = None) -> StatsResponse:
        with self.db.get_connection() as conn:
            return StatsResponse(**self.store.stats(conn, now))

    # ---------- transaction log ----------

    def get_transactions(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[Transaction]:
        since, until = parse_iso(since), parse_iso(until)
        if since and until and since > until:
            raise ValidationError("Start date must be before end date", "since")
        if limit < 1 or limit > 5000:
            raise ValidationError("limit must be between 1 and 5000", "limit")
        with self.db.get_connection() as conn:
            return self.store.list_transactions(conn, since=since, until=until, limit=limit)

    # ---------- backup / restore ----------

    def export_snapshot(self) -> LedgerSnapshot:
        with self.db.get_connection() as conn:
            snapshot = self.store.export_snapshot(conn)
        logger.info(
            "Exported ledger: %s students, %s loans, %s transactions",
            len(snapshot.students), len(snapshot.loans), len(snapshot.transactions),
        )
        return snapshot

    def import_snapshot(self, snapshot: LedgerSnapshot) -> ImportResult:
        """Merge a backup in one database transaction; any failure leaves the ledger untouched."""
        students = [
            StudentService.validate(s).model_copy(update={"created_at": s.created_at})
            for s in snapshot.students
        ]
        snapshot = snapshot.model_copy(update={"students": students})
        with self.db.get_connection() as conn:
            result = self.store.import_snapshot(conn, snapshot, self.max_active_loans)
        logger.info(
            "Imported ledger: %s students, %s loans, %s transactions",
            result.students, result.loans, result.transactions,
        )
        if result.rejected:
            logger.warning("Skipped %s imported loan(s) that break the loan rules", result.rejected)
        return result
