# =======================================================================================
# library_kiosk/services/sync_service.py - Outbox Synchronization Service
# =======================================================================================
import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from ..config import config
from ..database import DatabaseManager
from ..models.enums import SyncStatus
from ..models.schemas import SyncReport, SyncStatusResponse
from ..utils.exceptions import RemoteError
from ..utils.time_utils import utcnow
from .ledger_store import LedgerStore
from .remote_client import RemoteSyncer

logger = logging.getLogger(__name__)


class SyncService:
    """
    Pushes unsynced transactions to the remote and flips them to synced only
    after the remote confirmed them.

    At most one cycle runs at a time; a cycle that finds another in flight
    returns SKIPPED immediately instead of waiting.
    """

    def __init__(
        self,
        db: DatabaseManager,
        remote: RemoteSyncer,
        store: Optional[LedgerStore] = None,
        batch_limit: Optional[int] = config.SYNC_BATCH_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.remote = remote
        self.store = store or LedgerStore()
        self.batch_limit = batch_limit
        self.clock = clock

        self._in_flight = threading.Lock()
        self._state_lock = threading.Lock()
        self.last_attempt_at: Optional[datetime] = None
        self.last_status: Optional[SyncStatus] = None
        self.last_error: Optional[str] = None
        self.last_success_at: Optional[datetime] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def run_once(self) -> SyncReport:
        """One sync cycle; used by the background worker and the manual trigger alike."""
        started = self.clock()
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Sync already in flight; skipping")
            return SyncReport(status=SyncStatus.SKIPPED, started_at=started)

        try:
            report = self._cycle(started)
        except Exception as e:
            self._record(SyncReport(
                status=SyncStatus.FAILED, error=str(e) or type(e).__name__, started_at=started
            ))
            raise
        finally:
            self._in_flight.release()

        self._record(report)
        return report

    def _cycle(self, started: datetime) -> SyncReport:
        with self.db.get_connection() as conn:
            batch = self.store.unsynced_transactions(conn, self.batch_limit)

        if not batch:
            return SyncReport(status=SyncStatus.IDLE, started_at=started)

        if not self.remote.is_reachable():
            logger.info("Remote unreachable; %s transaction(s) left unsynced", len(batch))
            return SyncReport(status=SyncStatus.OFFLINE, started_at=started)

        try:
            result = self.remote.upsert_transactions(batch)
        except RemoteError as e:
            logger.warning("Sync failed for %s transaction(s): %s", len(batch), e)
            return SyncReport(
                status=SyncStatus.FAILED, submitted=len(batch), error=str(e), started_at=started
            )

        if not result.ok:
            logger.warning("Remote rejected %s transaction(s): %s", len(batch), result.error)
            return SyncReport(
                status=SyncStatus.FAILED,
                submitted=len(batch),
                error=result.error or "Remote rejected batch",
                started_at=started,
            )

        ids = [tx.id for tx in batch]
        if result.acked_ids is not None:
            acked = set(result.acked_ids)
            ids = [tx_id for tx_id in ids if tx_id in acked]

        with self.db.get_connection() as conn:
            marked = self.store.mark_synced(conn, ids)

        if marked < len(batch):
            logger.warning("Remote acknowledged %s of %s transaction(s)", marked, len(batch))
        logger.info("Synced %s transaction(s)", marked)
        return SyncReport(
            status=SyncStatus.SUCCESS, submitted=len(batch), synced=marked, started_at=started
        )

    def _record(self, report: SyncReport) -> None:
        if report.status == SyncStatus.IDLE:
            return
        with self._state_lock:
            self.last_attempt_at = report.started_at
            self.last_status = report.status
            self.last_error = report.error
            if report.status == SyncStatus.SUCCESS:
                self.last_success_at = report.started_at

    def unsynced_count(self) -> int:
        with self.db.get_connection() as conn:
            return self.store.count_unsynced(conn)

    def get_status(self, enabled: bool = True, paused: bool = False) -> SyncStatusResponse:
        with self._state_lock:
            return SyncStatusResponse(
                enabled=enabled,
                paused=paused,
                in_flight=self.in_flight,
                remote=self.remote.name,
                unsynced=self.unsynced_count(),
                last_attempt_at=self.last_attempt_at,
                last_status=self.last_status,
                last_error=self.last_error,
                last_success_at=self.last_success_at,
            )
