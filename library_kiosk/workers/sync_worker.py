# =======================================================================================
# library_kiosk/workers/sync_worker.py - Background Sync Timer
# =======================================================================================
import logging
import threading
from typing import Optional

from ..config import config
from ..services.sync_service import SyncService

logger = logging.getLogger(__name__)


class SyncWorker:
    """Ticks the sync engine on a fixed interval, independent of the request path."""

    def __init__(self, sync_service: SyncService, interval: Optional[float] = None):
        self.sync_service = sync_service
        self.interval = interval if interval is not None else config.SYNC_INTERVAL
        self.paused = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if not config.SYNC_ENABLED:
            logger.info("[sync] SYNC_ENABLED=false; skipping sync worker.")
            return
        if self.running:
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="sync-worker", daemon=True)
        self._thread.start()
        logger.info("[sync] Worker started (every %ss)", self.interval)

    def stop(self, timeout: float = 5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def tick(self):
        """One timer tick. Errors are logged; the next tick retries."""
        if self.paused:
            return None
        try:
            return self.sync_service.run_once()
        except Exception:
            logger.exception("[sync] Sync cycle crashed")
            return None

    def _run_loop(self):
        while not self._stop.wait(self.interval):
            self.tick()
