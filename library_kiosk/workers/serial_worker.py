# =======================================================================================
# library_kiosk/workers/serial_worker.py - Background Serial Worker
# =======================================================================================
import logging
import threading
import time
from typing import Callable, Optional

import serial

from ..config import config
from ..models.schemas import ScanEvent
from ..services.serial_service import LineFramer, ScanSession

logger = logging.getLogger(__name__)


class SerialWorker:
    """Background worker turning the RFID reader's byte stream into scan events."""

    def __init__(
        self,
        session: ScanSession,
        on_event: Optional[Callable[[ScanEvent], None]] = None,
        port: Optional[str] = None,
        baud: Optional[int] = None,
    ):
        self.session = session
        self.on_event = on_event
        self.port = port or config.SERIAL_PORT
        self.baud = baud or config.SERIAL_BAUD
        self.framer = LineFramer()
        self.running = False
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Start / Stop
    # ------------------------------------------------------------------
    def start(self):
        """Start the serial worker in a background thread."""
        if not self._should_start():
            return

        self.running = True
        self._thread = threading.Thread(target=self._run_loop, name="serial-worker", daemon=True)
        self._thread.start()
        logger.info("[serial] Worker started")

    def stop(self):
        """Stop the serial worker."""
        self.running = False

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    def _should_start(self) -> bool:
        """Check if serial worker should start."""
        if not config.SERIAL_ENABLED:
            logger.info("[serial] SERIAL_ENABLED=false; skipping UART worker.")
            return False

        if not self.port:
            logger.info("[serial] SERIAL_PORT not configured; skipping UART worker.")
            return False

        return True

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    def _run_loop(self):
        """Main serial communication loop; reconnects after any port error."""
        while self.running:
            try:
                self._handle_serial_connection()
            except Exception as e:
                logger.warning("[serial] Connection error: %s; retrying in 3s", e)
                self.session.note("Reader disconnected.")
                time.sleep(3)

    # ------------------------------------------------------------------
    # Serial handler
    # ------------------------------------------------------------------
    def _handle_serial_connection(self):
        """Open the port and pump bytes through the framer until stopped."""
        logger.info("[serial] Opening %s @ %s", self.port, self.baud)

        with serial.Serial(self.port, self.baud, timeout=config.SERIAL_TIMEOUT) as ser:
            self.framer.reset()
            self.session.note("Connected to reader.")

            while self.running:
                data = ser.read(ser.in_waiting or 1)
                if not data:
                    continue
                self.dispatch(data)

    def dispatch(self, data: bytes) -> int:
        """Feed raw bytes to the framer and hand every complete event on. Returns the event count."""
        events = self.framer.feed(data)
        for event in events:
            logger.debug("[serial] Received: %s", event)
            self.session.record(event)
            if self.on_event is not None:
                try:
                    self.on_event(event)
                except Exception:
                    logger.exception("[serial] Event handler failed for %s", event)
        return len(events)
