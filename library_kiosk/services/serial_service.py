# =======================================================================================
# library_kiosk/services/serial_service.py - Reader Line Framing and Scan Session
# =======================================================================================
import json
import logging
import threading
import time
from collections import deque
from typing import List, Optional

from ..models.enums import SerialPrefix
from ..models.schemas import (
    CardEvent, ItemEvent, RawEvent, ScanEvent, ScanSessionResponse, StatusEvent,
)
from ..utils.exceptions import ValidationError
from ..utils.validators import LedgerValidator

logger = logging.getLogger(__name__)


def parse_line(line: str) -> ScanEvent:
    """
    Turn one complete reader line into a scan event.

    Accepts the firmware's plain prefixes (CARD_SCANNED:/ITEM_SCANNED:) and the
    JSON form {"event": "card"|"item"|"hb"|"status", ...}. Anything unrecognised,
    including a malformed card UID, comes back as a RawEvent.
    """
    if line.startswith(SerialPrefix.CARD.value):
        return _card_event(line[len(SerialPrefix.CARD.value):].strip(), line)
    if line.startswith(SerialPrefix.ITEM.value):
        return _item_event(line[len(SerialPrefix.ITEM.value):].strip(), line)

    if line.startswith("{"):
        try:
            obj = json.loads(line)
        except ValueError:
            return RawEvent(line=line)
        if not isinstance(obj, dict):
            return RawEvent(line=line)

        kind = obj.get("event")
        if kind == "card":
            return _card_event(str(obj.get("uid") or ""), line)
        if kind == "item":
            return _item_event(str(obj.get("tag") or ""), line)
        if kind in ("hb", "status"):
            payload = {k: v for k, v in obj.items() if k not in ("event", "ts")}
            ts = obj.get("ts")
            return StatusEvent(ts=str(ts) if ts is not None else None, payload=payload)

    return RawEvent(line=line)


def _card_event(uid: str, line: str) -> ScanEvent:
    try:
        return CardEvent(uid=LedgerValidator.card_uid(uid))
    except ValidationError:
        return RawEvent(line=line)


def _item_event(tag: str, line: str) -> ScanEvent:
    try:
        return ItemEvent(tag=LedgerValidator.item_tag(tag))
    except ValidationError:
        return RawEvent(line=line)


class LineFramer:
    """
    Newline framing over a byte stream.

    Bytes are buffered until a '\\n' arrives; only complete lines are parsed,
    so a scan split across two reads still yields exactly one event.
    """

    def __init__(self, max_buffer: int = 4096):
        self._lock = threading.Lock()
        self._buffer = b""
        self._max_buffer = max_buffer

    def feed(self, data: bytes) -> List[ScanEvent]:
        with self._lock:
            self._buffer += data
            lines = []
            while b"\n" in self._buffer:
                raw, self._buffer = self._buffer.split(b"\n", 1)
                line = raw.decode(errors="ignore").strip()
                if line:
                    lines.append(line)

            if len(self._buffer) > self._max_buffer:
                # A reader that never sends a terminator is misbehaving; drop the junk.
                logger.warning("Discarding %s unterminated bytes from reader", len(self._buffer))
                self._buffer = b""
        return [parse_line(line) for line in lines]

    @property
    def pending(self) -> bytes:
        with self._lock:
            return self._buffer

    def reset(self) -> None:
        with self._lock:
            self._buffer = b""


class ScanSession:
    """
    Kiosk-side scan state: last card, last item and a bounded activity log.

    Created once at startup and cleared on shutdown; shared by the serial
    worker and the HTTP routes, so every access goes through one lock.
    """

    def __init__(self, max_log: int = 100):
        self._lock = threading.Lock()
        self._log = deque(maxlen=max_log)
        self.last_card_uid: Optional[str] = None
        self.last_item_tag: Optional[str] = None

    def record(self, event: ScanEvent) -> None:
        with self._lock:
            if isinstance(event, CardEvent):
                self.last_card_uid = event.uid
                self._append(f"[CARD] {event.uid}")
            elif isinstance(event, ItemEvent):
                self.last_item_tag = event.tag
                self._append(f"[ITEM] {event.tag}")
            elif isinstance(event, StatusEvent):
                self._append(f"[STATUS] {json.dumps(event.payload, sort_keys=True)}")
            else:
                self._append(f"[RAW] {event.line}")

    def note(self, message: str) -> None:
        with self._lock:
            self._append(message)

    def _append(self, message: str) -> None:
        self._log.appendleft(f"[{time.strftime('%H:%M:%S')}] {message}")

    def snapshot(self) -> ScanSessionResponse:
        with self._lock:
            return ScanSessionResponse(
                last_card_uid=self.last_card_uid,
                last_item_tag=self.last_item_tag,
                log=list(self._log),
            )

    def clear(self) -> None:
        with self._lock:
            self._log.clear()
            self.last_card_uid = None
            self.last_item_tag = None
