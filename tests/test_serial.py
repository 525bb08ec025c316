"""Tests for reader line framing, scan events and the scan session."""

import threading
import time

import pytest

from library_kiosk.config import config
from library_kiosk.models.schemas import CardEvent, ItemEvent, RawEvent, StatusEvent
from library_kiosk.services.serial_service import LineFramer, ScanSession, parse_line
from library_kiosk.workers.serial_worker import SerialWorker


class TestParseLine:
    """Tests for turning one reader line into an event."""

    def test_card_prefix(self):
        assert parse_line("CARD_SCANNED:ca4d1ce0") == CardEvent(uid="CA4D1CE0")

    def test_item_prefix(self):
        assert parse_line("ITEM_SCANNED: BK-0042") == ItemEvent(tag="BK-0042")

    def test_json_card(self):
        assert parse_line('{"event":"card","uid":"04A21B9F"}') == CardEvent(uid="04A21B9F")

    def test_json_item(self):
        assert parse_line('{"event":"item","tag":"BOOK-7"}') == ItemEvent(tag="BOOK-7")

    def test_json_heartbeat(self):
        event = parse_line('{"event":"hb","ts":12345,"rssi":-40}')
        assert isinstance(event, StatusEvent)
        assert event.ts == "12345"
        assert event.payload == {"rssi": -40}

    @pytest.mark.parametrize("line", [
        "hello",
        "CARD_SCANNED:",
        "CARD_SCANNED:ab",
        '{"event":"card"}',
        '{"event":"door","state":"open"}',
        "{not json",
        "[1, 2]",
    ])
    def test_everything_else_is_raw(self, line):
        assert parse_line(line) == RawEvent(line=line)


class TestLineFramer:
    """Tests for newline framing."""

    def test_split_line_yields_one_event(self):
        framer = LineFramer()
        assert framer.feed(b"CARD_SCAN") == []
        assert framer.pending == b"CARD_SCAN"
        assert framer.feed(b"NED:CA4D1CE0\n") == [CardEvent(uid="CA4D1CE0")]
        assert framer.pending == b""

    def test_several_lines_in_one_read(self):
        framer = LineFramer()
        events = framer.feed(b"CARD_SCANNED:CA4D1CE0\r\n\nITEM_SCANNED:BOOK-1\nITEM_")
        assert events == [CardEvent(uid="CA4D1CE0"), ItemEvent(tag="BOOK-1")]
        assert framer.pending == b"ITEM_"

    def test_overlong_garbage_is_dropped(self):
        framer = LineFramer(max_buffer=16)
        assert framer.feed(b"x" * 32) == []
        assert framer.pending == b""
        assert framer.feed(b"CARD_SCANNED:CA4D1CE0\n") == [CardEvent(uid="CA4D1CE0")]

    def test_undecodable_bytes_are_ignored(self):
        framer = LineFramer()
        assert framer.feed(b"\xffCARD_SCANNED:CA4D1CE0\n") == [CardEvent(uid="CA4D1CE0")]

    def test_reset(self):
        framer = LineFramer()
        framer.feed(b"partial")
        framer.reset()
        assert framer.pending == b""

    def test_reset_and_pending_wait_for_feed(self):
        framer = LineFramer()
        framer.feed(b"partial")
        seen = []
        workers = [
            threading.Thread(target=framer.reset),
            threading.Thread(target=lambda: seen.append(framer.pending)),
        ]

        with framer._lock:
            for worker in workers:
                worker.start()
            time.sleep(0.05)
            assert all(worker.is_alive() for worker in workers)
            assert seen == []

        for worker in workers:
            worker.join(timeout=1)
        assert not any(worker.is_alive() for worker in workers)
        assert framer.pending == b""


class TestScanSession:
    """Tests for the kiosk scan state."""

    def test_record_tracks_last_scans(self):
        session = ScanSession()
        session.record(CardEvent(uid="CA4D1CE0"))
        session.record(ItemEvent(tag="BOOK-1"))
        session.record(RawEvent(line="noise"))

        snap = session.snapshot()
        assert snap.last_card_uid == "CA4D1CE0"
        assert snap.last_item_tag == "BOOK-1"
        assert len(snap.log) == 3
        assert snap.log[0].endswith("[RAW] noise")
        assert snap.log[2].endswith("[CARD] CA4D1CE0")

    def test_log_is_bounded(self):
        session = ScanSession(max_log=5)
        for n in range(10):
            session.note(f"line {n}")
        log = session.snapshot().log
        assert len(log) == 5
        assert log[0].endswith("line 9")

    def test_clear(self):
        session = ScanSession()
        session.record(CardEvent(uid="CA4D1CE0"))
        session.clear()
        snap = session.snapshot()
        assert snap.last_card_uid is None
        assert snap.log == []


class TestSerialWorker:
    """Tests for the reader worker without opening a port."""

    def test_dispatch_records_and_forwards(self):
        seen = []
        session = ScanSession()
        worker = SerialWorker(session, on_event=seen.append, port="/dev/null")

        assert worker.dispatch(b"CARD_SCANNED:CA4D1CE0\nITEM_SC") == 1
        assert worker.dispatch(b"ANNED:BOOK-1\n") == 1

        assert seen == [CardEvent(uid="CA4D1CE0"), ItemEvent(tag="BOOK-1")]
        assert session.snapshot().last_item_tag == "BOOK-1"

    def test_handler_errors_do_not_stop_dispatch(self):
        def explode(event):
            raise RuntimeError("handler broke")

        session = ScanSession()
        worker = SerialWorker(session, on_event=explode, port="/dev/null")
        assert worker.dispatch(b"CARD_SCANNED:CA4D1CE0\nCARD_SCANNED:04A21B9F\n") == 2
        assert session.snapshot().last_card_uid == "04A21B9F"

    def test_disabled_does_not_start(self, monkeypatch):
        monkeypatch.setattr(config, "SERIAL_ENABLED", False)
        worker = SerialWorker(ScanSession(), port="/dev/null")
        worker.start()
        assert worker.running is False

    def test_no_port_does_not_start(self, monkeypatch):
        monkeypatch.setattr(config, "SERIAL_ENABLED", True)
        monkeypatch.setattr(config, "SERIAL_PORT", "")
        worker = SerialWorker(ScanSession())
        worker.start()
        assert worker.running is False
