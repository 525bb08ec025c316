"""Tests for validators, time helpers and the keyed lock."""

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from library_kiosk.utils import KeyedLock, LedgerValidator, ValidationError
from library_kiosk.utils.time_utils import parse_iso, to_iso


class TestLedgerValidator:
    """Tests for field validation and normalization."""

    def test_card_uid_is_trimmed_and_uppercased(self):
        assert LedgerValidator.card_uid("  ca4d1ce0 ") == "CA4D1CE0"
        assert LedgerValidator.card_uid("card-alice") == "CARD-ALICE"

    @pytest.mark.parametrize("value", ["", None, "abc", "X" * 51, "CA 4D", "CARD#1"])
    def test_card_uid_rejects_bad_values(self, value):
        with pytest.raises(ValidationError) as exc:
            LedgerValidator.card_uid(value)
        assert exc.value.field == "card_uid"

    def test_optional_card_uid_blank_is_none(self):
        assert LedgerValidator.optional_card_uid("   ") is None
        assert LedgerValidator.optional_card_uid(None) is None

    def test_item_tag_required(self):
        with pytest.raises(ValidationError, match="Enter item tag"):
            LedgerValidator.item_tag("   ")

    def test_item_tag_keeps_case(self):
        assert LedgerValidator.item_tag(" BK-0042/a ") == "BK-0042/a"

    def test_index_number_rules(self):
        assert LedgerValidator.index_number(" IDX_001 ") == "IDX_001"
        with pytest.raises(ValidationError):
            LedgerValidator.index_number("ab")
        with pytest.raises(ValidationError):
            LedgerValidator.index_number("IDX 001")

    def test_full_name_rules(self):
        assert LedgerValidator.full_name("Mary-Jane O'Neil") == "Mary-Jane O'Neil"
        with pytest.raises(ValidationError):
            LedgerValidator.full_name("R2D2")

    def test_phone_optional_but_checked(self):
        assert LedgerValidator.phone("") is None
        assert LedgerValidator.phone("+94 (77) 123-4567") == "+94 (77) 123-4567"
        with pytest.raises(ValidationError):
            LedgerValidator.phone("call me")

    def test_clamp_days(self):
        assert LedgerValidator.clamp_days(None, 14, 1, 365) == 14
        assert LedgerValidator.clamp_days(0, 14, 1, 365) == 1
        assert LedgerValidator.clamp_days(-5, 14, 1, 365) == 1
        assert LedgerValidator.clamp_days(1000, 14, 1, 365) == 365
        assert LedgerValidator.clamp_days(7, 14, 1, 365) == 7


class TestTimeUtils:
    """Tests for the ledger timestamp format."""

    def test_to_iso_is_fixed_width_utc(self):
        dt = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        assert to_iso(dt) == "2026-03-02T09:00:00.000000Z"

    def test_to_iso_converts_offsets(self):
        dt = datetime(2026, 3, 2, 14, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))
        assert to_iso(dt) == "2026-03-02T09:00:00.000000Z"

    def test_lexical_order_matches_time_order(self):
        a = datetime(2026, 3, 2, 9, 0, 0, 5, tzinfo=timezone.utc)
        b = datetime(2026, 3, 2, 9, 0, 1, tzinfo=timezone.utc)
        assert to_iso(a) < to_iso(b)

    def test_parse_iso_round_trip(self):
        dt = datetime(2026, 3, 2, 9, 0, 0, 123456, tzinfo=timezone.utc)
        assert parse_iso(to_iso(dt)) == dt

    def test_parse_iso_naive_is_utc(self):
        assert parse_iso("2026-03-02T09:00:00").tzinfo == timezone.utc
        assert parse_iso("") is None
        assert parse_iso(None) is None


class TestKeyedLock:
    """Tests for per-key mutual exclusion."""

    def test_same_key_is_serialized(self):
        locks = KeyedLock()
        inside = []
        overlap = []

        def worker():
            with locks.hold("IDX-ALICE"):
                inside.append(1)
                if len(inside) > 1:
                    overlap.append(True)
                time.sleep(0.01)
                inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlap == []

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        with locks.hold("a"):
            acquired = threading.Event()

            def other():
                with locks.hold("b"):
                    acquired.set()

            t = threading.Thread(target=other)
            t.start()
            assert acquired.wait(1)
            t.join()

    def test_registry_is_emptied(self):
        locks = KeyedLock()
        with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0
