"""Tests for the outbox sync engine and the remote clients."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests
from sqlalchemy import func, select

from library_kiosk.config import config
from library_kiosk.models.enums import SyncStatus
from library_kiosk.models.schemas import Transaction
from library_kiosk.services.ledger_store import LedgerStore
from library_kiosk.services.remote_client import (
    DatabaseSyncer, HttpSyncer, NullSyncer, build_remote_syncer,
)
from library_kiosk.services.sync_service import SyncService
from library_kiosk.utils.exceptions import (
    RemoteRejectedError, RemoteUnreachableError, StorageUnavailableError,
)
from library_kiosk.workers.sync_worker import SyncWorker


def _unsynced(sync_service):
    return sync_service.unsynced_count()


class UnreadableOutboxStore(LedgerStore):
    """Ledger whose outbox read fails like a locked database."""

    def unsynced_transactions(self, conn, limit=None):
        raise StorageUnavailableError("database is locked")


@pytest.fixture
def activity(loan_service, alice, bob):
    """Three ledger writes waiting in the outbox."""
    loan, _ = loan_service.borrow("BOOK-1", card_uid="CARD-ALICE")
    loan_service.borrow("BOOK-2", student_index="IDX-BOB")
    loan_service.return_loan(loan.id)


class TestSyncService:
    """Tests for one sync cycle."""

    def test_idle_when_outbox_empty(self, sync_service, remote):
        report = sync_service.run_once()
        assert report.status == SyncStatus.IDLE
        assert remote.calls == 0
        assert sync_service.last_status is None

    def test_offline_then_online(self, sync_service, remote, activity):
        remote.online = False
        report = sync_service.run_once()
        assert report.status == SyncStatus.OFFLINE
        assert _unsynced(sync_service) == 3
        assert remote.calls == 0

        remote.online = True
        report = sync_service.run_once()
        assert report.status == SyncStatus.SUCCESS
        assert (report.submitted, report.synced) == (3, 3)
        assert _unsynced(sync_service) == 0
        assert len(remote.rows) == 3

    def test_failure_keeps_rows_for_retry(self, sync_service, remote, activity):
        remote.reject = True
        report = sync_service.run_once()
        assert report.status == SyncStatus.FAILED
        assert "500" in report.error
        assert _unsynced(sync_service) == 3
        assert sync_service.last_error == report.error

        remote.reject = False
        assert sync_service.run_once().status == SyncStatus.SUCCESS
        assert _unsynced(sync_service) == 0
        assert sync_service.last_error is None
        assert sync_service.last_success_at is not None

    def test_resending_is_idempotent(self, db, store, sync_service, remote, activity):
        sync_service.run_once()
        before = dict(remote.rows)

        # Force the same rows through again
        with db.get_connection() as conn:
            txs = store.list_transactions(conn, limit=None)
        remote.upsert_transactions(txs)

        assert remote.rows == before

    def test_partial_ack_marks_only_acked(self, db, store, sync_service, remote, activity):
        with db.get_connection() as conn:
            first = store.unsynced_transactions(conn)[0]
        remote.ack_only = [first.id]

        report = sync_service.run_once()
        assert report.status == SyncStatus.SUCCESS
        assert (report.submitted, report.synced) == (3, 1)
        assert _unsynced(sync_service) == 2

        remote.ack_only = None
        assert sync_service.run_once().synced == 2
        assert _unsynced(sync_service) == 0

    def test_batch_limit(self, db, store, remote, clock, activity):
        service = SyncService(db, remote, store, batch_limit=2, clock=clock)
        assert service.run_once().submitted == 2
        assert service.run_once().submitted == 1
        assert service.run_once().status == SyncStatus.IDLE

    def test_skipped_while_in_flight(self, sync_service, remote, activity):
        nested = []
        original = remote.upsert_transactions

        def reentrant_upsert(rows):
            nested.append(sync_service.run_once())
            assert sync_service.in_flight
            return original(rows)

        remote.upsert_transactions = reentrant_upsert
        report = sync_service.run_once()

        assert report.status == SyncStatus.SUCCESS
        assert [r.status for r in nested] == [SyncStatus.SKIPPED]
        assert not sync_service.in_flight

    def test_new_writes_during_sync_stay_unsynced(self, sync_service, remote, loan_service, activity):
        original = remote.upsert_transactions

        def upsert_then_borrow(rows):
            result = original(rows)
            loan_service.borrow("BOOK-9", student_index="IDX-BOB")
            return result

        remote.upsert_transactions = upsert_then_borrow
        report = sync_service.run_once()

        assert report.synced == 3
        assert _unsynced(sync_service) == 1

    def test_status(self, sync_service, remote, activity, clock):
        remote.online = False
        sync_service.run_once()

        status = sync_service.get_status(enabled=True, paused=False)
        assert status.remote == "fake"
        assert status.unsynced == 3
        assert status.last_status == SyncStatus.OFFLINE
        assert status.last_attempt_at == clock.now
        assert status.last_success_at is None
        assert status.in_flight is False

    def test_storage_failure_is_recorded(self, db, remote, clock, activity):
        service = SyncService(db, remote, UnreadableOutboxStore(), batch_limit=None, clock=clock)
        with pytest.raises(StorageUnavailableError):
            service.run_once()

        assert service.last_status == SyncStatus.FAILED
        assert service.last_error == "database is locked"
        assert service.last_attempt_at == clock.now
        assert service.last_success_at is None
        assert not service.in_flight
        assert remote.calls == 0


class TestSyncWorker:
    """Tests for the timer wrapper."""

    def test_tick_runs_cycle(self, sync_service, activity):
        worker = SyncWorker(sync_service, interval=60)
        assert worker.tick().status == SyncStatus.SUCCESS

    def test_paused_tick_does_nothing(self, sync_service, remote, activity):
        worker = SyncWorker(sync_service, interval=60)
        worker.pause()
        assert worker.tick() is None
        assert remote.calls == 0

        worker.resume()
        assert worker.tick().status == SyncStatus.SUCCESS

    def test_tick_survives_crash(self):
        broken = MagicMock()
        broken.run_once.side_effect = RuntimeError("disk on fire")
        worker = SyncWorker(broken, interval=60)
        assert worker.tick() is None

    def test_start_and_stop(self, sync_service, monkeypatch):
        monkeypatch.setattr(config, "SYNC_ENABLED", True)
        worker = SyncWorker(sync_service, interval=0.01)
        worker.start()
        assert worker.running
        worker.stop()
        assert not worker.running

    def test_disabled_does_not_start(self, sync_service, monkeypatch):
        monkeypatch.setattr(config, "SYNC_ENABLED", False)
        worker = SyncWorker(sync_service, interval=0.01)
        worker.start()
        assert not worker.running


# ============================================================================
# Remote clients
# ============================================================================


def _tx(tx_id="tx-1", item_tag="BOOK-1", synced=0):
    return Transaction(
        id=tx_id,
        user_uid="CARD-ALICE",
        student_index="IDX-ALICE",
        item_tag=item_tag,
        action="BORROW",
        occurred_at=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
        device_id="test-kiosk",
        synced=synced,
    )


class TestNullSyncer:

    def test_never_reachable(self):
        syncer = NullSyncer()
        assert syncer.is_reachable() is False
        with pytest.raises(RemoteUnreachableError):
            syncer.upsert_transactions([_tx()])


class TestHttpSyncer:
    """Tests for the REST upsert client."""

    @pytest.fixture
    def client(self):
        syncer = HttpSyncer("https://remote.example/", api_key="secret", table="transactions")
        syncer._session = MagicMock()
        return syncer

    def _response(self, payload=None, status_code=201):
        response = MagicMock()
        response.ok = 200 <= status_code < 300
        response.status_code = status_code
        response.content = b"x" if payload is not None else b""
        response.json.return_value = payload
        response.text = str(payload)
        if not response.ok:
            response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=response)
        return response

    def test_reachable_on_status_ok(self, client):
        client._session.get.return_value = self._response(status_code=200, payload={})
        assert client.is_reachable() is True
        client._session.get.assert_called_once_with("https://remote.example/status", timeout=5)

    def test_unreachable_on_timeout(self, client):
        client._session.get.side_effect = requests.exceptions.ConnectTimeout()
        assert client.is_reachable() is False

    def test_upsert_request_shape(self, client):
        client._session.post.return_value = self._response(payload=[{"id": "tx-1"}])

        result = client.upsert_transactions([_tx()])

        assert result.ok
        assert result.acked_ids == ["tx-1"]
        args, kwargs = client._session.post.call_args
        assert args[0] == "https://remote.example/rest/v1/transactions"
        assert kwargs["params"] == {"on_conflict": "id"}
        assert "resolution=merge-duplicates" in kwargs["headers"]["Prefer"]
        assert kwargs["json"] == [{
            "id": "tx-1",
            "user_uid": "CARD-ALICE",
            "student_index": "IDX-ALICE",
            "item_tag": "BOOK-1",
            "action": "BORROW",
            "occurred_at": "2026-03-02T09:00:00.000000Z",
            "device_id": "test-kiosk",
        }]

    def test_empty_body_acks_whole_batch(self, client):
        client._session.post.return_value = self._response(payload=None)
        assert client.upsert_transactions([_tx()]).acked_ids is None

    def test_connection_error_is_unreachable(self, client):
        client._session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(RemoteUnreachableError):
            client.upsert_transactions([_tx()])

    def test_timeout_is_unreachable(self, client):
        client._session.post.side_effect = requests.exceptions.Timeout()
        with pytest.raises(RemoteUnreachableError):
            client.upsert_transactions([_tx()])

    def test_http_error_is_rejected(self, client):
        client._session.post.return_value = self._response(payload={"message": "bad"}, status_code=400)
        with pytest.raises(RemoteRejectedError, match="400"):
            client.upsert_transactions([_tx()])


class TestDatabaseSyncer:
    """Tests for reconciling into a central SQL database."""

    @pytest.fixture
    def syncer(self, tmp_path):
        syncer = DatabaseSyncer(f"sqlite:///{tmp_path / 'central.db'}", table="transactions")
        yield syncer
        syncer.close()

    def _rows(self, syncer):
        with syncer.engine.connect() as conn:
            return conn.execute(select(syncer.table).order_by(syncer.table.c.id)).mappings().all()

    def test_reachable(self, syncer):
        assert syncer.is_reachable() is True

    def test_upsert_is_idempotent(self, syncer):
        batch = [_tx("tx-1"), _tx("tx-2")]
        syncer.upsert_transactions(batch)
        syncer.upsert_transactions(batch)

        rows = self._rows(syncer)
        assert [r["id"] for r in rows] == ["tx-1", "tx-2"]
        assert "synced" not in rows[0]

    def test_upsert_replaces_by_id(self, syncer):
        syncer.upsert_transactions([_tx("tx-1", item_tag="BOOK-1")])
        syncer.upsert_transactions([_tx("tx-1", item_tag="BOOK-1A")])

        rows = self._rows(syncer)
        assert len(rows) == 1
        assert rows[0]["item_tag"] == "BOOK-1A"

    def test_full_cycle_against_central_db(self, db, store, syncer, clock, activity):
        service = SyncService(db, syncer, store, batch_limit=None, clock=clock)
        assert service.run_once().synced == 3

        with syncer.engine.connect() as conn:
            assert conn.execute(select(func.count()).select_from(syncer.table)).scalar_one() == 3


class TestBuildRemoteSyncer:
    """Tests for picking the remote from configuration."""

    def test_none_configured(self, monkeypatch):
        monkeypatch.setattr(config, "REMOTE_DB_URL", None)
        monkeypatch.setattr(config, "REMOTE_URL", None)
        assert isinstance(build_remote_syncer(), NullSyncer)

    def test_http(self, monkeypatch):
        monkeypatch.setattr(config, "REMOTE_DB_URL", None)
        monkeypatch.setattr(config, "REMOTE_URL", "https://remote.example")
        syncer = build_remote_syncer()
        assert isinstance(syncer, HttpSyncer)
        syncer.close()

    def test_database_wins(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config, "REMOTE_DB_URL", f"sqlite:///{tmp_path / 'central.db'}")
        monkeypatch.setattr(config, "REMOTE_URL", "https://remote.example")
        syncer = build_remote_syncer()
        assert isinstance(syncer, DatabaseSyncer)
        syncer.close()
