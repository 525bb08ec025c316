# =======================================================================================
# library_kiosk/services/remote_client.py - Remote Reconciliation Clients
# =======================================================================================
"""
Remote reconciliation endpoints for the transaction outbox.

Every implementation upserts by transaction `id`, so re-sending a batch that
was already stored replaces each row with identical content and has no second
effect. Failures raise RemoteUnreachableError / RemoteRejectedError; callers
treat both as "try again next tick".
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import requests
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..config import config
from ..models.schemas import Transaction, UpsertResult
from ..schema import remote_transactions_table
from ..utils.exceptions import RemoteRejectedError, RemoteUnreachableError
from ..utils.time_utils import to_iso

logger = logging.getLogger(__name__)

_REMOTE_FIELDS = ("id", "user_uid", "student_index", "item_tag", "action", "occurred_at", "device_id")


def _remote_row(tx: Transaction) -> dict:
    row = {field: getattr(tx, field) for field in _REMOTE_FIELDS}
    row["occurred_at"] = to_iso(tx.occurred_at)
    return row


class RemoteSyncer(ABC):
    """Capability the sync engine pushes batches through."""

    name = "remote"

    @abstractmethod
    def is_reachable(self) -> bool:
        """Cheap bounded reachability check. Must not raise."""

    @abstractmethod
    def upsert_transactions(self, rows: List[Transaction]) -> UpsertResult:
        """Insert-or-replace every row keyed by id."""

    def close(self) -> None:
        pass


class NullSyncer(RemoteSyncer):
    """Used when no remote is configured: records stay in the local outbox."""

    name = "disabled"

    def is_reachable(self) -> bool:
        return False

    def upsert_transactions(self, rows: List[Transaction]) -> UpsertResult:
        raise RemoteUnreachableError("Remote sync not configured")


class HttpSyncer(RemoteSyncer):
    """REST upsert client (PostgREST-style `on_conflict=id` + merge-duplicates)."""

    name = "http"
    REST_PATH = "/rest/v1/"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        table: str = "transactions",
        status_path: str = "/status",
        timeout: float = 5,
    ):
        """Initialize client.

        Args:
            base_url: Remote project URL, without trailing path
            api_key: Sent as `apikey` and bearer token when given
            table: Remote table the outbox is reconciled into
            status_path: Path answering GET with 2xx while the remote is up
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.status_path = status_path
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "User-Agent": "LibraryKiosk/1.0",
        })
        if api_key:
            self._session.headers.update({
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            })

    @property
    def upsert_url(self) -> str:
        return f"{self.base_url}{self.REST_PATH}{self.table}"

    def is_reachable(self) -> bool:
        try:
            response = self._session.get(self.base_url + self.status_path, timeout=self.timeout)
            return response.ok
        except requests.exceptions.RequestException as e:
            logger.debug("Remote status check failed: %s", e)
            return False

    def upsert_transactions(self, rows: List[Transaction]) -> UpsertResult:
        payload = [_remote_row(tx) for tx in rows]
        try:
            response = self._session.post(
                self.upsert_url,
                params={"on_conflict": "id"},
                json=payload,
                headers={"Prefer": "resolution=merge-duplicates,return=representation"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout:
            raise RemoteUnreachableError("Upsert timed out")
        except requests.exceptions.ConnectionError as e:
            raise RemoteUnreachableError(f"Upsert failed: {e}")
        except requests.exceptions.HTTPError as e:
            body = e.response.text[:200] if e.response is not None else ""
            status = e.response.status_code if e.response is not None else "?"
            raise RemoteRejectedError(f"HTTP error: {status} {body}".strip())
        except requests.exceptions.RequestException as e:
            raise RemoteUnreachableError(f"Upsert failed: {e}")

        return UpsertResult(ok=True, acked_ids=self._acked_ids(response))

    @staticmethod
    def _acked_ids(response: requests.Response) -> Optional[List[str]]:
        """Ids echoed back in the representation; None when the body carries no per-row data."""
        if not response.content:
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, list):
            return None
        return [str(row["id"]) for row in data if isinstance(row, dict) and "id" in row]

    def close(self) -> None:
        self._session.close()


class DatabaseSyncer(RemoteSyncer):
    """Reconciles the outbox straight into a central SQL database."""

    name = "database"

    def __init__(self, url: str, table: str = "transactions", timeout: float = 5):
        self.url = url
        self.table = remote_transactions_table(table)
        self.engine = create_engine(
            url, pool_pre_ping=True, connect_args=_connect_timeout_args(url, timeout), future=True
        )
        self._schema_ready = False

    def is_reachable(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.debug("Remote database check failed: %s", e)
            return False

    def upsert_transactions(self, rows: List[Transaction]) -> UpsertResult:
        values = [_remote_row(tx) for tx in rows]
        if not values:
            return UpsertResult(ok=True, acked_ids=[])
        try:
            if not self._schema_ready:
                self.table.metadata.create_all(self.engine)
                self._schema_ready = True
            with self.engine.begin() as conn:
                self._upsert(conn, values)
        except OperationalError as e:
            raise RemoteUnreachableError(f"Remote database unavailable: {e.orig or e}")
        except SQLAlchemyError as e:
            raise RemoteRejectedError(f"Remote database rejected batch: {e}")
        return UpsertResult(ok=True)

    def _upsert(self, conn, values: List[dict]) -> None:
        dialect = self.engine.dialect.name
        update_cols = [c for c in _REMOTE_FIELDS if c != "id"]

        if dialect in ("sqlite", "postgresql"):
            if dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert
            else:
                from sqlalchemy.dialects.postgresql import insert
            stmt = insert(self.table).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={col: stmt.excluded[col] for col in update_cols},
            )
            conn.execute(stmt)
        elif dialect in ("mysql", "mariadb"):
            from sqlalchemy.dialects.mysql import insert
            stmt = insert(self.table).values(values)
            stmt = stmt.on_duplicate_key_update({col: stmt.inserted[col] for col in update_cols})
            conn.execute(stmt)
        else:
            # Replace-by-identity for dialects without a native upsert
            ids = [v["id"] for v in values]
            conn.execute(self.table.delete().where(self.table.c.id.in_(ids)))
            conn.execute(self.table.insert(), values)

    def close(self) -> None:
        self.engine.dispose()


def _connect_timeout_args(url: str, timeout: float) -> dict:
    if url.startswith("sqlite"):
        return {"timeout": timeout, "check_same_thread": False}
    if url.startswith("postgresql"):
        return {"connect_timeout": max(1, int(timeout))}
    if url.startswith("mysql") or url.startswith("mariadb"):
        t = max(1, int(timeout))
        return {"connect_timeout": t, "read_timeout": t, "write_timeout": t}
    return {}


def build_remote_syncer() -> RemoteSyncer:
    """Pick the remote from configuration: central database, REST endpoint, or none."""
    if config.REMOTE_DB_URL:
        return DatabaseSyncer(config.REMOTE_DB_URL, config.REMOTE_TABLE, config.REMOTE_TIMEOUT)
    if config.REMOTE_URL:
        return HttpSyncer(
            config.REMOTE_URL,
            api_key=config.REMOTE_API_KEY,
            table=config.REMOTE_TABLE,
            status_path=config.REMOTE_STATUS_PATH,
            timeout=config.REMOTE_TIMEOUT,
        )
    logger.info("No remote configured; transactions stay in the local outbox")
    return NullSyncer()
