"""Pytest configuration and shared fixtures.

Every test gets its own SQLite ledger in a temporary file, a frozen clock and
a scriptable remote, so borrow/return/sync behavior can be driven step by step.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, List, Optional

import pytest

from library_kiosk.database import DatabaseManager
from library_kiosk.models.schemas import StudentCreateRequest, Transaction, UpsertResult
from library_kiosk.services.dashboard_service import DashboardService
from library_kiosk.services.ledger_store import LedgerStore
from library_kiosk.services.loan_service import LoanService
from library_kiosk.services.remote_client import RemoteSyncer
from library_kiosk.services.student_service import StudentService
from library_kiosk.services.sync_service import SyncService
from library_kiosk.utils.exceptions import RemoteRejectedError


# ============================================================================
# Helpers
# ============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRemote(RemoteSyncer):
    """
    In-memory remote keyed by transaction id.

    `online`, `reject` and `ack_only` script how the next upsert behaves.
    """

    name = "fake"

    def __init__(self):
        self.online = True
        self.reject = False
        self.ack_only: Optional[List[str]] = None
        self.rows = {}
        self.calls = 0

    def is_reachable(self) -> bool:
        return self.online

    def upsert_transactions(self, rows: List[Transaction]) -> UpsertResult:
        self.calls += 1
        if self.reject:
            raise RemoteRejectedError("HTTP error: 500 boom")
        for tx in rows:
            if self.ack_only is None or tx.id in self.ack_only:
                self.rows[tx.id] = tx.model_dump(exclude={"synced"})
        if self.ack_only is None:
            return UpsertResult(ok=True)
        return UpsertResult(ok=True, acked_ids=[tx.id for tx in rows if tx.id in self.ack_only])


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.TemporaryDirectory() as folder:
        yield Path(folder) / "ledger.db"


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[DatabaseManager, None, None]:
    """Create a test ledger database."""
    database = DatabaseManager(f"sqlite:///{temp_db_path}")
    database.init_schema()
    yield database
    database.dispose()


@pytest.fixture
def store() -> LedgerStore:
    return LedgerStore()


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def student_service(db, store) -> StudentService:
    return StudentService(db, store)


@pytest.fixture
def loan_service(db, store, clock) -> LoanService:
    return LoanService(
        db,
        store,
        max_active_loans=3,
        default_days=14,
        min_days=1,
        max_days=365,
        due_soon_days=2,
        device_id="test-kiosk",
        clock=clock,
    )


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def sync_service(db, store, remote, clock) -> SyncService:
    return SyncService(db, remote, store, batch_limit=None, clock=clock)


@pytest.fixture
def dashboard_service(db, store) -> DashboardService:
    return DashboardService(db, store)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def alice(student_service):
    """Registered student with a card."""
    return student_service.register(StudentCreateRequest(
        index_number="IDX-ALICE",
        full_name="Alice Perera",
        program="BSc Computer Science",
        level="200",
        phone="+94 77 123 4567",
        card_uid="CARD-ALICE",
    ))


@pytest.fixture
def bob(student_service):
    """Registered student without a card."""
    return student_service.register(StudentCreateRequest(
        index_number="IDX-BOB",
        full_name="Bob Silva",
    ))
