# =======================================================================================
# library_kiosk/schema.py - Ledger Table Definitions
# =======================================================================================
from sqlalchemy import (
    Column, Index, Integer, MetaData, SmallInteger, String, Table, UniqueConstraint,
)

metadata = MetaData()

# Timestamps are fixed-width ISO-8601 UTC strings (see utils.time_utils.to_iso)
TS = String(32)

students = Table(
    "students",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("index_number", String(50), nullable=False),
    Column("full_name", String(100), nullable=False),
    Column("program", String(100)),
    Column("level", String(50)),
    Column("phone", String(20)),
    Column("card_uid", String(50)),
    Column("created_at", TS, nullable=False),
    UniqueConstraint("index_number", name="uq_students_index_number"),
    UniqueConstraint("card_uid", name="uq_students_card_uid"),
    Index("ix_students_created_at", "created_at"),
)

loans = Table(
    "loans",
    metadata,
    # Insertion order; breaks ties between loans with identical timestamps
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(36), nullable=False),
    Column("student_index", String(50)),
    Column("user_uid", String(50)),
    Column("item_tag", String(100), nullable=False),
    Column("item_title", String(200)),
    Column("borrowed_at", TS, nullable=False),
    Column("due_at", TS, nullable=False),
    Column("returned_at", TS),
    Column("status", String(10), nullable=False),
    Column("device_id", String(100), nullable=False),
    Index("ix_loans_status_student", "status", "student_index"),
    Index("ix_loans_status_due", "status", "due_at"),
    Index("ix_loans_item_tag", "item_tag"),
    UniqueConstraint("id", name="uq_loans_id"),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_uid", String(50)),
    Column("student_index", String(50)),
    Column("item_tag", String(100), nullable=False),
    Column("action", String(10), nullable=False),
    Column("occurred_at", TS, nullable=False),
    Column("device_id", String(100), nullable=False),
    Column("synced", SmallInteger, nullable=False, default=0),
    Index("ix_transactions_synced", "synced"),
    Index("ix_transactions_occurred_at", "occurred_at"),
    Index("ix_transactions_action", "action"),
)


def remote_transactions_table(name: str = "transactions") -> Table:
    """
    Table definition used on the central database the kiosk reconciles into.
    Same identity and columns as the local log, minus the local `synced` flag.
    """
    return Table(
        name,
        MetaData(),
        Column("id", String(36), primary_key=True),
        Column("user_uid", String(50)),
        Column("student_index", String(50)),
        Column("item_tag", String(100), nullable=False),
        Column("action", String(10), nullable=False),
        Column("occurred_at", TS, nullable=False),
        Column("device_id", String(100), nullable=False),
    )
