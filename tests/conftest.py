"""Root conftest: in-memory SQLite schema, pinned clock and model factories."""

from __future__ import annotations

from datetime import date, datetime

import pytest
from sqlalchemy import Connection, create_engine, event, text
from sqlalchemy.engine import Engine

from contas.clock import FixedClock
from contas.constants import SP_TZ
from contas.models.bill import Bill, BillDraft, Category, EntityRef
from contas.repositories.memory import InMemoryBillStore
from contas.services.session import SessionContext
from contas.storage.memory import MemoryKeyValueStore

# Matches Alembic head: 3f1c2a9b7d10
SCHEMA_DDL = """
CREATE TABLE recurrence_series (
    id VARCHAR(64) PRIMARY KEY,
    scope VARCHAR(255) NOT NULL,
    start_date VARCHAR(10) NOT NULL,
    end_date VARCHAR(10) NOT NULL,
    interval_months INTEGER NOT NULL,
    count INTEGER NOT NULL,
    frequency VARCHAR(10) NOT NULL,
    anchor_day INTEGER NOT NULL,
    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE bills (
    id VARCHAR(64) PRIMARY KEY,
    scope VARCHAR(255) NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    amount FLOAT NOT NULL DEFAULT 0,
    due_date VARCHAR(10),
    category VARCHAR(20),
    category_ref_id VARCHAR(64),
    category_ref_label TEXT,
    counterparty_id VARCHAR(64),
    counterparty_label TEXT,
    is_protocoled BOOLEAN NOT NULL DEFAULT 0,
    protocoled_at DATETIME,
    invoice_number TEXT,
    boleto_number TEXT,
    series_id VARCHAR(64) REFERENCES recurrence_series(id),
    competency VARCHAR(7),
    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE bill_links (
    parent_id VARCHAR(64) NOT NULL,
    kind VARCHAR(40) NOT NULL,
    child_id VARCHAR(64) NOT NULL,
    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (parent_id, kind, child_id)
);
"""

NOW = datetime(2025, 3, 10, 9, 30, tzinfo=SP_TZ)


@pytest.fixture()
def db_engine() -> Engine:
    engine = create_engine("sqlite:///:memory:")

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    return engine


@pytest.fixture()
def db_connection(db_engine: Engine) -> Connection:
    conn = db_engine.connect()
    for statement in SCHEMA_DDL.strip().split(";"):
        stmt = statement.strip()
        if stmt:
            conn.execute(text(stmt))
    conn.commit()
    yield conn
    conn.close()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture()
def memory_store() -> InMemoryBillStore:
    return InMemoryBillStore()


@pytest.fixture()
def context(memory_store: InMemoryBillStore, clock: FixedClock) -> SessionContext:
    return SessionContext(memory_store, MemoryKeyValueStore(), "ti@empresa.com.br", clock)


def _sample_bill(**overrides) -> Bill:
    defaults = dict(
        id="bill-1",
        name="Internet Fibra",
        description="Link principal",
        amount=450.0,
        due_date=date(2025, 3, 15),
        category=Category.INTERNET,
        counterparty=EntityRef(id="emp-1", label="Vivo"),
        created_at=datetime(2025, 3, 1, 10, 0, tzinfo=SP_TZ),
    )
    defaults.update(overrides)
    return Bill(**defaults)


def _sample_draft(**overrides) -> BillDraft:
    defaults = dict(
        name="ISP",
        description="Link dedicado",
        amount=450.0,
        due_date=date(2025, 3, 12),
        category=Category.INTERNET,
    )
    defaults.update(overrides)
    return BillDraft(**defaults)


@pytest.fixture()
def sample_bill():
    return _sample_bill


@pytest.fixture()
def sample_draft():
    return _sample_draft
