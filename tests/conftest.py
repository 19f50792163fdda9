from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["REMINDER_SCHEDULER_ENABLED"] = "false"

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from procurement.api.deps import get_material_creator, get_sms_sender
from procurement.core.db import get_db
from procurement.main import app
from procurement.models.base import Base
from procurement.services.material import create_material_from_purchase_order


# In-memory SQLite shared across connections
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    future=True,
)


# pysqlite needs these hooks for SAVEPOINT to behave, see the SQLAlchemy
# "Serializable isolation / Savepoints / Transactional DDL" notes.
@event.listens_for(engine, "connect")
def _do_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _do_begin(conn):
    conn.exec_driver_sql("BEGIN")


SessionTesting = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingSmsSender:
    """Collects outgoing SMS instead of calling a gateway."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def send(self, to: str, message: str) -> bool:
        self.messages.append((to, message))
        return True


@pytest.fixture(scope="session", autouse=True)
def create_test_database() -> Generator[None, None, None]:
    """Create/drop all tables once per test session."""
    Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator:
    """Provide a transactional SQLAlchemy Session for each test.

    Services commit and roll back freely; those operate on savepoints inside
    an outer transaction that is rolled back afterwards.
    """
    connection = engine.connect()
    trans = connection.begin()
    session = SessionTesting(bind=connection, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        trans.rollback()
        connection.close()


@pytest.fixture
def sms_sender() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest.fixture
def material_calls() -> list[int]:
    return []


@pytest.fixture
def client(db_session, sms_sender, material_calls):
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    def _material_creator(db, order, **kwargs):
        material_calls.append(order.id)
        return create_material_from_purchase_order(db, order, **kwargs)

    app.dependency_overrides[get_db] = _get_db_override
    app.dependency_overrides[get_sms_sender] = lambda: sms_sender
    app.dependency_overrides[get_material_creator] = lambda: _material_creator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
