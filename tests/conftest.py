"""Shared test fixtures for batchorm."""

import os
from collections.abc import Generator

import pytest
from sqlalchemy import event

from batchorm import Database, Manager, SchemaMapper
from batchorm.mapping.metadata import clear_metadata_cache


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install batchorm[postgresql])",
)


@pytest.fixture(autouse=True)
def _fresh_metadata() -> Generator[None, None, None]:
    """Every test derives model metadata from scratch."""
    clear_metadata_cache()
    yield
    clear_metadata_cache()


@pytest.fixture
def postgresql_url() -> str:
    """PostgreSQL URL from TEST_DATABASE_URL; skips when unset or unreachable."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    if not _psycopg_available():
        pytest.skip("psycopg not installed")
    return url


@pytest.fixture
def memory_db() -> Generator[Database, None, None]:
    """Database backed by SQLite in-memory."""
    database = Database("sqlite:///:memory:", table_prefix="")
    yield database
    database.close()


@pytest.fixture
def mapper(memory_db: Database) -> SchemaMapper:
    return memory_db.mapper()


@pytest.fixture
def uow(memory_db: Database) -> Manager:
    return memory_db.unit_of_work()


@pytest.fixture
def statements(memory_db: Database) -> Generator[list[str], None, None]:
    """SQL text of every statement sent to the driver after the fixture is set up."""
    executed: list[str] = []

    def record(conn, cursor, statement, parameters, context, executemany):
        executed.append(statement)

    engine = memory_db.executor.engine
    event.listen(engine, "before_cursor_execute", record)
    yield executed
    event.remove(engine, "before_cursor_execute", record)


__all__ = ["requires_postgresql"]
