"""Shared test fixtures for Switchyard."""

import os
from collections.abc import Generator

import pytest

from switchyard import Collection, DataService, Field, FieldType, MemoryBackend, SqlBackend


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


# Skip marker for tests requiring PostgreSQL
requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install switchyard[postgresql])",
)


@pytest.fixture
def postgresql_url() -> str:
    """Get PostgreSQL URL from environment; skip when none is configured."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url or not _psycopg_available():
        pytest.skip("TEST_DATABASE_URL not set or psycopg not installed")
    return url


@pytest.fixture
def users() -> Collection:
    """A typical collection: int identity plus a few typed fields."""
    return Collection(
        name="users",
        fields=(
            Field(name="name", type=FieldType.STRING, required=True),
            Field(name="email", type=FieldType.STRING, unique=True),
            Field(name="age", type=FieldType.INT),
            Field(name="score", type=FieldType.FLOAT),
            Field(name="active", type=FieldType.BOOL, default=True),
            Field(name="tags", type=FieldType.ARRAY),
        ),
    )


@pytest.fixture
def sql_backend() -> Generator[SqlBackend, None, None]:
    """SqlBackend on SQLite in-memory."""
    backend = SqlBackend("sqlite:///:memory:")
    backend.initialize()
    yield backend
    backend.close()


@pytest.fixture
def memory_backend() -> Generator[MemoryBackend, None, None]:
    """The in-process backend."""
    backend = MemoryBackend()
    backend.initialize()
    yield backend
    backend.close()


@pytest.fixture(params=["sql", "memory"])
def backend(
    request: pytest.FixtureRequest,
) -> Generator[SqlBackend | MemoryBackend, None, None]:
    """Each backend in turn, for behavior both must share."""
    backend = SqlBackend("sqlite:///:memory:") if request.param == "sql" else MemoryBackend()
    backend.initialize()
    yield backend
    backend.close()


@pytest.fixture
def service() -> Generator[DataService, None, None]:
    """DataService over SQLite in-memory."""
    svc = DataService("sqlite:///:memory:")
    yield svc
    svc.close()


# Re-export for use in test files
__all__ = ["requires_postgresql"]
