"""
Fixtures for driver tests.

``FakeConnection`` stands in for a psycopg autocommit connection: it
records every executed query (``sql.Composed`` rendered to text), answers
the handful of queries the driver relies on, and raises configured
exceptions for queries containing a given fragment.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from types import SimpleNamespace
from typing import Any

import psycopg
import pytest

from spine_migrate.core.settings import DriverConfig
from spine_migrate.drivers.postgres import PostgresDriver


class FakePgError(psycopg.errors.SyntaxError):
    """A server error carrying diagnostics, as psycopg builds them."""

    def __init__(self, message: str, *, position: int | None = None):
        super().__init__(message)
        self._fake_diag = SimpleNamespace(
            message_primary=message,
            statement_position=str(position) if position is not None else None,
        )

    @property
    def diag(self) -> Any:
        return self._fake_diag


class FakeCursor:
    def __init__(self, row: tuple | None):
        self._row = row

    def fetchone(self) -> tuple | None:
        return self._row


class FakeConnection:
    """Minimal psycopg.Connection double."""

    def __init__(
        self,
        database: str = "app",
        schema: str | None = "public",
        table_exists: bool = True,
    ):
        self.database = database
        self.schema = schema
        self.table_exists = table_exists
        self.version_row: tuple | None = None
        self.unlock_result = True
        self.errors: dict[str, BaseException] = {}
        self.executed: list[tuple[str, Any]] = []
        self.autocommit = False
        self.closed = False

    @property
    def statements(self) -> list[str]:
        return [text for text, _ in self.executed]

    def execute(self, query: Any, params: Any = None) -> FakeCursor:
        text = query if isinstance(query, str) else query.as_string()
        self.executed.append((text, params))

        for fragment, exc in self.errors.items():
            if fragment in text:
                raise exc

        if "current_database()" in text:
            return FakeCursor((self.database, self.schema))
        if "information_schema.tables" in text:
            return FakeCursor((1 if self.table_exists else 0,))
        if "pg_advisory_unlock" in text:
            return FakeCursor((self.unlock_result,))
        if "pg_advisory_lock" in text:
            return FakeCursor(("",))
        if text.startswith("CREATE TABLE IF NOT EXISTS"):
            self.table_exists = True
        elif text.startswith("TRUNCATE"):
            self.version_row = None
        elif text.startswith("INSERT INTO"):
            self.version_row = tuple(params)
        elif text.startswith("SELECT version, dirty"):
            return FakeCursor(self.version_row)
        return FakeCursor(None)

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        self.executed.append(("<transaction>", None))
        yield

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def driver(fake_conn: FakeConnection) -> PostgresDriver:
    """Driver over ``fake_conn`` with the construction queries cleared."""
    drv = PostgresDriver.with_connection(fake_conn, DriverConfig())
    fake_conn.executed.clear()
    return drv


@pytest.fixture
def make_conn() -> type[FakeConnection]:
    """The ``FakeConnection`` class, for tests that need custom scope."""
    return FakeConnection


@pytest.fixture
def pg_error() -> type[FakePgError]:
    """The ``FakePgError`` class."""
    return FakePgError
