"""
Live PostgreSQL tests for the migration driver.

Requires:
- A PostgreSQL server the test user may create schemas and roles on
- ``MIGRATE_TEST_DATABASE_URL`` pointing at it

Every test works in a freshly created schema that is dropped afterwards.
"""

from __future__ import annotations

import os
import threading
import uuid
from collections.abc import Callable, Generator

import psycopg
import pytest

from spine_migrate.core.errors import MigrationError
from spine_migrate.core.models import MigrationVersion
from spine_migrate.core.settings import DriverConfig
from spine_migrate.drivers.postgres import PostgresDriver

DATABASE_URL = os.environ.get("MIGRATE_TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not DATABASE_URL, reason="MIGRATE_TEST_DATABASE_URL not set"
)


@pytest.fixture
def admin() -> Generator[psycopg.Connection, None, None]:
    conn = psycopg.connect(DATABASE_URL, autocommit=True)
    yield conn
    conn.close()


@pytest.fixture
def make_schema(admin) -> Generator[Callable[[], str], None, None]:
    created: list[str] = []

    def _make() -> str:
        name = f"mig_{uuid.uuid4().hex[:10]}"
        admin.execute(f'CREATE SCHEMA "{name}"')
        created.append(name)
        return name

    yield _make
    for name in created:
        admin.execute(f'DROP SCHEMA IF EXISTS "{name}" CASCADE')


@pytest.fixture
def connect() -> Generator[Callable[..., PostgresDriver], None, None]:
    """Open drivers scoped to a schema via ``search_path``; closes them all."""
    drivers: list[PostgresDriver] = []

    def _connect(schema: str, config: DriverConfig | None = None) -> PostgresDriver:
        conn = psycopg.connect(DATABASE_URL, autocommit=True)
        conn.execute(f'SET search_path TO "{schema}"')
        driver = PostgresDriver.with_connection(conn, config, owns_connection=True)
        drivers.append(driver)
        return driver

    yield _connect
    for driver in drivers:
        driver.close()


def table_names(admin: psycopg.Connection, schema: str) -> set[str]:
    rows = admin.execute(
        "SELECT table_name FROM information_schema.tables WHERE table_schema = %s",
        (schema,),
    ).fetchall()
    return {row[0] for row in rows}


class TestRun:
    def test_multiple_statements(self, admin, make_schema, connect):
        schema = make_schema()
        driver = connect(schema)
        driver.run("CREATE TABLE bar (bar text); CREATE TABLE baz (baz text);")
        assert table_names(admin, schema) == {"bar", "baz", "schema_migrations"}

    def test_function_body(self, admin, make_schema, connect):
        schema = make_schema()
        driver = connect(schema)
        driver.run(
            "CREATE FUNCTION add_one(i int) RETURNS int AS $$\n"
            "BEGIN\n"
            "  RETURN i + 1; -- increment\n"
            "END;\n"
            "$$ LANGUAGE plpgsql;\n"
        )
        row = admin.execute(f'SELECT "{schema}".add_one(41)').fetchone()
        assert row[0] == 42

    def test_error_located_in_script(self, make_schema, connect):
        driver = connect(make_schema())
        with pytest.raises(MigrationError) as exc_info:
            driver.run("CREATE TABLE foo (foo text); CREATE TABLEE bar (bar text);")

        assert str(exc_info.value).startswith(
            'migration failed: syntax error at or near "TABLEE" (column 37) in line 1: '
            "CREATE TABLE foo (foo text); CREATE TABLEE bar (bar text); (details: "
        )

    def test_rollback_discards_statements_and_version(self, admin, make_schema, connect):
        schema = make_schema()
        driver = connect(schema)
        driver.lock()
        driver.begin()
        driver.set_version(1, True)
        driver.run("CREATE TABLE gone (a int);")
        driver.rollback()
        driver.unlock()

        assert "gone" not in table_names(admin, schema)
        assert driver.version() == MigrationVersion()

    def test_failed_statement_aborts_transaction(self, admin, make_schema, connect):
        schema = make_schema()
        driver = connect(schema)
        driver.begin()
        with pytest.raises(MigrationError):
            driver.run("CREATE TABLE kept (a int); SELECT * FROM missing;")
        driver.rollback()
        assert "kept" not in table_names(admin, schema)


class TestVersion:
    def test_round_trip(self, make_schema, connect):
        driver = connect(make_schema())
        assert driver.version().is_nil
        driver.set_version(5, False)
        assert driver.version() == MigrationVersion(5, False)
        driver.set_version(-1, True)
        assert driver.version() == MigrationVersion(-1, True)
        driver.set_version(-1, False)
        assert driver.version().is_nil

    def test_schemas_are_isolated(self, make_schema, connect):
        first = connect(make_schema())
        second = connect(make_schema())
        first.set_version(3, False)
        assert second.version().is_nil

    def test_schema_override_and_placeholder(self, admin, make_schema, connect):
        home, target = make_schema(), make_schema()
        driver = connect(
            home,
            DriverConfig(schema_name=target, replace_schema_placeholder=True),
        )
        driver.run("CREATE TABLE <SCHEMA_NAME>.scoped (a int);")
        assert table_names(admin, target) == {"scoped", "schema_migrations"}
        assert table_names(admin, home) == set()


class TestLocking:
    def test_same_schema_serializes(self, make_schema, connect):
        schema = make_schema()
        holder = connect(schema)
        waiter = connect(schema)
        acquired = threading.Event()

        holder.lock()

        def wait_for_lock() -> None:
            waiter.lock()
            acquired.set()

        thread = threading.Thread(target=wait_for_lock)
        thread.start()
        assert not acquired.wait(0.5)

        holder.unlock()
        assert acquired.wait(10)
        thread.join(10)
        waiter.unlock()

    def test_different_schemas_do_not_contend(self, make_schema, connect):
        first = connect(make_schema())
        second = connect(make_schema())
        second._conn.execute("SET lock_timeout = '2s'")

        first.lock()
        second.lock()
        assert first.is_locked and second.is_locked
        second.unlock()
        first.unlock()

    def test_close_releases_lock(self, make_schema, connect):
        schema = make_schema()
        first = connect(schema)
        second = connect(schema)
        second._conn.execute("SET lock_timeout = '2s'")

        first.lock()
        first.close()
        second.lock()
        assert second.is_locked
        second.unlock()


class TestPermissions:
    def test_permission_denied_for_schema(self, admin, make_schema):
        schema = make_schema()
        role = f"mig_ro_{uuid.uuid4().hex[:8]}"
        try:
            admin.execute(f'CREATE ROLE "{role}" NOLOGIN')
        except psycopg.errors.InsufficientPrivilege:
            pytest.skip("test user may not create roles")

        admin.execute(f'GRANT USAGE ON SCHEMA "{schema}" TO "{role}"')
        conn = psycopg.connect(DATABASE_URL, autocommit=True)
        try:
            conn.execute(f'SET search_path TO "{schema}"')
            conn.execute(f'SET ROLE "{role}"')
            with pytest.raises(MigrationError) as exc_info:
                PostgresDriver.with_connection(conn)
            assert "permission denied for schema" in str(exc_info.value)
        finally:
            conn.close()
            admin.execute(f'DROP SCHEMA IF EXISTS "{schema}" CASCADE')
            admin.execute(f'DROP ROLE IF EXISTS "{role}"')
