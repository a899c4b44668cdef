"""
PostgreSQL migration driver (psycopg 3).

Owns one live connection and provides the ``MigrationDriver`` capability
set: schema-scoped advisory locking, transaction bracketing, the
single-row version register, and statement-by-statement execution of a
split migration script with source-located error reporting.

WHY
───
Two deploys racing to migrate the same schema corrupt it. A partially
applied script must be visible as such. A syntax error must point at the
line an operator can open in an editor, not at an offset into a statement
they never saw.

ARCHITECTURE
────────────
::

    PostgresDriver.with_connection(conn, config)
      ├── current_database(), current_schema()   ─ resolve scope
      ├── generate_advisory_lock_id(db, schema)  ─ lock key
      └── ensure version table (under the lock)

    .lock() / .unlock()         pg_advisory_lock / pg_advisory_unlock
    .begin() / .commit()        BEGIN / COMMIT on an autocommit connection
    .rollback()                 ROLLBACK
    .run(script)                split_statements → execute in order
                                   └─ on error: Statement.source_position
                                                → logical_position
                                                → map_position(script)
    .set_version(v, dirty)      TRUNCATE + INSERT  "<schema>"."<table>"
    .version()                  SELECT version, dirty ... LIMIT 1
    .close()                    unlock if held, close owned connection

BEST PRACTICES
──────────────
- lock() → begin() → set_version(v, True) → run() → set_version(v, False)
  → commit() → unlock().
- Always unlock() (or close()) in a ``finally``.
- A failed run() leaves the transaction open and aborted: rollback().

Example::

    with PostgresDriver.open("postgresql://postgres@localhost/app") as driver:
        driver.lock()
        try:
            driver.begin()
            driver.set_version(3, dirty=True)
            driver.run(Path("0003_users.up.sql").read_text())
            driver.set_version(3, dirty=False)
            driver.commit()
        finally:
            driver.unlock()
"""

from __future__ import annotations

import io
from typing import Any, TextIO

import psycopg
from psycopg import sql

from spine_migrate.core.errors import (
    ConfigError,
    DatabaseError,
    LockError,
    MigrationError,
    UnlockError,
)
from spine_migrate.core.hashing import generate_advisory_lock_id
from spine_migrate.core.logging import get_logger
from spine_migrate.core.models import NIL_VERSION, MigrationVersion
from spine_migrate.core.positions import logical_position, map_position
from spine_migrate.core.settings import DriverConfig
from spine_migrate.multistmt.parser import ParseConfig, split_statements
from spine_migrate.multistmt.statement import Statement

logger = get_logger(__name__)


class PostgresDriver:
    """Migration driver bound to one psycopg connection and one schema.

    Not safe for concurrent use: callers serialize access per instance.
    Separate instances on the same schema serialize through :meth:`lock`;
    instances on different schemas never contend.
    """

    def __init__(
        self,
        conn: psycopg.Connection,
        *,
        database_name: str,
        schema_name: str,
        config: DriverConfig | None = None,
        owns_connection: bool = False,
    ):
        """Initialize around an autocommit connection.

        Prefer :meth:`with_connection` or :meth:`open`, which resolve the
        database/schema names and create the version table.
        """
        self._conn = conn
        self._config = config or DriverConfig()
        self._database_name = database_name
        self._schema_name = schema_name
        self._owns_connection = owns_connection
        self._lock_id = generate_advisory_lock_id(database_name, schema_name)
        self._table = sql.Identifier(schema_name, self._config.migrations_table)
        self._is_locked = False
        self._in_transaction = False
        self._closed = False
        self._log = logger.bind(
            database=database_name,
            schema=schema_name,
            lock_id=self._lock_id,
        )

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def with_connection(
        cls,
        conn: psycopg.Connection,
        config: DriverConfig | None = None,
        *,
        owns_connection: bool = False,
    ) -> PostgresDriver:
        """Wrap an existing connection.

        The connection is switched to autocommit; :meth:`begin` is what
        opens a transaction. The version table is created if missing.

        Raises:
            ConfigError: No active schema could be resolved.
            MigrationError: The version table could not be checked or
                created (e.g. ``permission denied for schema ...``).
        """
        config = config or DriverConfig()
        conn.autocommit = True

        row = conn.execute("SELECT current_database(), current_schema()").fetchone()
        database_name, current_schema = row[0], row[1]
        schema_name = config.schema_name or current_schema
        if not schema_name:
            raise ConfigError(
                "no active schema: search_path names no existing schema"
            ).with_context(database=database_name)

        driver = cls(
            conn,
            database_name=database_name,
            schema_name=schema_name,
            config=config,
            owns_connection=owns_connection,
        )
        driver._ensure_version_table()
        return driver

    @classmethod
    def open(cls, conninfo: str, config: DriverConfig | None = None) -> PostgresDriver:
        """Connect with ``conninfo`` and wrap the new connection.

        The driver owns the connection and closes it in :meth:`close`.
        """
        try:
            conn = psycopg.connect(conninfo, autocommit=True)
        except psycopg.Error as e:
            raise DatabaseError(f"Failed to connect to PostgreSQL: {e}", cause=e) from e

        try:
            return cls.with_connection(conn, config, owns_connection=True)
        except Exception:
            conn.close()
            raise

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def database_name(self) -> str:
        return self._database_name

    @property
    def schema_name(self) -> str:
        return self._schema_name

    @property
    def lock_id(self) -> int:
        return self._lock_id

    @property
    def is_locked(self) -> bool:
        return self._is_locked

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def lock(self) -> None:
        """Block until the schema's advisory lock is held.

        There is no built-in timeout; set ``lock_timeout`` /
        ``statement_timeout`` on the connection or cancel it externally.
        """
        try:
            self._conn.execute("SELECT pg_advisory_lock(%s)", (self._lock_id,))
        except psycopg.Error as exc:
            raise LockError(f"try lock failed: {exc}", cause=exc).with_context(
                schema=self._schema_name, lock_id=self._lock_id
            ) from exc
        self._is_locked = True
        self._log.debug("driver.lock.acquired")

    def unlock(self) -> None:
        """Release the schema's advisory lock."""
        try:
            row = self._conn.execute(
                "SELECT pg_advisory_unlock(%s)", (self._lock_id,)
            ).fetchone()
        except psycopg.Error as exc:
            raise UnlockError(f"failed to unlock: {exc}", cause=exc).with_context(
                schema=self._schema_name, lock_id=self._lock_id
            ) from exc
        self._is_locked = False
        if row is not None and row[0] is False:
            self._log.warning("driver.lock.not_held")
        else:
            self._log.debug("driver.lock.released")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """Open the transaction that brackets one migration."""
        self._exec_control("BEGIN")
        self._in_transaction = True

    def commit(self) -> None:
        """Commit the transaction opened by :meth:`begin`."""
        self._exec_control("COMMIT")
        self._in_transaction = False

    def rollback(self) -> None:
        """Undo everything since :meth:`begin`, version write included."""
        self._exec_control("ROLLBACK")
        self._in_transaction = False
        self._log.info("driver.transaction.rolled_back")

    def _exec_control(self, command: str) -> None:
        try:
            self._conn.execute(command)
        except psycopg.Error as exc:
            raise DatabaseError(f"{command} failed: {exc}", cause=exc) from exc

    # ------------------------------------------------------------------
    # Running migrations
    # ------------------------------------------------------------------

    def _parse_config(self) -> ParseConfig:
        replacement = self._schema_name if self._config.replace_schema_placeholder else ""
        return ParseConfig(
            buffer_size=self._config.parse_buffer_size,
            replacement=replacement,
            trace=self._config.parse_trace,
        )

    def run(self, script: str | TextIO) -> None:
        """Split ``script`` and execute its statements in order.

        The script is read whole first: the original text is needed to
        locate errors, and a read failure must not leave a migration half
        applied. Execution stops at the first failing statement, which is
        never retried.

        Raises:
            MigrationError: A statement failed. When the server reported an
                error position, ``line`` and the ``(column N)`` suffix refer
                to the original script and ``query`` is the whole script;
                otherwise ``query`` is the failing statement.
        """
        if not isinstance(script, str):
            script = script.read()
            if isinstance(script, bytes):
                script = script.decode("utf-8")

        statements = split_statements(io.StringIO(script), self._parse_config())
        self._log.debug("driver.run.started", statements=len(statements))

        for index, statement in enumerate(statements, start=1):
            if not statement.text.strip(" \t\r\n;"):
                continue
            try:
                self._conn.execute(statement.text)
            except psycopg.Error as exc:
                error = self._statement_error(script, statement, exc)
                self._log.error(
                    "driver.run.statement_failed",
                    statement_index=index,
                    line=error.line,
                    error=error.to_dict(),
                )
                raise error from exc

        self._log.info("driver.run.completed", statements=len(statements))

    def _statement_error(
        self,
        script: str,
        statement: Statement,
        exc: psycopg.Error,
    ) -> MigrationError:
        """Build the operator-facing error for a failed statement."""
        diag: Any = getattr(exc, "diag", None)
        message = (diag.message_primary if diag is not None else None) or str(exc)
        position = diag.statement_position if diag is not None else None

        if position:
            raw = statement.source_position(int(position))
            if raw is not None:
                line, column, ok = map_position(script, logical_position(script, raw))
                if ok:
                    return MigrationError(
                        orig_err=exc,
                        err=f"migration failed: {message} (column {column})",
                        query=script,
                        line=line,
                    )

        return MigrationError(
            orig_err=exc,
            err=f"migration failed: {message}",
            query=statement.text,
        )

    # ------------------------------------------------------------------
    # Version register
    # ------------------------------------------------------------------

    def set_version(self, version: int, dirty: bool) -> None:
        """Replace the single version row.

        Inside :meth:`begin` the write joins the open transaction (and is
        undone by :meth:`rollback`); otherwise it commits on its own. The
        nil version is stored only when dirty.
        """
        if self._in_transaction:
            self._write_version(version, dirty)
        else:
            with self._conn.transaction():
                self._write_version(version, dirty)
        self._log.info("driver.version.set", version=version, dirty=dirty)

    def _write_version(self, version: int, dirty: bool) -> None:
        truncate = sql.SQL("TRUNCATE {}").format(self._table)
        try:
            self._conn.execute(truncate)
        except psycopg.Error as exc:
            raise MigrationError(orig_err=exc, query=truncate.as_string()) from exc

        # Also re-write the schema version for nil dirty versions to prevent
        # an empty schema version from failing a later migration.
        if version >= 0 or (version == NIL_VERSION and dirty):
            insert = sql.SQL("INSERT INTO {} (version, dirty) VALUES (%s, %s)").format(
                self._table
            )
            try:
                self._conn.execute(insert, (version, dirty))
            except psycopg.Error as exc:
                raise MigrationError(orig_err=exc, query=insert.as_string()) from exc

    def version(self) -> MigrationVersion:
        """Return the persisted version, or the nil version when none."""
        query = sql.SQL("SELECT version, dirty FROM {} LIMIT 1").format(self._table)
        try:
            row = self._conn.execute(query).fetchone()
        except psycopg.errors.UndefinedTable:
            return MigrationVersion()
        except psycopg.Error as exc:
            raise MigrationError(orig_err=exc, query=query.as_string()) from exc

        if row is None:
            return MigrationVersion()
        return MigrationVersion(version=int(row[0]), dirty=bool(row[1]))

    def _ensure_version_table(self) -> None:
        """Create the version table unless it already exists.

        The existence check comes first so a user without CREATE on the
        schema can still use a table provisioned for it.
        """
        self.lock()
        try:
            exists_query = (
                "SELECT COUNT(1) FROM information_schema.tables "
                "WHERE table_schema = %s AND table_name = %s LIMIT 1"
            )
            try:
                row = self._conn.execute(
                    exists_query, (self._schema_name, self._config.migrations_table)
                ).fetchone()
            except psycopg.Error as exc:
                raise MigrationError(orig_err=exc, query=exists_query) from exc
            if row is not None and row[0] == 1:
                return

            create = sql.SQL(
                "CREATE TABLE IF NOT EXISTS {} "
                "(version bigint not null primary key, dirty boolean not null)"
            ).format(self._table)
            try:
                self._conn.execute(create)
            except psycopg.Error as exc:
                raise MigrationError(orig_err=exc, query=create.as_string()) from exc
            self._log.info("driver.version_table.created", table=self._config.migrations_table)
        finally:
            self.unlock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release the lock if held, then close an owned connection.

        Valid from any state and idempotent.
        """
        if self._closed:
            return
        self._closed = True
        try:
            if self._is_locked:
                self.unlock()
        finally:
            if self._owns_connection:
                self._conn.close()
                self._log.debug("driver.connection.closed")

    def __enter__(self) -> PostgresDriver:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = ["PostgresDriver"]
