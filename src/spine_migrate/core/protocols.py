"""
Canonical protocol for migration drivers.

The statement splitter and the position mapper are backend-agnostic. The
only backend-specific surface is the driver: locking, statement execution,
transaction bracketing and the version register. It is defined once here so
an alternate backend can be substituted without touching either.

Architecture:
    ::

        MigrationDriver
        ┌────────────────────────────────────────────────────────┐
        │ lock() / unlock()        → schema-scoped mutual excl.  │
        │ begin() / commit()       → transaction bracketing      │
        │ rollback()               → undo DDL and version write  │
        │ run(script)              → split + execute in order    │
        │ set_version(v, dirty)    → replace the version row     │
        │ version()                → read the version row        │
        │ close()                  → release lock + connection   │
        └────────────────────────────────────────────────────────┘

        State machine (per instance):
            Unlocked ─lock()→ Locked ─(run, set_version)*→ ─unlock()→ Unlocked

    Implementations:
        spine_migrate.drivers.postgres.PostgresDriver

Guardrails:
    ❌ DON'T: Share one driver instance between threads
    ✅ DO: Open one driver per concurrent run; they coordinate via lock()

    ❌ DON'T: Run migrations without holding lock()
    ✅ DO: lock() → begin() → ... → commit()/rollback() → unlock()

Tags:
    protocol, driver, migrations, spine-migrate

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from typing import Protocol, TextIO, runtime_checkable

from spine_migrate.core.models import MigrationVersion


@runtime_checkable
class MigrationDriver(Protocol):
    """Capability set every migration backend provides."""

    def lock(self) -> None:
        """Block until the schema-scoped advisory lock is held."""
        ...

    def unlock(self) -> None:
        """Release the lock taken by :meth:`lock`."""
        ...

    def begin(self) -> None:
        """Open the transaction that brackets one migration."""
        ...

    def commit(self) -> None:
        """Commit the transaction opened by :meth:`begin`."""
        ...

    def rollback(self) -> None:
        """Abandon the transaction opened by :meth:`begin`."""
        ...

    def run(self, script: str | TextIO) -> None:
        """Split ``script`` and execute its statements in order."""
        ...

    def set_version(self, version: int, dirty: bool) -> None:
        """Replace the single version row."""
        ...

    def version(self) -> MigrationVersion:
        """Return the persisted version, or the nil version."""
        ...

    def close(self) -> None:
        """Release the lock if held and the connection if owned."""
        ...


__all__ = ["MigrationDriver"]
