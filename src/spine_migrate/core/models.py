"""Version-tracking value types."""

from __future__ import annotations

from dataclasses import dataclass

# Version reported when the version table holds no row.
NIL_VERSION = -1


@dataclass(frozen=True)
class MigrationVersion:
    """Persisted state of a schema: the last applied version and whether
    the attempt that wrote it finished.

    ``dirty=True`` means a migration started but never confirmed
    completion; the schema needs manual attention before the next run.
    """

    version: int = NIL_VERSION
    dirty: bool = False

    @property
    def is_nil(self) -> bool:
        return self.version == NIL_VERSION


__all__ = ["NIL_VERSION", "MigrationVersion"]
