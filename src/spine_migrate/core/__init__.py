"""Backend-agnostic building blocks: errors, logging, settings, positions."""

from spine_migrate.core.errors import (
    ConfigError,
    DatabaseError,
    LockError,
    MigrateError,
    MigrationError,
    ParseError,
    StatementHandlerError,
    UnlockError,
)
from spine_migrate.core.hashing import generate_advisory_lock_id
from spine_migrate.core.models import NIL_VERSION, MigrationVersion
from spine_migrate.core.positions import logical_position, map_position
from spine_migrate.core.protocols import MigrationDriver

__all__ = [
    "ConfigError",
    "DatabaseError",
    "LockError",
    "MigrateError",
    "MigrationError",
    "ParseError",
    "StatementHandlerError",
    "UnlockError",
    "generate_advisory_lock_id",
    "NIL_VERSION",
    "MigrationVersion",
    "logical_position",
    "map_position",
    "MigrationDriver",
]
