"""Migration driver implementations."""

from spine_migrate.drivers.postgres import PostgresDriver

__all__ = ["PostgresDriver"]
