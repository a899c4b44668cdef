"""
spine-migrate: execution engine for PostgreSQL schema migrations.

Splits multi-statement migration scripts (``$$`` function bodies included),
runs them inside a version-tracked transaction under a schema-scoped
advisory lock, and reports failures at the line and column of the original
script.

Modules
-------
core.errors        MigrateError hierarchy
core.positions     map_position(): engine offset → (line, column)
core.protocols     MigrationDriver protocol
multistmt.parser   parse() / split_statements(): the statement splitter
drivers.postgres   PostgresDriver (psycopg 3)
cli                spine-migrate command line
"""

__version__ = "0.1.0"
