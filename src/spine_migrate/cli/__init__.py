"""
CLI layer for spine-migrate.

Provides a Typer application that delegates to the splitter, the position
mapper and ``PostgresDriver``. This package handles only terminal
transport: argument parsing, coloured output, and exit codes.

Entry point::

    spine-migrate --help
"""

from spine_migrate.cli.app import app

__all__ = ["app"]
