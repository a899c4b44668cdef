"""
Structured error types for spine-migrate.

Every failure the migration engine can surface is a ``MigrateError``. Each
error carries a category for routing, an explicit retry flag, free-form
context for logging, and the chained low-level cause.

Manifesto:
    - **Typed Error Hierarchy:** Parser, database and lock failures are
      distinct types, so callers can react without string matching
    - **Never Retry Migrations:** Migrations are not generally idempotent,
      so no error in this module is retryable
    - **Error Chaining:** The psycopg exception is always kept as ``cause``
    - **Operator Friendly:** ``MigrationError`` renders the line, column and
      script that failed, not just the engine's message

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                      MigrateError                         │
        │        (category, retryable, context, cause)              │
        ├──────────────────────────────────────────────────────────┤
        │                                                           │
        │  ParseError              DatabaseError       LockError    │
        │  (PARSE)                 (DATABASE)          (LOCK)       │
        │      │                       │                   │        │
        │  StatementHandlerError   MigrationError      UnlockError  │
        │                                                           │
        │  ConfigError (CONFIG)                                     │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> err = MigrationError(
    ...     orig_err=RuntimeError('pq: syntax error at or near "TABLEE"'),
    ...     err='migration failed: syntax error at or near "TABLEE" (column 8)',
    ...     query="CREATE TABLEE bar (bar text);",
    ...     line=1,
    ... )
    >>> str(err)  # doctest: +ELLIPSIS
    'migration failed: syntax error at or near "TABLEE" (column 8) in line 1: ...'

Tags:
    error-handling, exception-hierarchy, migrations, spine-migrate

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    PARSE = "PARSE"               # Splitting / reading migration text
    DATABASE = "DATABASE"         # Statement execution, version table
    LOCK = "LOCK"                 # Advisory lock acquire / release
    CONFIG = "CONFIG"             # Missing or invalid settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


class MigrateError(Exception):
    """
    Base exception for all spine-migrate errors.

    Subclasses set ``default_category``. ``retryable`` defaults to False
    everywhere: a half-applied migration must be inspected by a human
    (the version row is left ``dirty``), never replayed automatically.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MigrateError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# PARSE ERRORS
# =============================================================================


class ParseError(MigrateError):
    """Error while splitting a multi-statement migration."""

    default_category = ErrorCategory.PARSE


class StatementHandlerError(ParseError):
    """A statement handler failed; carries the statement it was given.

    Rendered as ``<statement>: <cause>``.
    """

    def __init__(self, statement: str, cause: BaseException):
        super().__init__(f"{statement}: {cause}", cause=cause)
        self.statement = statement


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(MigrateError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE


class MigrationError(DatabaseError):
    """
    A migration statement (or version-table query) failed.

    Attributes:
        orig_err: The low-level exception raised by the database driver.
        err: Human-readable summary, e.g.
            ``migration failed: syntax error at or near "x" (column 12)``.
            Empty for version-table failures.
        query: The script (or statement) that was being executed.
        line: 1-based line in ``query`` where the error was located, or
            ``None`` when the engine reported no position.
    """

    def __init__(
        self,
        orig_err: BaseException,
        err: str = "",
        query: str = "",
        line: int | None = None,
    ):
        self.orig_err = orig_err
        self.err = err
        self.query = query
        self.line = line
        super().__init__(self._render(), cause=orig_err)

    def _render(self) -> str:
        if not self.err:
            return f"{self.orig_err}: {self.query}"
        if self.line is None:
            return f"{self.err}: {self.query} (details: {self.orig_err})"
        return f"{self.err} in line {self.line}: {self.query} (details: {self.orig_err})"

    def __str__(self) -> str:
        return self._render()


# =============================================================================
# LOCK ERRORS
# =============================================================================


class LockError(MigrateError):
    """Advisory lock could not be acquired."""

    default_category = ErrorCategory.LOCK


class UnlockError(LockError):
    """Advisory lock could not be released."""


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(MigrateError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


__all__ = [
    "ErrorCategory",
    "MigrateError",
    "ParseError",
    "StatementHandlerError",
    "DatabaseError",
    "MigrationError",
    "LockError",
    "UnlockError",
    "ConfigError",
]
