"""
Shared pytest fixtures and configuration for spine-migrate tests.

This module provides:
- Auto-marking of unit vs integration tests by location
- Quiet, uncached structlog configuration per test
- Settings cache reset for env-driven tests
- ``write_sql`` for tests that need a migration file on disk

Usage:
    Fixtures are auto-discovered by pytest; use them as function arguments.
"""

import logging
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

# Ensure spine_migrate package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from spine_migrate.core.settings import reset_settings


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def quiet_structlog() -> Generator[None, None, None]:
    """
    Route structlog to stderr at WARNING and disable logger caching.

    Keeps command output on stdout clean and lets individual tests
    reconfigure (or capture) logging without fighting cached loggers.
    """
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def clean_settings() -> Generator[None, None, None]:
    """Drop the cached ``MigrateSettings`` before and after each test."""
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# File Fixtures
# =============================================================================


@pytest.fixture
def write_sql(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a migration file under ``tmp_path`` and return its path.

    Content is written byte-for-byte (no newline translation), so CRLF
    scripts stay CRLF.
    """

    def _write(content: str, name: str = "0001_init.up.sql") -> Path:
        path = tmp_path / name
        path.write_bytes(content.encode("utf-8"))
        return path

    return _write
