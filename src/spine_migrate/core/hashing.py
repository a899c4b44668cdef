"""
Deterministic advisory-lock keys.

PostgreSQL advisory locks are keyed by a 64-bit integer chosen by the
application. Two migration runs must contend for the same key exactly when
they target the same logical schema, so the key is derived from the
database and schema names and nothing else.

Manifesto:
    - **Deterministic:** Same names always produce the same key, across
      processes, hosts and Python versions (no ``hash()`` randomisation)
    - **Scoped:** Different schemas produce different keys with
      overwhelming probability
    - **Compatible:** CRC-32 (IEEE) times a fixed salt, truncated to 32 bits,
      the key other migration tools use for the same database/schema pair

Examples:
    >>> generate_advisory_lock_id("postgres", "public") == generate_advisory_lock_id("postgres", "public")
    True
    >>> generate_advisory_lock_id("postgres", "foo") != generate_advisory_lock_id("postgres", "bar")
    True

Tags:
    hashing, advisory-lock, postgres, spine-migrate
"""

import zlib

ADVISORY_LOCK_ID_SALT = 1486364155


def generate_advisory_lock_id(database_name: str, *additional_names: str) -> int:
    """
    Compute the advisory lock id for a database and optional extra names.

    The additional names (typically the schema) come first, the database
    name last, joined by NUL so no two distinct name tuples collide by
    concatenation.

    Args:
        database_name: Name of the current database
        *additional_names: Further scoping names, e.g. the active schema

    Returns:
        Non-negative integer below 2**32, safe to pass as ``bigint``
    """
    key = database_name
    if additional_names:
        key = "\x00".join([*additional_names, database_name])
    checksum = zlib.crc32(key.encode("utf-8"))
    return (checksum * ADVISORY_LOCK_ID_SALT) & 0xFFFFFFFF


__all__ = ["ADVISORY_LOCK_ID_SALT", "generate_advisory_lock_id"]
