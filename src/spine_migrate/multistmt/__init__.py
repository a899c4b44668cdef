"""Multi-statement migration parsing.

Modules
-------
parser        parse() / iter_statements() / split_statements()
placeholder   <SCHEMA_NAME> substitution
statement     Statement value type
"""

from spine_migrate.multistmt.parser import (
    DEFAULT_BUFFER_SIZE,
    ParseConfig,
    iter_statements,
    parse,
    split_statements,
)
from spine_migrate.multistmt.placeholder import SCHEMA_NAME_PLACEHOLDER, substitute
from spine_migrate.multistmt.statement import Statement

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "ParseConfig",
    "iter_statements",
    "parse",
    "split_statements",
    "SCHEMA_NAME_PLACEHOLDER",
    "substitute",
    "Statement",
]
