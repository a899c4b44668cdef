"""Reserved-token substitution inside split statements.

Migrations that must land in whichever schema the driver is scoped to can
write ``<SCHEMA_NAME>`` instead of a literal name::

    CREATE TABLE <SCHEMA_NAME>.users (id bigint primary key);
"""

from __future__ import annotations

from spine_migrate.multistmt.statement import Statement

SCHEMA_NAME_PLACEHOLDER = "<SCHEMA_NAME>"


def substitute(
    statement: Statement,
    replacement: str,
    token: str = SCHEMA_NAME_PLACEHOLDER,
) -> Statement:
    """Replace every ``token`` in ``statement`` with ``replacement``.

    Characters of the replacement inherit the source offset of the token's
    first character, so positions inside a substituted name still point at
    the placeholder in the original script. An empty replacement leaves the
    statement untouched.
    """
    if not replacement or token not in statement.text:
        return statement

    text = statement.text
    offsets = statement.source_offsets
    out_text: list[str] = []
    out_offsets: list[int] = []
    start = 0
    while True:
        hit = text.find(token, start)
        if hit < 0:
            break
        out_text.append(text[start:hit])
        out_text.append(replacement)
        if offsets:
            out_offsets.extend(offsets[start:hit])
            out_offsets.extend([offsets[hit]] * len(replacement))
        start = hit + len(token)
    out_text.append(text[start:])
    if offsets:
        out_offsets.extend(offsets[start:])

    return Statement("".join(out_text), tuple(out_offsets))


__all__ = ["SCHEMA_NAME_PLACEHOLDER", "substitute"]
