"""
Map engine-reported error positions to line/column.

PostgreSQL reports the location of a syntax or semantic error as a 1-based
offset into the query text, counted in characters (code points), not bytes.
Operators think in lines and columns, so a failed migration is reported as
``line L, column N`` of the original script.

Carriage returns are treated as zero-width: a script saved with CRLF line
endings maps the same offset to the same line/column as its LF twin. Columns
are counted in code points, so ``FRÖM`` is as wide as ``FROM``.

Examples:
    >>> map_position("SELECT *\\nFROM foo", 15)
    (2, 6, True)
    >>> map_position("SELECT *\\r\\nFROM foo", 15)
    (2, 6, True)
    >>> map_position("SELECT *\\nFROM foo", 18)
    (0, 0, False)

Tags:
    diagnostics, error-position, unicode, spine-migrate
"""

from __future__ import annotations


def map_position(text: str, pos: int) -> tuple[int, int, bool]:
    """
    Convert a 1-based logical position into a 1-based ``(line, column)``.

    Args:
        text: The script the position refers to.
        pos: 1-based code-point offset, carriage returns not counted.

    Returns:
        ``(line, column, True)``, or ``(0, 0, False)`` when ``pos`` is below 1
        or past the end of the logical text. A newline at ``pos`` belongs to
        the line it terminates.
    """
    if pos < 1:
        return 0, 0, False

    line = 1
    line_start = 1
    index = 0
    for ch in text:
        if ch == "\r":
            continue
        index += 1
        if index == pos:
            return line, index - line_start + 1, True
        if ch == "\n":
            line += 1
            line_start = index + 1
    return 0, 0, False


def logical_position(text: str, raw_pos: int) -> int:
    """Convert a 1-based position that counts carriage returns into the
    zero-width-CR position expected by :func:`map_position`.

    A position landing on a carriage return moves to the character after it.
    """
    if raw_pos < 1:
        return raw_pos
    return raw_pos - text.count("\r", 0, raw_pos - 1)


__all__ = ["map_position", "logical_position"]
