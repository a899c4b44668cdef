"""The unit of execution produced by the splitter."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Statement:
    """
    One executable statement cut from a migration script.

    The splitter drops comments and the newlines that end them, so a
    statement is generally not a verbatim substring of its script.
    ``source_offsets`` records, for every character of ``text``, the 0-based
    code-point index it was copied from. That is what lets an error position
    reported against the statement be located in the original script.
    """

    text: str
    source_offsets: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if self.source_offsets and len(self.source_offsets) != len(self.text):
            raise ValueError(
                f"source_offsets has {len(self.source_offsets)} entries for "
                f"{len(self.text)} characters"
            )

    def source_position(self, pos: int) -> int | None:
        """Translate a 1-based position in ``text`` into a 1-based position
        in the script the statement was split from.

        Returns ``None`` when ``pos`` is out of range or the statement was
        built without offsets.
        """
        if not self.source_offsets or pos < 1 or pos > len(self.source_offsets):
            return None
        return self.source_offsets[pos - 1] + 1

    def __str__(self) -> str:
        return self.text

    def __len__(self) -> int:
        return len(self.text)


__all__ = ["Statement"]
