"""Occurrence disambiguation for search blocks that match more than once."""

from __future__ import annotations

from typing import Literal

from .errors import MatchError
from .schema import Occurrence

AmbiguousPolicy = Literal["fail", "first"]

_PREVIEW_CHARS = 20


def normalise_occurrence(raw: object) -> Occurrence | None:
    """Map an ``occurrence`` attribute onto ``first``/``last``/N or ``None``.

    Unrecognised values (non-numeric strings, zero, negatives) are treated as
    unspecified rather than rejected; ambiguity is decided at apply time.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    text = str(raw).strip().lower()
    if text in ("first", "last"):
        return text  # type: ignore[return-value]
    if not text.isdigit():
        return None
    value = int(text)
    return value if value > 0 else None


def find_nth_occurrence(haystack: str, needle: str, n: int) -> int:
    """Return the offset of the ``n``-th forward match, or -1."""
    index = -1
    start = 0
    for _ in range(n):
        index = haystack.find(needle, start)
        if index == -1:
            return -1
        start = index + len(needle)
    return index


def preview_search(needle: str) -> str:
    return f'"{needle[:_PREVIEW_CHARS]}..."'


def locate_search(
    haystack: str,
    needle: str,
    occurrence: Occurrence | None,
    *,
    ambiguous: AmbiguousPolicy = "fail",
) -> int:
    """Return the start offset of ``needle`` in ``haystack``.

    A unique match is used regardless of ``occurrence``. With several matches
    ``first``/``last``/N select one; when no occurrence is given the result
    depends on ``ambiguous``. Raises :class:`MatchError` otherwise.
    """
    if not needle:
        raise MatchError("Search block is empty")

    position = haystack.find(needle)
    if position == -1:
        raise MatchError(f"Search text not found: {preview_search(needle)}")

    if haystack.find(needle, position + 1) == -1:
        return position

    if occurrence == "first":
        return position
    if occurrence == "last":
        return haystack.rfind(needle)
    if isinstance(occurrence, int):
        nth = find_nth_occurrence(haystack, needle, occurrence)
        if nth == -1:
            raise MatchError(
                f"occurrence={occurrence} not found for search block {preview_search(needle)}",
                details={"occurrence": occurrence},
            )
        return nth
    if ambiguous == "first":
        return position
    raise MatchError(
        "Ambiguous search text - found multiple matches; "
        'specify occurrence="first|last|N" on <find>',
        details={"search": needle[:_PREVIEW_CHARS]},
    )


__all__ = [
    "AmbiguousPolicy",
    "find_nth_occurrence",
    "locate_search",
    "normalise_occurrence",
    "preview_search",
]
