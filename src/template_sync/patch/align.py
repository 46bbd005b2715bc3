"""Helpers shared by the correctors: the target file view and spiral search."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Pattern

from .diff import Hunk, Line, LineType

LOGGER = logging.getLogger(__name__)

_WORD_CHARACTER: Pattern[str] = re.compile(r"[A-Za-z0-9]")

TokenFn = Callable[[str], Optional[str]]


def line_token(content: str) -> str | None:
    """Whitespace-insensitive token for a line, ``None`` for blank or symbol-only lines."""
    token = " ".join(content.split())
    if not _WORD_CHARACTER.search(token):
        return None
    return token


@dataclass(slots=True)
class TargetFile:
    """1-indexed view over the current content of the file being patched."""

    content: str
    lines: list[str] = field(init=False)

    def __post_init__(self) -> None:
        lines = self.content.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        self.lines = lines

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def line(self, number: int) -> str | None:
        if 1 <= number <= len(self.lines):
            return self.lines[number - 1]
        return None

    def window(self, first: int, last: int) -> Iterator[tuple[int, str]]:
        for number in range(max(first, 1), min(last, len(self.lines)) + 1):
            yield number, self.lines[number - 1]


def spiral_offsets(limit: int) -> Iterator[int]:
    """Yield ``0, +1, -1, +2, -2, ...`` for ``limit + 1`` steps."""
    for index in range(limit + 1):
        yield (index + 1) // 2 if index % 2 else -(index // 2)


def spiral_search(target: TargetFile, expected: int, token: str, token_fn: TokenFn) -> int | None:
    """Find the target line closest to ``expected`` whose token equals ``token``."""
    for offset in spiral_offsets(target.line_count * 2):
        candidate = target.line(expected + offset)
        if candidate is not None and token_fn(candidate) == token:
            return expected + offset
    return None


@dataclass(slots=True)
class Anchor:
    """A hunk line pinned to a line number of the target file."""

    line: Line
    position: int


def find_anchor(
    hunk: Hunk,
    target: TargetFile,
    token_fn: TokenFn,
    *,
    types: tuple[LineType, ...] = (LineType.RETAIN, LineType.REMOVE),
) -> tuple[Anchor | None, bool]:
    """Locate the first hunk line of ``types`` that exists in ``target``.

    Returns the anchor (or ``None``) and whether any candidate line carried a
    usable token at all.
    """
    had_candidates = False
    for index, line in enumerate(hunk.lines):
        if line.type not in types:
            continue
        token = token_fn(line.content)
        if token is None:
            continue
        had_candidates = True
        expected = hunk.start_line_pre_edit + hunk.pre_edit_offset(index)
        position = spiral_search(target, expected, token, token_fn)
        if position is not None:
            return Anchor(line=line, position=position), had_candidates
    return None, had_candidates


def realign(hunk: Hunk, anchor: Anchor | None, offset: int) -> None:
    """Move ``hunk`` so that ``anchor`` sits on its target line.

    ``offset`` is the declared distance between the post- and pre-edit start
    lines, which is preserved.
    """
    if anchor is None:
        return
    index = next((i for i, line in enumerate(hunk.lines) if line is anchor.line), None)
    if index is None:
        # Retyping replaces the line object; fall back to the first pre-edit line with its content.
        index = next(
            (
                i
                for i, line in enumerate(hunk.lines)
                if line.type is not LineType.ADD and line.content == anchor.line.content
            ),
            None,
        )
    if index is None:
        return
    hunk.start_line_pre_edit = anchor.position - hunk.pre_edit_offset(index)
    hunk.start_line_post_edit = hunk.start_line_pre_edit + offset


def collapse_identical_pairs(hunk: Hunk) -> None:
    """Turn an addition/removal pair with identical content into one context line.

    The context line takes the position of whichever partner keeps both the
    pre-edit and post-edit line order intact; pairs separated by both kinds of
    change are left alone.
    """
    index = 0
    while index < len(hunk.lines):
        if hunk.lines[index].type is not LineType.ADD:
            index += 1
            continue
        partner = _find_identical_removal(hunk, index)
        if partner is None:
            index += 1
            continue
        low, high = sorted((index, partner))
        between = {line.type for line in hunk.lines[low + 1:high]}
        if LineType.REMOVE not in between:
            keep, drop = index, partner
        elif LineType.ADD not in between:
            keep, drop = partner, index
        else:
            index += 1
            continue
        hunk.retype(keep, LineType.RETAIN)
        hunk.pop_line(drop)
        index = low


def _find_identical_removal(hunk: Hunk, index: int) -> int | None:
    content = hunk.lines[index].content
    # Only look inside the contiguous change block around the addition.
    start = index
    while start > 0 and hunk.lines[start - 1].type is not LineType.RETAIN:
        start -= 1
    end = index
    while end + 1 < len(hunk.lines) and hunk.lines[end + 1].type is not LineType.RETAIN:
        end += 1
    for candidate in range(start, end + 1):
        line = hunk.lines[candidate]
        if line.type is LineType.REMOVE and line.content == content:
            return candidate
    return None


def keep_hunk(hunk: Hunk, target: TargetFile, filename: str = "") -> bool:
    """Return False for hunks with nothing to apply or that start past the end of ``target``."""
    if not hunk.has_changes:
        return False
    if hunk.start_line_post_edit > target.line_count:
        LOGGER.warning(
            "Dropping hunk for %s at line %d: target only has %d lines",
            filename or "<unknown>",
            hunk.start_line_post_edit,
            target.line_count,
        )
        return False
    return True


__all__ = [
    "Anchor",
    "TargetFile",
    "collapse_identical_pairs",
    "find_anchor",
    "keep_hunk",
    "line_token",
    "realign",
    "spiral_offsets",
    "spiral_search",
]
