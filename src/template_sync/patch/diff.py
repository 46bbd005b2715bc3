"""Structured model of a single-file unified diff."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping

from ..utils.indent import detect_indent, reindent

LOGGER = logging.getLogger(__name__)

_HUNK_HEADER = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@"
)
_TRAILING_WHITESPACE = re.compile(r"\n\s*\Z")


class PatchError(RuntimeError):
    """Raised when a patch cannot be parsed, staged or applied."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class PatchParseError(PatchError):
    """Raised when a hunk header is malformed."""


class LineType(str, Enum):
    """Category of a diff body line."""

    RETAIN = "retain"
    ADD = "add"
    REMOVE = "remove"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @classmethod
    def from_prefix(cls, marker: str) -> "LineType":
        if marker == "+":
            return cls.ADD
        if marker == "-":
            return cls.REMOVE
        return cls.RETAIN


_PREFIXES = {LineType.RETAIN: " ", LineType.ADD: "+", LineType.REMOVE: "-"}


@dataclass(frozen=True, slots=True)
class Line:
    """One body line of a hunk, stored without its diff marker."""

    type: LineType
    content: str

    def with_type(self, line_type: LineType) -> "Line":
        return Line(line_type, self.content)

    def with_content(self, content: str) -> "Line":
        return Line(self.type, content)

    def render(self) -> str:
        return f"{self.type.prefix}{self.content}"


@dataclass(slots=True)
class Hunk:
    """A contiguous block of a diff sharing one ``@@`` header."""

    start_line_pre_edit: int
    start_line_post_edit: int
    lines: list[Line] = field(default_factory=list)
    category_counts: dict[LineType, int] = field(init=False)

    def __post_init__(self) -> None:
        initial = list(self.lines)
        self.lines = []
        self.category_counts = {line_type: 0 for line_type in LineType}
        self.add_lines(initial)

    # ------------------------------------------------------------ mutation
    def add_lines(self, lines: Iterable[Line]) -> None:
        for line in lines:
            self.lines.append(line)
            self.category_counts[line.type] += 1

    def pop_line(self, index: int) -> Line:
        """Remove the line at ``index`` and decrement its category count."""
        line = self.lines.pop(index)
        if self.category_counts[line.type] > 0:
            self.category_counts[line.type] -= 1
        else:
            LOGGER.warning("Attempted to decrement %s count below zero", line.type.value)
        return line

    def replace_line(self, index: int, line: Line) -> None:
        previous = self.lines[index]
        self.category_counts[previous.type] -= 1
        self.category_counts[line.type] += 1
        self.lines[index] = line

    def retype(self, index: int, line_type: LineType) -> None:
        self.replace_line(index, self.lines[index].with_type(line_type))

    # ------------------------------------------------------------ queries
    @property
    def pre_edit_length(self) -> int:
        return self.category_counts[LineType.RETAIN] + self.category_counts[LineType.REMOVE]

    @property
    def post_edit_length(self) -> int:
        return self.category_counts[LineType.RETAIN] + self.category_counts[LineType.ADD]

    @property
    def has_changes(self) -> bool:
        return self.category_counts[LineType.ADD] + self.category_counts[LineType.REMOVE] > 0

    def pre_edit_offset(self, index: int) -> int:
        """Number of lines before ``index`` that exist in the pre-edit file."""
        return sum(1 for line in self.lines[:index] if line.type is not LineType.ADD)

    def post_edit_offset(self, index: int) -> int:
        """Number of lines before ``index`` that exist in the post-edit file."""
        return sum(1 for line in self.lines[:index] if line.type is not LineType.REMOVE)

    def is_renderable(self) -> bool:
        changes = [line for line in self.lines if line.type is not LineType.RETAIN]
        if not changes:
            return False
        return any(line.content.strip() for line in changes)

    def header(self) -> str:
        return (
            f"@@ -{self.start_line_pre_edit},{self.pre_edit_length} "
            f"+{self.start_line_post_edit},{self.post_edit_length} @@"
        )

    def render(self) -> str:
        # Never strip: a hunk may legitimately end with a whitespace-only line.
        body = "".join(f"{line.render()}\n" for line in self.lines)
        return f"{self.header()}\n{body}"

    def copy(self) -> "Hunk":
        return Hunk(self.start_line_pre_edit, self.start_line_post_edit, list(self.lines))


@dataclass(slots=True)
class Diff:
    """Ordered hunks of a single-file patch plus the target's indentation unit."""

    filename_pre: str = ""
    filename_post: str = ""
    hunks: list[Hunk] = field(default_factory=list)
    indent: str = ""

    def __iter__(self) -> Iterator[Hunk]:
        return iter(self.hunks)

    def sort_hunks(self) -> None:
        self.hunks.sort(key=lambda hunk: hunk.start_line_pre_edit)

    def render(self) -> str:
        """Serialise the diff, regenerating headers from the current hunk state."""
        parts = [f"--- a/{self.filename_pre}\n+++ b/{self.filename_post}\n"]
        for hunk in self.hunks:
            if hunk.is_renderable():
                parts.append(hunk.render())
        return "".join(parts).rstrip("\n") + "\n"

    def to_patch(self) -> str | None:
        """Return the rendered patch, or ``None`` when no hunk has anything to apply."""
        if not any(hunk.is_renderable() for hunk in self.hunks):
            return None
        return self.render()

    @classmethod
    def parse(cls, diff_text: str, *, indent: str | None = None) -> "Diff":
        """Parse unified diff text for a single file.

        When ``indent`` is provided and the diff body uses a different
        indentation unit, body lines are re-indented to the target's unit.
        """
        text = _TRAILING_WHITESPACE.sub("", diff_text)
        raw_lines = text.split("\n")

        filename_pre = ""
        filename_post = ""
        for raw in raw_lines:
            if raw.startswith("@@"):
                break
            if raw.startswith("--- "):
                filename_pre = _strip_path_prefix(raw[4:], "a/")
            elif raw.startswith("+++ "):
                filename_post = _strip_path_prefix(raw[4:], "b/")

        diff = cls(filename_pre=filename_pre, filename_post=filename_post, indent=indent or "")
        current: Hunk | None = None
        for raw in raw_lines:
            if raw.startswith("@@"):
                match = _HUNK_HEADER.match(raw)
                if match is None:
                    raise PatchParseError(
                        f"Malformed hunk header: {raw}",
                        details={"file": filename_post or filename_pre},
                    )
                current = Hunk(int(match.group("old_start")), int(match.group("new_start")))
                diff.hunks.append(current)
                continue
            if current is None or raw.startswith("\\"):
                continue
            current.add_lines([Line(LineType.from_prefix(raw[:1]), raw[1:])])

        if indent:
            _reindent_hunks(diff.hunks, indent)
        return diff


def _strip_path_prefix(value: str, prefix: str) -> str:
    path = value.split("\t", 1)[0].strip()
    if path.startswith(prefix):
        path = path[len(prefix):]
    return path


def _reindent_hunks(hunks: list[Hunk], indent: str) -> None:
    diff_indent = detect_indent(line.content for hunk in hunks for line in hunk.lines)
    if not diff_indent or diff_indent == indent or diff_indent.startswith(indent):
        return
    for hunk in hunks:
        for index, line in enumerate(hunk.lines):
            hunk.replace_line(index, line.with_content(reindent(line.content, diff_indent, indent)))


__all__ = [
    "Diff",
    "Hunk",
    "Line",
    "LineType",
    "PatchError",
    "PatchParseError",
]
