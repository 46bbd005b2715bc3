"""Indentation detection for files and diff bodies."""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, Pattern

_LEADING_WHITESPACE: Pattern[str] = re.compile(r"^[ \t]*")


def leading_whitespace(line: str) -> str:
    """Return the run of spaces and tabs that prefixes ``line``."""
    match = _LEADING_WHITESPACE.match(line)
    return match.group(0) if match else ""


def detect_indent(text: str | Iterable[str]) -> str:
    """Return the most common indentation step used in ``text``.

    Every increase in indentation between consecutive non-blank lines is
    counted as one step of that width and kind (tabs or spaces). The most
    frequent step wins; ties resolve to the step seen first. An empty string
    means the text is not indented.
    """
    lines = text.splitlines() if isinstance(text, str) else list(text)
    steps: Counter[tuple[str, int]] = Counter()
    previous_kind = " "
    previous_width = 0

    for line in lines:
        if not line.strip():
            continue
        indent = leading_whitespace(line)
        kind = "\t" if indent.startswith("\t") else " "
        width = len(indent)
        if kind != previous_kind:
            previous_width = 0
        if width > previous_width:
            steps[(kind, width - previous_width)] += 1
        previous_kind = kind
        previous_width = width

    if not steps:
        return ""
    (kind, width), _ = steps.most_common(1)[0]
    return kind * width


def reindent(line: str, source: str, target: str) -> str:
    """Rewrite the leading ``source`` units of ``line`` as ``target`` units."""
    if not source or source == target:
        return line
    indent = leading_whitespace(line)
    remainder = indent
    units = 0
    while remainder.startswith(source):
        units += 1
        remainder = remainder[len(source):]
    if not units:
        return line
    return target * units + remainder + line[len(indent):]


__all__ = ["detect_indent", "leading_whitespace", "reindent"]
