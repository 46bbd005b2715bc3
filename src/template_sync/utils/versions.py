"""Semantic version helpers for dependency manifests."""

from __future__ import annotations

import re
from typing import Pattern

WILDCARD = "*"

_RANGE_PREFIX: Pattern[str] = re.compile(r"^[\^~<>=v\s]+")
_SEMVER: Pattern[str] = re.compile(
    r"^(?P<major>0|[1-9]\d*)"
    r"(?:\.(?P<minor>0|[1-9]\d*))?"
    r"(?:\.(?P<patch>0|[1-9]\d*))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


def strip_caret(value: str) -> str:
    """Drop a leading ``^`` range marker."""
    return value[1:] if value.startswith("^") else value


def strip_range_prefix(value: str) -> str:
    """Drop leading range operators (``^``, ``~``, ``>=``...) and a ``v`` prefix."""
    return _RANGE_PREFIX.sub("", value.strip())


def is_valid_version(value: str) -> bool:
    """Return True when ``value`` is a semantic version, optionally range-prefixed."""
    return _SEMVER.match(strip_range_prefix(value)) is not None


def is_caret_version(value: str) -> bool:
    """Return True for an exact version, optionally with a leading ``^``."""
    return _SEMVER.match(strip_caret(value.strip())) is not None


def _parse(value: str) -> tuple[tuple[int, int, int], tuple[str, ...]]:
    match = _SEMVER.match(strip_range_prefix(value))
    if match is None:
        raise ValueError(f"Invalid semantic version: {value!r}")
    core = (
        int(match.group("major")),
        int(match.group("minor") or 0),
        int(match.group("patch") or 0),
    )
    prerelease = tuple(match.group("prerelease").split(".")) if match.group("prerelease") else ()
    return core, prerelease


def _compare_identifiers(left: tuple[str, ...], right: tuple[str, ...]) -> int:
    # A release outranks any prerelease of the same core version.
    if not left or not right:
        return (not left) - (not right)
    for left_part, right_part in zip(left, right):
        if left_part == right_part:
            continue
        if left_part.isdigit() and right_part.isdigit():
            return 1 if int(left_part) > int(right_part) else -1
        if left_part.isdigit():
            return -1
        if right_part.isdigit():
            return 1
        return 1 if left_part > right_part else -1
    return (len(left) > len(right)) - (len(left) < len(right))


def compare_versions(left: str, right: str) -> int:
    """Return ``1``, ``0`` or ``-1`` as ``left`` is newer, equal or older than ``right``.

    Raises ``ValueError`` when either side is not a semantic version.
    """
    left_core, left_pre = _parse(left)
    right_core, right_pre = _parse(right)
    if left_core != right_core:
        return 1 if left_core > right_core else -1
    return _compare_identifiers(left_pre, right_pre)


def is_strictly_newer(candidate: str, baseline: str) -> bool:
    """Return True when ``candidate`` is a strictly newer version than ``baseline``.

    The ``*`` wildcard is treated as newer than anything it replaces. Values that
    are not semantic versions never compare as newer.
    """
    if candidate == WILDCARD:
        return baseline != WILDCARD
    if baseline == WILDCARD:
        return False
    if not (is_valid_version(candidate) and is_valid_version(baseline)):
        return False
    return compare_versions(candidate, baseline) > 0


__all__ = [
    "WILDCARD",
    "compare_versions",
    "is_caret_version",
    "is_strictly_newer",
    "is_valid_version",
    "strip_caret",
    "strip_range_prefix",
]
