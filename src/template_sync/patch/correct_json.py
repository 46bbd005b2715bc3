"""Key-aware correction of patches against JSON manifests such as ``package.json``."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Pattern

from ..utils.indent import detect_indent, leading_whitespace
from ..utils.versions import is_strictly_newer, is_valid_version, strip_caret
from .align import TargetFile, collapse_identical_pairs, find_anchor, keep_hunk, realign
from .diff import Diff, Hunk, Line, LineType

LOGGER = logging.getLogger(__name__)

_SCALAR_ENTRY: Pattern[str] = re.compile(
    r'^(?P<indent>\s*)"(?P<key>[^"]*)"\s*:\s*"?(?P<value>[^"]*?)"?,?$'
)
_ARRAY_ENTRY: Pattern[str] = re.compile(
    r'^(?P<indent>\s*)"(?P<key>[^"]*)"\s*:\s*(?P<value>\[[^\]]*\]),?$'
)
_KEY_PREFIX: Pattern[str] = re.compile(r'^\s*"(?P<key>[^"]+)"\s*:')


@dataclass(frozen=True, slots=True)
class KeyValue:
    """A ``"key": value`` line split into its parts."""

    indent: str
    key: str
    value: str


def parse_key_value(content: str) -> KeyValue | None:
    match = _ARRAY_ENTRY.match(content) or _SCALAR_ENTRY.match(content)
    if match is None:
        return None
    return KeyValue(match.group("indent"), match.group("key"), match.group("value"))


def key_token(content: str) -> str | None:
    """Indentation plus quoted key, used to align hunks on manifest entries."""
    entry = parse_key_value(content)
    if entry is None:
        return None
    return f'{entry.indent}"{entry.key}"'


def values_equivalent(left: str, right: str) -> bool:
    return strip_caret(left) == strip_caret(right)


# ---------------------------------------------------------------- splitting
def split_json_hunk(hunk: Hunk, exclude_keys: Iterable[str] = ()) -> list[Hunk]:
    """Split ``hunk`` into independent sub-hunks at key boundaries.

    Runs of context and additions form one sub-hunk with a single leading
    context line. A ``"key": value`` removal is paired with the nearest later
    addition of the same key at the same indentation; each pair becomes its own
    sub-hunk, and an addition opening an object takes its nested block with it.
    Pairs whose key is in ``exclude_keys`` are left out entirely.

    ``hunk`` is not modified.
    """
    excluded = frozenset(exclude_keys)
    lines = hunk.lines
    batches: list[list[int]] = []
    batch: list[int] = []
    context: int | None = None
    consumed: set[int] = set()

    def has_change(indices: list[int]) -> bool:
        return any(lines[i].type is not LineType.RETAIN for i in indices)

    def flush() -> None:
        nonlocal batch, context
        if has_change(batch):
            batches.append(batch)
            if lines[batch[-1]].type is LineType.RETAIN:
                context = batch[-1]
        batch = []

    def open_batch() -> None:
        nonlocal batch
        if not batch and context is not None:
            batch = [context]

    for index, line in enumerate(lines):
        if index in consumed:
            continue
        if line.type is LineType.RETAIN:
            if has_change(batch):
                batch.append(index)
                flush()
            else:
                context = index
            continue
        if line.type is LineType.ADD:
            open_batch()
            batch.append(index)
            continue

        entry = parse_key_value(line.content)
        partner = _find_partner(lines, index, entry, consumed) if entry else None
        if partner is None:
            open_batch()
            batch.append(index)
            continue

        flush()
        context = None
        pair = [index, *_collect_pair(lines, partner, consumed)]
        consumed.update(pair[1:])
        if entry.key in excluded:
            LOGGER.debug("Skipping change to excluded key %s", entry.key)
            continue
        batches.append(pair)
    flush()

    return [_sub_hunk(hunk, indices) for indices in batches]


def _find_partner(lines: list[Line], index: int, entry: KeyValue, consumed: set[int]) -> int | None:
    for candidate in range(index + 1, len(lines)):
        line = lines[candidate]
        if line.type is not LineType.ADD or candidate in consumed:
            continue
        added = parse_key_value(line.content)
        if added is None or added.key != entry.key or added.indent != entry.indent:
            continue
        if added.value == entry.value:
            return None
        return candidate
    return None


def _collect_pair(lines: list[Line], start: int, consumed: set[int]) -> list[int]:
    """Return the addition at ``start`` plus the nested block it opens, if any."""
    collected = [start]
    opened = parse_key_value(lines[start].content)
    if opened is None or not opened.value.endswith("{"):
        return collected

    depth = 1
    cursor = start + 1
    while cursor < len(lines) and depth > 0:
        line = lines[cursor]
        if line.type is not LineType.ADD or cursor in consumed:
            break
        collected.append(cursor)
        depth += line.content.count("{") - line.content.count("}")
        cursor += 1

    # Trailing additions that are not sibling or parent keys still belong to the block.
    while cursor < len(lines) and lines[cursor].type is LineType.ADD and cursor not in consumed:
        entry = parse_key_value(lines[cursor].content)
        if entry is not None and len(entry.indent) <= len(opened.indent):
            break
        collected.append(cursor)
        cursor += 1
    return collected


def _sub_hunk(hunk: Hunk, indices: list[int]) -> Hunk:
    # Each side starts at the first line that exists on that side.
    pre_first = next((i for i in indices if hunk.lines[i].type is not LineType.ADD), indices[0])
    post_first = next((i for i in indices if hunk.lines[i].type is not LineType.REMOVE), indices[0])
    return Hunk(
        hunk.start_line_pre_edit + hunk.pre_edit_offset(pre_first),
        hunk.start_line_post_edit + hunk.post_edit_offset(post_first),
        [hunk.lines[i] for i in indices],
    )


# ---------------------------------------------------------------- correction
def correct_json_patch(
    patch_text: str,
    target_content: str,
    exclude_keys: Iterable[str] = (),
) -> str | None:
    """Return ``patch_text`` corrected for the JSON document ``target_content``.

    ``None`` means nothing remains to apply. Keys in ``exclude_keys`` are
    treated as already handled and their changes are left out.
    """
    target = TargetFile(target_content)
    diff = Diff.parse(patch_text, indent=detect_indent(target_content))
    excluded = tuple(exclude_keys)
    diff.hunks = [piece for hunk in diff.hunks for piece in split_json_hunk(hunk, excluded)]

    for hunk in diff.hunks:
        _correct_hunk(hunk, target)

    diff.hunks = [hunk for hunk in diff.hunks if keep_hunk(hunk, target, diff.filename_post)]
    diff.sort_hunks()
    return diff.to_patch()


def _correct_hunk(hunk: Hunk, target: TargetFile) -> None:
    offset = hunk.start_line_post_edit - hunk.start_line_pre_edit
    anchor, _ = find_anchor(hunk, target, key_token)
    if anchor is None:
        anchor, _ = find_anchor(hunk, target, key_token, types=(LineType.ADD,))
    realign(hunk, anchor, offset)

    _resolve_entries(hunk, target)
    collapse_identical_pairs(hunk)
    realign(hunk, anchor, offset)


def _target_entry(target: TargetFile, entry: KeyValue) -> tuple[str | None, bool]:
    """Return the target line for ``entry`` and whether the lookup was unambiguous.

    Only an occurrence at the entry's own indentation counts. A key found in
    the target solely at other indentations, or more than once at this one,
    is ambiguous.
    """
    matches = [
        text
        for text in target.lines
        if (match := _KEY_PREFIX.match(text)) is not None and match.group("key") == entry.key
    ]
    if not matches:
        return None, True
    same_indent = [text for text in matches if leading_whitespace(text) == entry.indent]
    if len(same_indent) == 1:
        return same_indent[0], True
    return None, False


def _nested_additions(hunk: Hunk) -> set[int]:
    """Indices of additions that belong to an object opened by an earlier addition."""
    nested: set[int] = set()
    opener: KeyValue | None = None
    depth = 0
    for index, line in enumerate(hunk.lines):
        if line.type is not LineType.ADD:
            opener, depth = None, 0
            continue
        entry = parse_key_value(line.content)
        if opener is not None and (depth > 0 or entry is None or len(entry.indent) > len(opener.indent)):
            nested.add(index)
        else:
            opener = entry if entry is not None and entry.value.endswith("{") else None
            depth = 0
        depth = max(depth + line.content.count("{") - line.content.count("}"), 0)
    return nested


def _matching_removal(hunk: Hunk, index: int, key: str, dropped: set[int]) -> int | None:
    for candidate in range(index - 1, -1, -1):
        line = hunk.lines[candidate]
        if line.type is LineType.RETAIN:
            return None
        if line.type is LineType.REMOVE and candidate not in dropped:
            match = _KEY_PREFIX.match(line.content)
            if match is not None and match.group("key") == key:
                return candidate
    return None


def _target_is_newer(current: str, proposed: str) -> bool:
    return is_valid_version(current) and is_valid_version(proposed) and is_strictly_newer(current, proposed)


def _resolve_entries(hunk: Hunk, target: TargetFile) -> None:
    """Compare every keyed change with the target, walking backwards so additions settle first."""
    dropped: set[int] = set()
    nested = _nested_additions(hunk)
    for index in reversed(range(len(hunk.lines))):
        if index in dropped or index in nested:
            continue
        line = hunk.lines[index]
        if line.type is LineType.RETAIN:
            continue
        entry = parse_key_value(line.content)
        if entry is None:
            continue

        current_line, resolved = _target_entry(target, entry)
        if not resolved:
            LOGGER.info("Leaving %r unresolved: no unique entry for key %s at this indentation", line.content, entry.key)
            continue
        current = parse_key_value(current_line) if current_line is not None else None
        if current_line is not None and current is None:
            continue

        if line.type is LineType.ADD:
            removal = _matching_removal(hunk, index, entry.key, dropped)
            if current is None:
                if removal is not None:
                    dropped.add(removal)
                continue
            if values_equivalent(current.value, entry.value) or _target_is_newer(current.value, entry.value):
                LOGGER.debug("Keeping target value for %s: %s", entry.key, current.value)
                hunk.replace_line(index, Line(LineType.RETAIN, current_line))
                if removal is not None:
                    dropped.add(removal)
                continue
            if removal is not None:
                hunk.replace_line(removal, hunk.lines[removal].with_content(current_line))
            continue

        if current is None:
            LOGGER.debug("Dropping removal of key %s absent from target", entry.key)
            dropped.add(index)
        elif values_equivalent(current.value, entry.value):
            hunk.replace_line(index, line.with_content(current_line))

    for index in sorted(dropped, reverse=True):
        hunk.pop_line(index)


__all__ = [
    "KeyValue",
    "correct_json_patch",
    "key_token",
    "parse_key_value",
    "split_json_hunk",
    "values_equivalent",
]
