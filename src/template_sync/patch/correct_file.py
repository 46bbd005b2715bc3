"""Realign and trim a unified diff against the current text of its target file."""

from __future__ import annotations

import logging

from ..utils.indent import detect_indent
from .align import TargetFile, collapse_identical_pairs, find_anchor, keep_hunk, line_token, realign
from .diff import Diff, Hunk, LineType

LOGGER = logging.getLogger(__name__)


def correct_file_patch(patch_text: str, target_content: str) -> str | None:
    """Return ``patch_text`` corrected for ``target_content``.

    ``None`` means every change in the patch is already present in the target.
    Raises ``PatchParseError`` when a hunk header is malformed.
    """
    target = TargetFile(target_content)
    diff = Diff.parse(patch_text, indent=detect_indent(target_content))
    diff.sort_hunks()

    for hunk in diff.hunks:
        _correct_hunk(hunk, target)

    diff.hunks = [hunk for hunk in diff.hunks if keep_hunk(hunk, target, diff.filename_post)]
    diff.sort_hunks()
    return diff.to_patch()


def _correct_hunk(hunk: Hunk, target: TargetFile) -> None:
    offset = hunk.start_line_post_edit - hunk.start_line_pre_edit
    anchor, had_candidates = find_anchor(hunk, target, line_token)
    realign(hunk, anchor, offset)

    collapse_identical_pairs(hunk)
    _drop_applied_lines(hunk, target)
    if anchor is None and had_candidates:
        _drop_unsupported_additions(hunk)
    realign(hunk, anchor, offset)

    _merge_following_context(hunk, target)
    realign(hunk, anchor, offset)


def _drop_applied_lines(hunk: Hunk, target: TargetFile) -> None:
    """Walk the hunk backwards, retaining additions already at their aligned line and dropping stale removals."""
    span = len(hunk.lines)
    start = hunk.start_line_pre_edit
    window_tokens = {
        token
        for _, text in target.window(start - span, start + 2 * span - 1)
        if (token := line_token(text)) is not None
    }

    for index in reversed(range(len(hunk.lines))):
        line = hunk.lines[index]
        token = line_token(line.content)
        if line.type is LineType.ADD:
            current = target.line(start + hunk.post_edit_offset(index))
            if current is not None and (
                current == line.content or (token is not None and line_token(current) == token)
            ):
                LOGGER.debug("Retaining addition already present in target: %r", line.content)
                hunk.retype(index, LineType.RETAIN)
        elif line.type is LineType.REMOVE:
            if token is None:
                continue
            expected = start + hunk.pre_edit_offset(index)
            if target.line(expected) != line.content and token not in window_tokens:
                LOGGER.debug("Dropping removal of a line no longer in target: %r", line.content)
                hunk.pop_line(index)


def _drop_unsupported_additions(hunk: Hunk) -> None:
    """Drop additions whose surrounding context no longer exists in the target."""
    for index in reversed(range(len(hunk.lines))):
        if hunk.lines[index].type is not LineType.ADD:
            continue
        if _has_removal_counterpart(hunk, index):
            continue
        dropped = hunk.pop_line(index)
        LOGGER.info("Dropping addition with no matching context in target: %r", dropped.content)


def _has_removal_counterpart(hunk: Hunk, index: int) -> bool:
    for step in (-1, 1):
        cursor = index + step
        while 0 <= cursor < len(hunk.lines) and hunk.lines[cursor].type is not LineType.RETAIN:
            if hunk.lines[cursor].type is LineType.REMOVE:
                return True
            cursor += step
    return False


def _merge_following_context(hunk: Hunk, target: TargetFile) -> None:
    """Turn an addition into context when the target already has it right after a context line."""
    position = hunk.start_line_pre_edit
    for index in range(len(hunk.lines) - 1):
        line = hunk.lines[index]
        follower = hunk.lines[index + 1]
        if (
            line.type is LineType.RETAIN
            and follower.type is LineType.ADD
            and target.line(position + 1) == follower.content
        ):
            hunk.retype(index + 1, LineType.RETAIN)
        if line.type is not LineType.ADD:
            position += 1


__all__ = ["correct_file_patch"]
