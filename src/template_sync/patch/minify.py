"""Split corrected hunks into the smallest batches the patch utility can place."""

from __future__ import annotations

from .diff import Diff, Hunk, LineType


def _sub_hunk(hunk: Hunk, start: int, end: int) -> Hunk:
    return Hunk(
        hunk.start_line_pre_edit + hunk.pre_edit_offset(start),
        hunk.start_line_post_edit + hunk.post_edit_offset(start),
        hunk.lines[start:end],
    )


def split_contextless(hunk: Hunk) -> list[Hunk]:
    """Break ``hunk`` into retain/add runs containing an addition and runs of removals."""
    batches: list[Hunk] = []
    lines = hunk.lines
    index = 0
    while index < len(lines):
        start = index
        if lines[index].type is LineType.REMOVE:
            while index < len(lines) and lines[index].type is LineType.REMOVE:
                index += 1
            batches.append(_sub_hunk(hunk, start, index))
            continue
        while index < len(lines) and lines[index].type is not LineType.REMOVE:
            index += 1
        if any(line.type is LineType.ADD for line in lines[start:index]):
            batches.append(_sub_hunk(hunk, start, index))
    return batches


def minify_patch(patch_text: str) -> str:
    """Return ``patch_text`` with every hunk split into contextless batches."""
    diff = Diff.parse(patch_text)
    diff.hunks = [batch for hunk in diff.hunks for batch in split_contextless(hunk)]
    return diff.render()


__all__ = ["minify_patch", "split_contextless"]
