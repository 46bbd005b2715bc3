"""Reduce a rejected patch to the lines that failed and render it for a terminal."""

from __future__ import annotations

import typer

from .diff import Diff, Hunk, Line, LineType


def _score(candidate: Hunk, reject: Hunk) -> int:
    score = 0
    for reject_line in reject.lines:
        wanted = reject_line.content.strip()
        for line in candidate.lines:
            if line.type is not reject_line.type or not line.content.strip():
                continue
            if line.content.strip() == wanted:
                score += 1
                break
    return score


def _focus(candidate: Hunk, reject: Hunk) -> Hunk:
    implicated = {(line.type, line.content) for line in reject.lines if line.type is not LineType.RETAIN}
    lines: list[Line] = []
    for line in candidate.lines:
        if line.type is LineType.RETAIN or (line.type, line.content) in implicated:
            lines.append(line)
        elif line.type is LineType.REMOVE:
            lines.append(line.with_type(LineType.RETAIN))
    return Hunk(candidate.start_line_pre_edit, candidate.start_line_post_edit, lines)


def intersect_patches(full_patch: str, reject_text: str) -> str:
    """Return ``full_patch`` narrowed to the hunks and changes named in ``reject_text``.

    Each reject hunk is matched to the best-scoring hunk of the full patch, the
    reject hunk itself being the fallback. Changes the reject does not mention
    are dropped (additions) or shown as context (removals).
    """
    full = Diff.parse(full_patch)
    reject = Diff.parse(reject_text)

    focused: list[Hunk] = []
    for reject_hunk in reject.hunks:
        candidates: list[tuple[float, Hunk]] = [(0.5, reject_hunk)]
        candidates.extend((_score(hunk, reject_hunk), hunk) for hunk in full.hunks)
        _, best = max(candidates, key=lambda item: item[0])
        focused.append(_focus(best, reject_hunk))

    full.hunks = focused
    return full.render()


def render_patch(patch_text: str, filename: str = "", *, color: bool = True) -> str:
    """Format a patch for display, tagging each hunk header with ``filename:line``."""

    def style(text: str, **options: object) -> str:
        return typer.style(text, **options) if color else text

    rendered: list[str] = []
    for raw in patch_text.split("\n"):
        if raw.startswith("@@"):
            start = raw[4:].split(",", 1)[0].split(" ", 1)[0]
            suffix = f" {filename}:{start}" if filename else ""
            rendered.append(style(raw, fg=typer.colors.MAGENTA) + suffix)
        elif raw.startswith(("---", "+++")):
            rendered.append(style(raw, bold=True))
        elif raw.startswith("+"):
            rendered.append(style(raw[1:], fg=typer.colors.GREEN))
        elif raw.startswith("-"):
            rendered.append(style(raw[1:], fg=typer.colors.RED))
        elif raw.startswith(" "):
            rendered.append(style(raw[1:], dim=True))
        else:
            rendered.append(raw)
    return "\n".join(rendered)


__all__ = ["intersect_patches", "render_patch"]
