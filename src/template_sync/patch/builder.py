"""Stage numbered, corrected patch files for a batch of upstream file changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Sequence

from ..telemetry import emit_event
from .correct_file import correct_file_patch
from .correct_json import correct_json_patch
from .diff import PatchParseError
from .minify import minify_patch

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"
LOCKFILES: tuple[str, ...] = ("package-lock.json", "yarn.lock", "pnpm-lock.yaml", "bun.lockb")
PATCH_SUFFIX = ".patch"


class FileStatus(str, Enum):
    """Git name-status letter of a changed file."""

    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"
    RENAMED = "R"


@dataclass(slots=True)
class FileChange:
    """One file changed between two template commits."""

    path: str
    status: FileStatus
    diff: str


@dataclass(slots=True)
class StagedPatch:
    number: int
    path: Path
    source: str
    status: FileStatus
    verbose_path: Path | None = None
    original_path: Path | None = None


@dataclass(slots=True)
class SkippedChange:
    source: str
    status: FileStatus
    reason: str


@dataclass(slots=True)
class PatchSetSummary:
    """Outcome of staging a batch of changes."""

    staged: list[StagedPatch] = field(default_factory=list)
    skipped: list[SkippedChange] = field(default_factory=list)
    dry_run: bool = False


_STATUS_RANK = {
    FileStatus.ADDED: 1,
    FileStatus.DELETED: 2,
    FileStatus.RENAMED: 3,
    FileStatus.MODIFIED: 4,
}


def is_manifest(path: str) -> bool:
    return path == MANIFEST_NAME


def order_file_changes(changes: Iterable[FileChange]) -> list[FileChange]:
    """Order changes so structurally simple ones land before modifications.

    The manifest goes first, then additions, deletions and renames, then
    modifications by ascending path length. The sort is stable.
    """

    def sort_key(change: FileChange) -> tuple[int, int]:
        if is_manifest(change.path):
            return (0, 0)
        rank = _STATUS_RANK[change.status]
        return (rank, len(change.path) if change.status is FileStatus.MODIFIED else 0)

    return sorted(changes, key=sort_key)


def is_ignored(path: str, ignored_paths: Iterable[str]) -> bool:
    for prefix in ignored_paths:
        prefix = prefix.rstrip("/")
        if prefix and (path == prefix or path.startswith(f"{prefix}/")):
            return True
    return False


def staged_patch_name(number: int) -> str:
    return f"{number:03d}{PATCH_SUFFIX}"


def correct_patch(path: str, diff_text: str, target_content: str) -> str | None:
    """Dispatch to the JSON corrector for ``.json`` files and the generic one otherwise."""
    if path.endswith(".json"):
        return correct_json_patch(diff_text, target_content)
    return correct_file_patch(diff_text, target_content)


@dataclass(slots=True)
class _PatchSetBuilder:
    patches_dir: Path
    target_dir: Path
    ignored_paths: tuple[str, ...]
    dry_run: bool
    summary: PatchSetSummary = field(init=False)
    next_number: int = 0

    def __post_init__(self) -> None:
        self.summary = PatchSetSummary(dry_run=self.dry_run)

    @property
    def _prefix(self) -> str:
        return "(dry run) " if self.dry_run else ""

    def build(self, changes: Sequence[FileChange]) -> PatchSetSummary:
        if not self.dry_run:
            self.patches_dir.mkdir(parents=True, exist_ok=True)
        for change in order_file_changes(changes):
            self._stage_change(change)
        return self.summary

    def _stage_change(self, change: FileChange) -> None:
        if is_ignored(change.path, self.ignored_paths):
            self._skip(change, "ignored")
            return

        target_exists = (self.target_dir / change.path).is_file()
        if change.status is FileStatus.ADDED:
            self._stage(change, change.diff)
            return
        if not target_exists:
            self._skip(change, "not found", warn=True)
            return
        if change.status in (FileStatus.DELETED, FileStatus.RENAMED):
            self._stage(change, change.diff)
            return

        target_content = (self.target_dir / change.path).read_text(encoding="utf-8")
        try:
            corrected = correct_patch(change.path, change.diff, target_content)
        except PatchParseError as error:
            LOGGER.error("Unable to parse patch for %s: %s", change.path, error)
            self._skip(change, "parse error")
            return
        if corrected is None:
            self._skip(change, "no changes")
            return
        self._stage(change, minify_patch(corrected), verbose=corrected)

    def _stage(self, change: FileChange, patch_text: str, *, verbose: str | None = None) -> None:
        number = self.next_number
        self.next_number += 1
        patch_path = self.patches_dir / staged_patch_name(number)
        staged = StagedPatch(number=number, path=patch_path, source=change.path, status=change.status)
        if verbose is not None:
            staged.verbose_path = patch_path.with_name(f"{patch_path.name}.verbose")
            staged.original_path = patch_path.with_name(f"{patch_path.name}.orig")

        if not self.dry_run:
            patch_path.write_text(patch_text, encoding="utf-8")
            if staged.verbose_path is not None and staged.original_path is not None:
                staged.verbose_path.write_text(verbose, encoding="utf-8")
                staged.original_path.write_text(change.diff, encoding="utf-8")

        LOGGER.info("%s%s %s", self._prefix, change.status.value, change.path)
        self.summary.staged.append(staged)
        emit_event(
            "patch_staged",
            number=number,
            patch=patch_path,
            source=change.path,
            status=change.status,
            dry_run=self.dry_run,
        )

    def _skip(self, change: FileChange, reason: str, *, warn: bool = False) -> None:
        log = LOGGER.warning if warn else LOGGER.info
        log("%sSKIP %s %s (%s)", self._prefix, change.status.value, change.path, reason)
        self.summary.skipped.append(SkippedChange(source=change.path, status=change.status, reason=reason))
        emit_event(
            "patch_skipped",
            source=change.path,
            status=change.status,
            reason=reason,
            dry_run=self.dry_run,
        )


def build_patch_set(
    changes: Sequence[FileChange],
    patches_dir: Path | str,
    target_dir: Path | str,
    ignored_paths: Iterable[str] = (),
    *,
    dry_run: bool = False,
) -> PatchSetSummary:
    """Correct and stage ``changes`` as numbered patch files in ``patches_dir``.

    Lockfiles are always ignored in addition to ``ignored_paths``. With
    ``dry_run`` nothing is written, but the summary reports what would be
    staged.
    """
    builder = _PatchSetBuilder(
        patches_dir=Path(patches_dir),
        target_dir=Path(target_dir),
        ignored_paths=(*LOCKFILES, *ignored_paths),
        dry_run=dry_run,
    )
    return builder.build(changes)


__all__ = [
    "FileChange",
    "FileStatus",
    "LOCKFILES",
    "MANIFEST_NAME",
    "PatchSetSummary",
    "SkippedChange",
    "StagedPatch",
    "build_patch_set",
    "correct_patch",
    "is_ignored",
    "is_manifest",
    "order_file_changes",
    "staged_patch_name",
]
