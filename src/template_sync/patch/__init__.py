"""Patch correction, staging and application."""

from .applier import ApplyResult, InstallerError, PatchApplier, PatchConflict, patch_to_new_modules
from .builder import FileChange, FileStatus, PatchSetSummary, StagedPatch, build_patch_set, order_file_changes
from .correct_file import correct_file_patch
from .correct_json import correct_json_patch, split_json_hunk
from .diff import Diff, Hunk, Line, LineType, PatchError, PatchParseError
from .intersect import intersect_patches, render_patch
from .minify import minify_patch

__all__ = [
    "ApplyResult",
    "Diff",
    "FileChange",
    "FileStatus",
    "Hunk",
    "InstallerError",
    "Line",
    "LineType",
    "PatchApplier",
    "PatchConflict",
    "PatchError",
    "PatchParseError",
    "PatchSetSummary",
    "StagedPatch",
    "build_patch_set",
    "correct_file_patch",
    "correct_json_patch",
    "intersect_patches",
    "minify_patch",
    "order_file_changes",
    "patch_to_new_modules",
    "render_patch",
    "split_json_hunk",
]
