"""Replay staged patch files against the project tree."""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Pattern, Sequence

from ..telemetry import emit_event
from ..utils.versions import WILDCARD, is_caret_version, is_strictly_newer
from .builder import MANIFEST_NAME, PATCH_SUFFIX
from .correct_json import correct_json_patch, parse_key_value
from .diff import PatchError
from .intersect import intersect_patches

LOGGER = logging.getLogger(__name__)

APPLIED_SUFFIX = ".applied"
MANIFEST_HEADER = f"--- a/{MANIFEST_NAME}"

_MODULE_NAME: Pattern[str] = re.compile(r"^(?:@[a-z0-9][a-z0-9._-]*/)?[a-z0-9][a-z0-9._-]*$")
_OLD_PATH: Pattern[str] = re.compile(r"^--- a/(?P<path>.+?)\s*$", re.MULTILINE)
_NEW_PATH: Pattern[str] = re.compile(r"^\+\+\+ b/(?P<path>.+?)\s*$", re.MULTILINE)
_RENAME_FROM: Pattern[str] = re.compile(r"^rename from (?P<path>.+?)\s*$", re.MULTILINE)
_RENAME_TO: Pattern[str] = re.compile(r"^rename to (?P<path>.+?)\s*$", re.MULTILINE)
_NEW_FILE: Pattern[str] = re.compile(r"^new file mode", re.MULTILINE)
_DELETED_FILE: Pattern[str] = re.compile(r"^deleted file mode", re.MULTILINE)
_GIT_HEADER: Pattern[str] = re.compile(r"^diff --git a/(?P<old>\S+) b/(?P<new>\S+)\s*$", re.MULTILINE)


class PatchConflict(PatchError):
    """Raised when the patch utility rejects a staged patch."""

    def __init__(
        self,
        message: str,
        *,
        patch_path: Path,
        target: str,
        view: str,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.patch_path = patch_path
        self.target = target
        self.view = view


class InstallerError(PatchError):
    """Raised when the package installer exits with a failure."""


Confirm = Callable[[str], bool]
ConflictHandler = Callable[[PatchConflict], bool]


def _decline(prompt: str) -> bool:
    LOGGER.info("%s (declined)", prompt)
    return False


def _leave_unresolved(conflict: PatchConflict) -> bool:
    LOGGER.warning("Conflict in %s left for manual resolution", conflict.target)
    return False


@dataclass(slots=True)
class ApplyResult:
    """Patches consumed in this run and the one left pending, if any."""

    applied: list[Path] = field(default_factory=list)
    pending: Path | None = None

    @property
    def completed(self) -> bool:
        return self.pending is None


def pending_patches(patches_dir: Path) -> list[Path]:
    """Staged patches not yet marked applied, in apply order."""
    if not patches_dir.is_dir():
        return []
    return sorted(path for path in patches_dir.iterdir() if path.is_file() and path.name.endswith(PATCH_SUFFIX))


def patch_to_new_modules(patch_text: str) -> list[str]:
    """Return ``name@version`` specifiers for dependencies a manifest patch adds or bumps.

    Additions that are not strictly newer than the removal they replace are
    skipped. Values that are neither a plain (optionally ``^``-prefixed)
    version nor ``*`` are ignored.
    """
    removals: dict[str, str] = {}
    additions: dict[str, str] = {}
    for raw in patch_text.splitlines():
        if not raw.startswith(("+", "-")) or raw.startswith(("+++", "---")):
            continue
        entry = parse_key_value(raw[1:])
        if entry is None or entry.key == "version" or not _MODULE_NAME.match(entry.key):
            continue
        if entry.value != WILDCARD and not is_caret_version(entry.value):
            continue
        (removals if raw.startswith("-") else additions)[entry.key] = entry.value

    modules: list[str] = []
    for name, version in additions.items():
        previous = removals.get(name)
        if previous is not None and not is_strictly_newer(version, previous):
            LOGGER.info("Skipping %s: %s is not newer than %s", name, version, previous)
            continue
        modules.append(f"{name}@{version}")
    return modules


def _module_name(specifier: str) -> str:
    return specifier.rsplit("@", 1)[0]


def _run(command: Sequence[str], *, cwd: Path, stdin: str | None = None) -> subprocess.CompletedProcess[str]:
    process = subprocess.run(
        list(command),
        cwd=cwd,
        input=stdin.encode("utf-8") if stdin is not None else None,
        capture_output=True,
        text=False,
        check=False,
    )
    stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
    stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
    return subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)


def _sibling(path: Path, suffix: str) -> Path:
    return path.with_name(f"{path.name}{suffix}")


def _header_path(patch_text: str, *, new: bool) -> str | None:
    """File named by the ``+++`` (``new``) or ``---`` header, falling back to the other one."""
    patterns = (_NEW_PATH, _OLD_PATH) if new else (_OLD_PATH, _NEW_PATH)
    for pattern in patterns:
        match = pattern.search(patch_text)
        if match is not None:
            return match.group("path")
    return None


@dataclass(slots=True)
class PatchApplier:
    """Apply the staged patches in ``patches_dir`` to ``target_dir`` in order.

    ``confirm`` decides whether detected dependency updates are installed
    before the manifest patch is applied. ``resolve_conflict`` receives each
    rejected patch and returns True once the user has resolved it by hand;
    otherwise the run stops and the patch stays staged for the next run.
    """

    patches_dir: Path
    target_dir: Path
    fuzz: int = 10
    installer: Sequence[str] = ("npm", "install")
    confirm: Confirm = _decline
    resolve_conflict: ConflictHandler = _leave_unresolved

    def __post_init__(self) -> None:
        self.patches_dir = Path(self.patches_dir)
        self.target_dir = Path(self.target_dir)

    def apply_all(self) -> ApplyResult:
        result = ApplyResult()
        patches = pending_patches(self.patches_dir)
        LOGGER.info("Applying %d staged patch(es) from %s", len(patches), self.patches_dir)
        for patch_path in patches:
            patch_text = patch_path.read_text(encoding="utf-8")
            try:
                if MANIFEST_HEADER in patch_text:
                    self.apply_manifest_patch(patch_path, patch_text)
                else:
                    self.apply_patch(patch_path, patch_text)
            except PatchConflict as conflict:
                emit_event("patch_conflict", patch=patch_path, target=conflict.target, **conflict.details)
                if not self.resolve_conflict(conflict):
                    result.pending = patch_path
                    return result
            self._mark_applied(patch_path)
            result.applied.append(patch_path)
        return result

    def _mark_applied(self, patch_path: Path) -> None:
        patch_path.rename(_sibling(patch_path, APPLIED_SUFFIX))
        emit_event("patch_applied", patch=patch_path)

    # ------------------------------------------------------------ manifest
    def apply_manifest_patch(self, patch_path: Path, patch_text: str) -> None:
        """Offer to install dependency updates, then apply what the installer left to do."""
        modules = patch_to_new_modules(patch_text)
        if modules and self.confirm(f"Install new modules: {' '.join([*self.installer, *modules])}?"):
            self.install(modules)
            manifest = (self.target_dir / MANIFEST_NAME).read_text(encoding="utf-8")
            _sibling(patch_path, f".{MANIFEST_NAME}").write_text(manifest, encoding="utf-8")
            _sibling(patch_path, ".verbose").unlink(missing_ok=True)

            corrected = correct_json_patch(
                patch_text,
                manifest,
                exclude_keys=[_module_name(module) for module in modules],
            )
            patch_path.write_text(corrected or "", encoding="utf-8")
            if corrected is None:
                LOGGER.info("Nothing left to apply in %s after installing modules", patch_path.name)
                return
            patch_text = corrected
        self.apply_patch(patch_path, patch_text)

    def install(self, modules: Sequence[str]) -> None:
        command = [*self.installer, *modules]
        LOGGER.info("Running %s", " ".join(command))
        try:
            result = _run(command, cwd=self.target_dir)
        except FileNotFoundError as error:
            raise InstallerError(f"Installer not found: {self.installer[0]}") from error
        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown installer error"
            raise InstallerError(
                f"{' '.join(command)} failed: {message}",
                details={"returncode": result.returncode, "stdout": result.stdout, "stderr": result.stderr},
            )
        emit_event("modules_installed", modules=list(modules), command=command)

    # --------------------------------------------------------------- files
    def apply_patch(self, patch_path: Path, patch_text: str) -> None:
        """Apply one staged patch: delete, rename, or hand it to the patch utility.

        Patches without ``---``/``+++`` headers (binary files) cannot be
        applied; they are logged and skipped.
        """
        if _DELETED_FILE.search(patch_text):
            git_header = _GIT_HEADER.search(patch_text)
            target = _header_path(patch_text, new=False) or (git_header.group("old") if git_header else None)
            if target is None:
                self._skip(patch_path)
                return
            (self.target_dir / target).unlink(missing_ok=True)
            LOGGER.info("Deleted %s", target)
            return

        rename_from = _RENAME_FROM.search(patch_text)
        rename_to = _RENAME_TO.search(patch_text)
        if rename_from and rename_to:
            source = self.target_dir / rename_from.group("path")
            destination = self.target_dir / rename_to.group("path")
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source), str(destination))
            LOGGER.info("Renamed %s to %s", rename_from.group("path"), rename_to.group("path"))
            if "@@" in patch_text:
                self._run_patch(patch_path, patch_text, rename_to.group("path"), new_file=False)
            return

        new_file = _NEW_FILE.search(patch_text) is not None
        target = _header_path(patch_text, new=new_file)
        if target is None:
            self._skip(patch_path)
            return
        self._run_patch(patch_path, patch_text, target, new_file=new_file)

    def _skip(self, patch_path: Path) -> None:
        LOGGER.warning("No target file found in %s; skipping", patch_path.name)
        emit_event("patch_skipped", patch=patch_path, reason="no file header")

    def patch_command(self, patch_path: Path, target: str, *, new_file: bool) -> list[str]:
        command = [
            "patch",
            f"-F{self.fuzz}",
            "-N",
            "--batch",
            "--ignore-whitespace",
            "--no-backup-if-mismatch",
            f"--reject-file={_sibling(patch_path, '.reject')}",
        ]
        if new_file:
            command.append("-p1")
        else:
            command.append(target)
        return command

    def _run_patch(self, patch_path: Path, patch_text: str, target: str, *, new_file: bool) -> None:
        reject_path = _sibling(patch_path, ".reject")
        reject_path.unlink(missing_ok=True)
        _sibling(reject_path, ".orig").unlink(missing_ok=True)

        command = self.patch_command(patch_path, target, new_file=new_file)
        LOGGER.debug("Running %s", " ".join(command))
        try:
            result = _run(command, cwd=self.target_dir, stdin=patch_text)
        except FileNotFoundError as error:
            raise PatchError("The 'patch' utility is not installed") from error
        if result.returncode == 0:
            LOGGER.info("Applied %s to %s", patch_path.name, target)
            return

        LOGGER.warning("Patch rejected for %s", target)
        verbose_path = _sibling(patch_path, ".verbose")
        full_patch = verbose_path.read_text(encoding="utf-8") if verbose_path.is_file() else patch_text
        reject_text = reject_path.read_text(encoding="utf-8") if reject_path.is_file() else ""
        view = intersect_patches(full_patch, reject_text) if reject_text else full_patch
        raise PatchConflict(
            f"Patch rejected for {target}",
            patch_path=patch_path,
            target=target,
            view=view,
            details={"returncode": result.returncode, "stdout": result.stdout, "stderr": result.stderr},
        )


__all__ = [
    "APPLIED_SUFFIX",
    "ApplyResult",
    "InstallerError",
    "PatchApplier",
    "PatchConflict",
    "patch_to_new_modules",
    "pending_patches",
]
