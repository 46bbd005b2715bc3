"""Extract per-file changes between two commits of the template checkout."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Sequence

from .patch.builder import FileChange, FileStatus


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


def _run_git(args: Sequence[str], *, cwd: Path, check: bool = True) -> subprocess.CompletedProcess[str]:
    """Run a git command and optionally raise `GitError` on failure."""
    command = ["git", *args]
    try:
        process = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=False,
            check=False,
        )
    except FileNotFoundError as error:
        raise GitError("git executable not found") from error
    stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
    stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
    result = subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)
    if check and result.returncode != 0:
        message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
        raise GitError(f"git {' '.join(args)} failed: {message}")
    return result


def _status_from_header(line: str) -> FileStatus | None:
    if line.startswith("new file"):
        return FileStatus.ADDED
    if line.startswith("deleted"):
        return FileStatus.DELETED
    if line.startswith("rename"):
        return FileStatus.RENAMED
    return None


def split_git_diff(output: str) -> List[FileChange]:
    """Split ``git diff`` output into one change per ``diff --git`` section.

    The path is the pre-edit (``a/``) path; the status defaults to modified
    unless a ``new file``, ``deleted`` or ``rename`` header says otherwise.
    """
    changes: List[FileChange] = []
    path: str | None = None
    status = FileStatus.MODIFIED
    body: List[str] = []

    def flush() -> None:
        if path:
            changes.append(FileChange(path=path, status=status, diff="\n".join(body).strip() + "\n"))

    for line in output.split("\n"):
        if line.startswith("diff --git a/"):
            flush()
            path = line.split(" ")[2][2:]
            status = FileStatus.MODIFIED
            body = [line]
            continue
        if path is None:
            continue
        if status is FileStatus.MODIFIED and not line.startswith(("@@", "+", "-", " ")):
            status = _status_from_header(line) or status
        body.append(line)
    flush()
    return changes


def get_diffs_from_commit(repo_path: Path | str, start: str, end: str = "HEAD") -> List[FileChange]:
    """Return the file changes between ``start`` and ``end`` in ``repo_path``."""
    repo = Path(repo_path)
    if not repo.is_dir():
        raise GitError(f"Template checkout not found: {repo}")
    result = _run_git(["diff", "--no-color", start, end], cwd=repo)
    return split_git_diff(result.stdout)


def current_head(repo_path: Path | str) -> str:
    """Return the commit hash ``HEAD`` points to in ``repo_path``."""
    return _run_git(["rev-parse", "HEAD"], cwd=Path(repo_path)).stdout.strip()


__all__ = ["GitError", "current_head", "get_diffs_from_commit", "split_git_diff"]
