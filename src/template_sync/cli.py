"""CLI commands for pulling template updates into a project."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional

import typer

from .config import DEFAULT_CONFIG_NAME, ConfigError, SyncConfig, load_config, resolve_path, save_config
from .history import GitError, current_head, get_diffs_from_commit
from .patch.applier import Confirm, PatchApplier, PatchConflict
from .patch.builder import PatchSetSummary, build_patch_set, correct_patch
from .patch.diff import PatchError, PatchParseError
from .patch.intersect import render_patch
from .patch.minify import minify_patch

APP_HELP = "Pull upstream template changes into a project without clobbering local edits."

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every correction decision.",
    ),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load(config: str) -> tuple[SyncConfig, Path, Path]:
    """Return the configuration, its path and the project root it lives in."""
    config_path = Path(config)
    try:
        settings = load_config(config_path)
    except ConfigError as error:
        typer.echo(f"Failed to load config: {error}")
        raise typer.Exit(code=1) from error
    return settings, config_path, config_path.resolve().parent


def _confirmer(assume_yes: bool) -> Confirm:
    def confirm(prompt: str) -> bool:
        if assume_yes:
            typer.echo(f"{prompt} yes")
            return True
        return typer.confirm(prompt, default=True)

    return confirm


def _prompt_conflict(conflict: PatchConflict) -> bool:
    typer.echo(typer.style(f"Patch rejected for {conflict.target}", fg=typer.colors.RED))
    typer.echo(render_patch(conflict.view, conflict.target))
    typer.prompt(
        "Please resolve the conflict, stage the changes, and press Enter to continue",
        default="",
        show_default=False,
    )
    return True


def _report(summary: PatchSetSummary) -> None:
    prefix = "(dry run) " if summary.dry_run else ""
    for staged in summary.staged:
        typer.echo(f"{prefix}{staged.status.value} {staged.source} -> {staged.path.name}")
    for skipped in summary.skipped:
        typer.echo(f"{prefix}SKIP {skipped.status.value} {skipped.source} ({skipped.reason})")
    typer.echo(f"{prefix}Staged {len(summary.staged)} patch(es), skipped {len(summary.skipped)}.")


def _apply(settings: SyncConfig, project_root: Path, patches_dir: Path, *, assume_yes: bool) -> bool:
    """Apply staged patches; returns True when every patch was consumed."""
    applier = PatchApplier(
        patches_dir=patches_dir,
        target_dir=project_root,
        fuzz=settings.patches.fuzz,
        installer=tuple(settings.installer.command),
        confirm=_confirmer(assume_yes),
        resolve_conflict=_prompt_conflict,
    )
    try:
        result = applier.apply_all()
    except PatchError as error:
        typer.echo(f"Failed to apply patches: {error}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Applied {len(result.applied)} patch(es).")
    if result.pending is not None:
        typer.echo(f"Stopped at {result.pending.name}; rerun `template-sync apply` once it is resolved.")
        return False
    return True


@app.command()
def correct(
    patch: Path = typer.Argument(..., exists=True, dir_okay=False, help="Unified diff to correct."),
    target: Path = typer.Argument(..., exists=True, dir_okay=False, help="Current version of the patched file."),
    minify: bool = typer.Option(
        False,
        "--minify/--no-minify",
        help="Split the corrected patch into contextless hunks.",
    ),
) -> None:
    """Print PATCH corrected against the current content of TARGET."""
    try:
        corrected = correct_patch(
            target.as_posix(),
            patch.read_text(encoding="utf-8"),
            target.read_text(encoding="utf-8"),
        )
    except PatchParseError as error:
        typer.echo(f"Unable to parse {patch}: {error}")
        raise typer.Exit(code=1) from error

    if corrected is None:
        typer.echo("No changes remain.")
        return
    typer.echo(minify_patch(corrected) if minify else corrected, nl=False)


@app.command("set")
def set_template(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the template-sync configuration file.",
    ),
    repository: Optional[str] = typer.Option(
        None,
        "--repository",
        "--repo",
        help="Local checkout of the template repository.",
    ),
    head: Optional[str] = typer.Option(None, "--head", help="Template commit the project is in sync with."),
    ignore: List[str] = typer.Option(
        None,
        "--ignore",
        help="Path prefix to ignore on update (repeatable).",
    ),
) -> None:
    """Record the template repository, head or ignored paths."""
    if repository is None and head is None and not ignore:
        typer.echo("Pass --repository, --head or --ignore.")
        raise typer.Exit(code=1)

    settings, config_path, _ = _load(config)
    if repository is not None:
        settings.template.repository = repository
    if head is not None:
        settings.template.head = head
    settings.template.ignore = settings.ignored_paths(ignore or ())
    save_config(config_path, settings)
    typer.echo(f"Updated {config_path}")


@app.command()
def update(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the template-sync configuration file.",
    ),
    head: Optional[str] = typer.Option(None, "--head", help="Template commit to update from."),
    ignore: List[str] = typer.Option(
        None,
        "--ignore",
        help="Additional path prefix to ignore (repeatable).",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report what would be staged without writing."),
    apply: bool = typer.Option(
        True,
        "--apply/--no-apply",
        help="Apply the staged patches after building them.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every prompt."),
) -> None:
    """Stage corrected template changes and apply them to the project."""
    settings, config_path, project_root = _load(config)
    if not settings.template.repository:
        typer.echo("No template repository configured; run `template-sync set --repository PATH`.")
        raise typer.Exit(code=1)
    start = head or settings.template.head
    if not start:
        typer.echo("No template head configured; pass --head or run `template-sync set --head COMMIT`.")
        raise typer.Exit(code=1)

    repository = resolve_path(project_root, settings.template.repository)
    patches_dir = resolve_path(project_root, settings.patches.directory)

    build = True
    if patches_dir.exists() and not dry_run:
        replace = yes or typer.confirm(
            f"Patches found at {patches_dir}. Do you want to replace them with new patches?",
            default=False,
        )
        if replace:
            shutil.rmtree(patches_dir)
        else:
            build = False

    if build:
        try:
            changes = get_diffs_from_commit(repository, start)
        except GitError as error:
            typer.echo(f"Failed to read template history: {error}")
            raise typer.Exit(code=1) from error
        typer.echo(f"Found {len(changes)} diff(s).")
        if not changes:
            typer.echo("No new diffs to process.")
            return
        summary = build_patch_set(
            changes,
            patches_dir,
            project_root,
            settings.ignored_paths(ignore or ()),
            dry_run=dry_run,
        )
        _report(summary)

    if dry_run:
        return
    if not apply:
        typer.echo("Skipping apply.")
        return
    if not _apply(settings, project_root, patches_dir, assume_yes=yes):
        raise typer.Exit(code=1)

    try:
        settings.template.head = current_head(repository)
    except GitError as error:
        typer.echo(f"Warning: unable to record the template head: {error}")
        return
    save_config(config_path, settings)
    typer.echo(f"Recorded template head {settings.template.head}")


@app.command("apply")
def apply_command(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the template-sync configuration file.",
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every prompt."),
) -> None:
    """Resume applying staged patches."""
    settings, _, project_root = _load(config)
    patches_dir = resolve_path(project_root, settings.patches.directory)
    if not patches_dir.is_dir():
        typer.echo(f"No staged patches at {patches_dir}.")
        raise typer.Exit(code=1)
    if not _apply(settings, project_root, patches_dir, assume_yes=yes):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
