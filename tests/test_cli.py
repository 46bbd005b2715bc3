from __future__ import annotations

from pathlib import Path

import yaml
from typer.testing import CliRunner

from template_sync.cli import app

runner = CliRunner()


def _patches_dir(project: Path) -> Path:
    return project / ".template-sync" / "patches"


def test_correct_prints_realigned_patch(tmp_path: Path) -> None:
    patch = tmp_path / "greeting.patch"
    patch.write_text(
        "--- a/greeting.js\n"
        "+++ b/greeting.js\n"
        "@@ -1,1 +1,1 @@\n"
        '-const greeting = "hello"\n'
        '+const greeting = "hello world"\n',
        encoding="utf-8",
    )
    target = tmp_path / "greeting.js"
    target.write_text('// one\n// two\n// three\nconst greeting = "hello"\n', encoding="utf-8")

    result = runner.invoke(app, ["correct", str(patch), str(target)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "@@ -4,1 +4,1 @@" in result.output

    target.write_text('const greeting = "hello world"\n', encoding="utf-8")
    result = runner.invoke(app, ["correct", str(patch), str(target)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "No changes remain." in result.output


def test_update_stages_patches_without_applying(template_project) -> None:
    result = runner.invoke(
        app,
        ["update", "--config", str(template_project.config_path), "--no-apply", "--yes"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Found 5 diff(s)." in result.output
    assert "SKIP A package-lock.json (ignored)" in result.output
    assert "Skipping apply." in result.output

    patches_dir = _patches_dir(template_project.project)
    staged = sorted(path.name for path in patches_dir.iterdir() if path.name.endswith(".patch"))
    assert staged == ["000.patch", "001.patch", "002.patch", "003.patch"]
    assert "new.txt" in (patches_dir / "000.patch").read_text(encoding="utf-8")
    assert "gone.txt" in (patches_dir / "001.patch").read_text(encoding="utf-8")
    assert "rename to renamed.txt" in (patches_dir / "002.patch").read_text(encoding="utf-8")
    assert "+delta" in (patches_dir / "003.patch").read_text(encoding="utf-8")
    assert (patches_dir / "003.patch.verbose").exists()

    config = yaml.safe_load(template_project.config_path.read_text(encoding="utf-8"))
    assert config["template"]["head"] == template_project.base


def test_update_dry_run_writes_nothing(template_project) -> None:
    result = runner.invoke(
        app,
        ["update", "--config", str(template_project.config_path), "--dry-run"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "(dry run) M keep.txt -> 003.patch" in result.output
    assert not _patches_dir(template_project.project).exists()


def test_update_keeps_existing_patches_when_declined(template_project) -> None:
    patches_dir = _patches_dir(template_project.project)
    patches_dir.mkdir(parents=True)
    (patches_dir / "000.patch").write_text("previous\n", encoding="utf-8")

    result = runner.invoke(
        app,
        ["update", "--config", str(template_project.config_path), "--no-apply"],
        input="n\n",
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Found" not in result.output
    assert (patches_dir / "000.patch").read_text(encoding="utf-8") == "previous\n"


def test_update_requires_repository(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("template:\n  head: abc123\n", encoding="utf-8")

    result = runner.invoke(app, ["update", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "No template repository configured" in result.output


def test_set_records_template_settings(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"

    result = runner.invoke(
        app,
        [
            "set",
            "--config",
            str(config_path),
            "--repo",
            "../template",
            "--head",
            "abc123",
            "--ignore",
            "docs",
            "--ignore",
            "docs",
        ],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    config = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    assert config["template"] == {"repository": "../template", "head": "abc123", "ignore": ["docs"]}


def test_apply_resumes_staged_patches(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    (project / "gone.txt").write_text("obsolete\n", encoding="utf-8")
    config_path = project / "config.yaml"
    config_path.write_text("template:\n  repository: ../template\n", encoding="utf-8")
    patches_dir = _patches_dir(project)
    patches_dir.mkdir(parents=True)
    (patches_dir / "000.patch").write_text(
        "diff --git a/gone.txt b/gone.txt\ndeleted file mode 100644\n--- a/gone.txt\n+++ /dev/null\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["apply", "--config", str(config_path)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Applied 1 patch(es)." in result.output
    assert not (project / "gone.txt").exists()
    assert (patches_dir / "000.patch.applied").exists()


def test_apply_without_staged_patches_fails(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"

    result = runner.invoke(app, ["apply", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "No staged patches" in result.output
