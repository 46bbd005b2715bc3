from __future__ import annotations

import subprocess
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def run_git(repo_root: Path, *cmd: str) -> str:
    result = subprocess.run(
        ["git", *cmd],
        cwd=repo_root,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@dataclass(slots=True)
class TemplateProject:
    """A template checkout with two commits and a project generated from the first."""

    template: Path
    project: Path
    config_path: Path
    base: str
    head: str


@pytest.fixture()
def template_project(tmp_path: Path) -> TemplateProject:
    """Create a template git repository plus a diverged project bootstrapped from it."""

    template = tmp_path / "template"
    template.mkdir()
    run_git(template, "init")
    run_git(template, "config", "user.email", "template@example.com")
    run_git(template, "config", "user.name", "Template Author")

    manifest = textwrap.dedent(
        """
        {
          "name": "template",
          "dependencies": {
            "react": "^18.2.0"
          }
        }
        """
    ).lstrip()
    (template / "keep.txt").write_text("alpha\nbeta\ngamma\n", encoding="utf-8")
    (template / "gone.txt").write_text("obsolete\n", encoding="utf-8")
    (template / "rename-me.txt").write_text("moving content\n", encoding="utf-8")
    (template / "package.json").write_text(manifest, encoding="utf-8")
    run_git(template, "add", ".")
    run_git(template, "commit", "-m", "Initial template")
    base = run_git(template, "rev-parse", "HEAD")

    (template / "keep.txt").write_text("alpha\nbeta\ngamma\ndelta\n", encoding="utf-8")
    run_git(template, "rm", "-q", "gone.txt")
    run_git(template, "mv", "rename-me.txt", "renamed.txt")
    (template / "new.txt").write_text("fresh\n", encoding="utf-8")
    (template / "package-lock.json").write_text("{}\n", encoding="utf-8")
    run_git(template, "add", ".")
    run_git(template, "commit", "-m", "Update template")
    head = run_git(template, "rev-parse", "HEAD")

    project = tmp_path / "project"
    project.mkdir()
    (project / "keep.txt").write_text("# local header\nalpha\nbeta\ngamma\n", encoding="utf-8")
    (project / "gone.txt").write_text("obsolete\n", encoding="utf-8")
    (project / "rename-me.txt").write_text("moving content\n", encoding="utf-8")
    (project / "package.json").write_text(manifest, encoding="utf-8")

    config_path = project / "config.yaml"
    config_path.write_text(
        textwrap.dedent(
            f"""
            template:
              repository: ../template
              head: {base}
            """
        ).lstrip(),
        encoding="utf-8",
    )

    return TemplateProject(
        template=template,
        project=project,
        config_path=config_path,
        base=base,
        head=head,
    )
