from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from template_sync.config import (
    DEFAULT_PATCHES_DIR,
    ConfigError,
    SyncConfig,
    load_config,
    resolve_path,
    save_config,
)


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "config.yaml")

    assert config.template.repository is None
    assert config.patches.directory == DEFAULT_PATCHES_DIR
    assert config.patches.fuzz == 10
    assert config.installer.command == ["npm", "install"]


def test_load_valid_config(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "template:\n"
        "  repository: ../template\n"
        "  head: abc123\n"
        "  ignore: [docs, README.md]\n"
        "patches:\n"
        "  fuzz: 3\n"
        "installer:\n"
        "  command: [pnpm, add]\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.template.head == "abc123"
    assert config.template.ignore == ["docs", "README.md"]
    assert config.patches.fuzz == 3
    assert config.installer.command == ["pnpm", "add"]


@pytest.mark.parametrize(
    "content",
    [
        "template:\n  repo: ../template\n",
        "patches:\n  fuzz: -1\n",
        "installer:\n  command: []\n",
        "- just\n- a list\n",
        "template: [unclosed\n",
    ],
)
def test_invalid_config_raises(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)


def test_save_then_load(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.yaml"
    config = SyncConfig()
    config.template.repository = "/srv/template"
    config.template.ignore = ["docs"]

    save_config(path, config)

    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert list(raw) == ["template", "patches", "installer"]
    assert "head" not in raw["template"]
    assert load_config(path) == config


def test_ignored_paths_are_deduplicated() -> None:
    config = SyncConfig.model_validate({"template": {"ignore": ["docs", "assets"]}})

    assert config.ignored_paths(["assets", "public", ""]) == ["docs", "assets", "public"]


def test_resolve_path_is_relative_to_base(tmp_path: Path) -> None:
    assert resolve_path(tmp_path, "../template") == (tmp_path.parent / "template").resolve()
    assert resolve_path(tmp_path, str(tmp_path / "abs")) == (tmp_path / "abs").resolve()
