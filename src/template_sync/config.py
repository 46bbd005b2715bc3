"""Typed project configuration for template-sync, stored as YAML."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_CONFIG_NAME = "config.yaml"
DEFAULT_PATCHES_DIR = ".template-sync/patches"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be read or is invalid."""


class ConfigModel(BaseModel):
    """Base Pydantic model with strict field handling."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class TemplateSettings(ConfigModel):
    """Where the template lives and which commit the project last synced from."""

    repository: Optional[str] = None
    head: Optional[str] = None
    ignore: List[str] = Field(default_factory=list)


class PatchSettings(ConfigModel):
    directory: str = DEFAULT_PATCHES_DIR
    fuzz: int = Field(default=10, ge=0)


class InstallerSettings(ConfigModel):
    command: List[str] = Field(default_factory=lambda: ["npm", "install"], min_length=1)


class SyncConfig(ConfigModel):
    template: TemplateSettings = Field(default_factory=TemplateSettings)
    patches: PatchSettings = Field(default_factory=PatchSettings)
    installer: InstallerSettings = Field(default_factory=InstallerSettings)

    def ignored_paths(self, extra: Iterable[str] = ()) -> List[str]:
        """Configured ignore prefixes plus ``extra``, without duplicates."""
        seen: List[str] = []
        for path in (*self.template.ignore, *extra):
            if path and path not in seen:
                seen.append(path)
        return seen


def resolve_path(base: Path, value: str) -> Path:
    """Resolve ``value`` relative to ``base`` unless it is already absolute."""
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


def load_config(config_path: Path) -> SyncConfig:
    """Load and validate ``config_path``; a missing file yields the defaults."""
    if not config_path.exists():
        return SyncConfig()

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as error:
        raise ConfigError(f"Unable to read {config_path}: {error}") from error
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse {config_path}: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    try:
        return SyncConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {config_path}: {error}") from error


def save_config(config_path: Path, config: SyncConfig) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.model_dump(mode="json", exclude_none=True), handle, sort_keys=False)


__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_PATCHES_DIR",
    "InstallerSettings",
    "PatchSettings",
    "SyncConfig",
    "TemplateSettings",
    "load_config",
    "resolve_path",
    "save_config",
]
