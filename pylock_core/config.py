"""Layered settings: CLI, environment, project, user config, defaults."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import tomllib

from .lockfile import DEFAULT_LOCKFILE_NAME
from .paths import UserDirs

CONFIG_FILE_NAME = "config.toml"
PROJECT_FILE_NAME = "pyproject.toml"
PROJECT_TABLE = ("tool", "pylock")

_DEFAULTS: dict[str, Any] = {
    "output": DEFAULT_LOCKFILE_NAME,
    "exclude": [],
    "log_level": "WARNING",
}
_ENV_KEY_MAP: dict[str, str] = {
    "output": "PYLOCK_OUTPUT",
    "exclude": "PYLOCK_EXCLUDE",
    "log_level": "PYLOCK_LOG_LEVEL",
}
_LIST_SPLIT_RE = re.compile(r"[,\s]+")


def _load_config_from_file(path: Path, table: tuple[str, ...] = ()) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError):
        return {}
    for key in table:
        data = data.get(key)
        if not isinstance(data, dict):
            return {}
    return {key.replace("-", "_"): value for key, value in data.items()}


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [item for item in _LIST_SPLIT_RE.split(value) if item]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


@dataclass(frozen=True)
class Settings:
    output: str
    exclude: tuple[str, ...]
    log_level: str


@dataclass
class SettingsResolver:
    """Resolve pylock settings while honoring layered configuration."""

    config_filename: str = CONFIG_FILE_NAME
    user_dirs: UserDirs | None = None
    cli_overrides: Mapping[str, Any] | None = None
    env: Mapping[str, str] | None = None
    defaults: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        self.user_dirs = self.user_dirs or UserDirs()
        self.cli_overrides = {
            key: value for key, value in dict(self.cli_overrides or {}).items() if value
        }
        self.env = self.env if self.env is not None else os.environ
        base_defaults = dict(_DEFAULTS)
        if self.defaults:
            base_defaults.update(self.defaults)
        self.defaults = base_defaults

    # ---------- Public API ----------

    def find_project(self, start_dir: Path | None = None) -> Path | None:
        """Return the nearest ``pyproject.toml`` walking up from ``start_dir``."""
        start = (Path(start_dir) if start_dir else Path.cwd()).resolve()
        for current in (start, *start.parents):
            candidate = current / PROJECT_FILE_NAME
            if candidate.is_file():
                return candidate
        return None

    def resolve_setting(self, key: str, start_dir: Path | None = None) -> Any:
        """Return the value for `key` using CLI, env, project, user, defaults order."""
        if (value := self.cli_overrides.get(key)):
            return value
        if (value := self._env_value(key)):
            return value
        if (value := self._project_config_layer(start_dir).get(key)):
            return value
        if (value := self._user_config_layer().get(key)):
            return value
        return self.defaults.get(key)

    def resolve(self, start_dir: Path | None = None) -> Settings:
        return Settings(
            output=str(self.resolve_setting("output", start_dir)),
            exclude=tuple(_as_list(self.resolve_setting("exclude", start_dir))),
            log_level=str(self.resolve_setting("log_level", start_dir)).upper(),
        )

    # ---------- Internal helpers ----------

    def _env_value(self, key: str) -> str | None:
        alias = _ENV_KEY_MAP.get(key)
        if alias:
            return self.env.get(alias) or None
        return None

    def _project_config_layer(self, start_dir: Path | None) -> dict[str, Any]:
        project_file = self.find_project(start_dir)
        if project_file is None:
            return {}
        return _load_config_from_file(project_file, PROJECT_TABLE)

    def _user_config_layer(self) -> dict[str, Any]:
        config_path = self.user_dirs.config_dir() / self.config_filename
        return _load_config_from_file(config_path)
