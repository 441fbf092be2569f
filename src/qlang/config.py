"""TOML config loading for qlang.toml and client settings."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from qlang.errors import ConfigError
from qlang.linter import ALL_RULES

CONFIG_NAME = "qlang.toml"


@dataclass
class ServerConfig:
    debug: bool = False
    linting: bool = False


@dataclass
class LintConfig:
    disable: list[str] = field(default_factory=list)


@dataclass
class QlangConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    lint: LintConfig = field(default_factory=LintConfig)


def find_config(start_path: Path | None = None) -> Path:
    """Walk up directories to find qlang.toml. Raises FileNotFoundError."""
    path = (start_path or Path.cwd()).resolve()
    if path.is_file():
        path = path.parent
    while True:
        candidate = path / CONFIG_NAME
        if candidate.exists():
            return candidate
        parent = path.parent
        if parent == path:
            raise FileNotFoundError(f"No {CONFIG_NAME} found in any parent directory")
        path = parent


def _table(path: Path, data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data[key]
    if not isinstance(value, dict):
        raise ConfigError(path, f"'{key}' must be a table")
    return value


def _bool(path: Path, table: dict[str, Any], key: str, default: bool) -> bool:
    value = table.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(path, f"'{key}' must be true or false")
    return value


def load_config(path: Path) -> QlangConfig:
    """Parse a qlang.toml file into a QlangConfig."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(path, str(e)) from e

    config = QlangConfig()

    if "server" in data:
        srv = _table(path, data, "server")
        config.server = ServerConfig(
            debug=_bool(path, srv, "debug", False),
            linting=_bool(path, srv, "linting", False),
        )

    if "lint" in data:
        disable = _table(path, data, "lint").get("disable", [])
        if not isinstance(disable, list):
            raise ConfigError(path, "'disable' must be a list of rule codes")
        unknown = [code for code in disable if code not in ALL_RULES]
        if unknown:
            raise ConfigError(path, f"unknown lint rule(s): {', '.join(map(str, unknown))}")
        config.lint = LintConfig(disable=list(disable))

    return config


def load_config_or_default(start_path: Path | None = None) -> QlangConfig:
    """Load the nearest qlang.toml, or defaults when there is none."""
    try:
        return load_config(find_config(start_path))
    except FileNotFoundError:
        return QlangConfig()


def settings_from_client(settings: Any, current: ServerConfig) -> ServerConfig:
    """Apply the `kdb` section of workspace/didChangeConfiguration settings."""
    if not isinstance(settings, dict) or not isinstance(settings.get("kdb"), dict):
        return current
    kdb = settings["kdb"]
    return ServerConfig(
        debug=kdb.get("debug_parser") is True,
        linting=kdb.get("linting") is True,
    )
