# sitesh — Interactive Shell Sessions for Hosted Site Environments
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Filesystem locations and configuration loading for sitesh.

Handles:
- Data root resolution (SITESH_DATA_HOME, ~/.local/share)
- Per-site history, crash log and recovery paths
- Site registry path resolution (SITESH_REGISTRY)
- Packaged YAML defaults loading (sitesh/defaults/system.yaml)
- User override merge (<data_root>/sitesh/config.yaml)
- ANSI coloring constants
"""

from __future__ import annotations

import os
from importlib import resources as importlib_resources
from pathlib import Path
from typing import Any

import yaml

# -----------------------
# UI constants
# -----------------------

ANSI_COLORS: dict[str, str] = {
    "cyan": "\033[38;5;69;1m",
    "pink": "\033[38;5;169;1m",
    "magenta": "\033[38;5;126;1m",
    "yellow": "\033[38;5;226;1m",
    "purple": "\033[38;5;96;1m",
    "reset": "\033[0m",
    "dim": "\033[2m",
    "green": "\033[32m",
    "red": "\033[31m",
}

TAG_COLORS: dict[str, str] = {
    "ERR": "red",
    "INFO": "cyan",
}


def tag(name: str, message: str) -> str:
    """Render a colored ``[NAME] message`` line."""
    color = ANSI_COLORS.get(TAG_COLORS.get(name, "reset"), "")
    return f"{color}[{name}]{ANSI_COLORS['reset']} {message}"


# -----------------------
# Config model wrapper
# -----------------------


class YAMLConfig:
    """Read-only wrapper around the merged configuration mapping."""

    def __init__(self, config_dict: dict[str, Any]):
        self._config = config_dict

    @property
    def remote(self) -> dict[str, Any]:
        return self._config.get("remote", {})

    @property
    def ssh(self) -> dict[str, Any]:
        return self._config.get("ssh", {})

    @property
    def editor(self) -> dict[str, Any]:
        return self._config.get("editor", {})

    @property
    def session(self) -> dict[str, Any]:
        return self._config.get("session", {})

    @property
    def system(self) -> dict[str, Any]:
        return self._config.get("system", {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_path(self, path: str, default: Any = None) -> Any:
        """
        Nested lookup using dot-separated path.
        Example: get_path("ui.prompt.site_color", "cyan")
        """
        if not path:
            return default

        cur: Any = self._config
        for part in path.split("."):
            if not isinstance(cur, dict):
                return default
            if part not in cur:
                return default
            cur = cur[part]
        return cur


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``.

    Nested dicts merge recursively, lists and scalars are replaced and
    ``None`` in the override leaves the base value alone.
    """
    result = base.copy()
    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


# -----------------------
# Data root + paths
# -----------------------


def get_data_root() -> Path:
    """Get the data root directory for sitesh.

    Resolution order:
    1. SITESH_DATA_HOME environment variable (if set)
    2. ~/.local/share (default, XDG_DATA_HOME is ignored)
    """
    data_home = os.getenv("SITESH_DATA_HOME")
    if data_home:
        root = Path(data_home)
    else:
        root = Path.home() / ".local" / "share"

    root.mkdir(parents=True, exist_ok=True)
    return root


def app_dir(data_root: Path | None = None) -> Path:
    """<data_root>/sitesh"""
    return (data_root or get_data_root()) / "sitesh"


def history_path(label: str, data_root: Path | None = None) -> Path:
    """Per site/env history file, e.g. <data_root>/sitesh/history/acme.dev"""
    path = app_dir(data_root) / "history" / label
    # History may contain secrets typed at the prompt.
    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    return path


def recovery_dir(data_root: Path | None = None) -> Path:
    """Where edits that could not be uploaded are kept."""
    path = app_dir(data_root) / "recovered"
    path.mkdir(parents=True, exist_ok=True, mode=0o700)
    return path


def registry_path(data_root: Path | None = None) -> Path:
    """Resolve the site registry file.

    SITESH_REGISTRY wins when set; otherwise <data_root>/sitesh/sites.
    """
    override = os.getenv("SITESH_REGISTRY")
    if override:
        return Path(override).expanduser()
    return app_dir(data_root) / "sites"


# -----------------------
# Packaged defaults loading
# -----------------------


def _defaults_dir() -> Path:
    """Return the installed path to the packaged defaults directory."""
    return Path(
        importlib_resources.files("sitesh.defaults")
    )  # type: ignore[arg-type]


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{path} must load to a mapping/dict.")
    return data


def load_defaults_yaml(filename: str) -> dict[str, Any]:
    """
    Load a YAML file from sitesh/defaults/.
    """
    defaults_dir = _defaults_dir()
    path = defaults_dir / filename
    if not path.exists():
        raise FileNotFoundError(
            f"Missing defaults YAML: {filename} "
            f"(looked in {defaults_dir})"
        )
    return _load_yaml_mapping(path)


def user_config_path(data_root: Path | None = None) -> Path:
    return app_dir(data_root) / "config.yaml"


def load_system_config(data_root: Path | None = None) -> YAMLConfig:
    """
    Load system.yaml from packaged defaults, merge the user override
    (if present) and return a YAMLConfig wrapper.
    """
    merged = load_defaults_yaml("system.yaml")

    override = user_config_path(data_root)
    if override.exists():
        merged = deep_merge(merged, _load_yaml_mapping(override))

    return YAMLConfig(merged)
