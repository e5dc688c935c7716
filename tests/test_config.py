from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml

from sitesh import config


@pytest.fixture
def tmp_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    home = tmp_path / "home"
    home.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def sitesh_data_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    data = tmp_path / "sitesh_data_home"
    data.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("SITESH_DATA_HOME", str(data))
    return data


def test_get_data_root_prefers_sitesh_data_home(sitesh_data_home: Path) -> None:
    """
    SITESH_DATA_HOME wins when present.
    """
    assert config.get_data_root() == sitesh_data_home


def test_get_data_root_defaults_to_local_share_and_ignores_xdg(
    tmp_home: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """
    If SITESH_DATA_HOME is not set:
    - ignore XDG_DATA_HOME
    - default to ~/.local/share
    """
    monkeypatch.delenv("SITESH_DATA_HOME", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_home / "xdg_should_be_ignored"))

    expected = Path(os.path.expanduser("~")) / ".local" / "share"
    assert config.get_data_root() == expected


def test_history_path_is_per_target(sitesh_data_home: Path) -> None:
    """
    History lives at <data_root>/sitesh/history/<site.env>.
    """
    path = config.history_path("acme.dev")

    assert path == sitesh_data_home / "sitesh" / "history" / "acme.dev"
    assert path.parent.is_dir()
    assert config.history_path("acme.live") != path


def test_recovery_dir_is_created(sitesh_data_home: Path) -> None:
    path = config.recovery_dir()

    assert path == sitesh_data_home / "sitesh" / "recovered"
    assert path.is_dir()


def test_registry_path_default_and_override(
    sitesh_data_home: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("SITESH_REGISTRY", raising=False)
    assert config.registry_path() == sitesh_data_home / "sitesh" / "sites"

    monkeypatch.setenv("SITESH_REGISTRY", str(tmp_path / "elsewhere"))
    assert config.registry_path() == tmp_path / "elsewhere"


def test_packaged_defaults_load() -> None:
    data = config.load_defaults_yaml("system.yaml")

    assert data["remote"]["initial_directory"] == "/code"
    assert data["remote"]["home"] == "/tmp/sitesh-home"
    assert data["session"]["auto_list_command"] == "ls -la"
    assert "nano" in data["editor"]["candidates"]


def test_missing_defaults_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        config.load_defaults_yaml("nope.yaml")


def test_user_override_is_deep_merged(sitesh_data_home: Path) -> None:
    override = config.user_config_path()
    override.parent.mkdir(parents=True, exist_ok=True)
    override.write_text(
        yaml.safe_dump({"remote": {"port": 2200}, "editor": {"command": "vim"}})
    )

    cfg = config.load_system_config()

    assert cfg.remote["port"] == 2200
    assert cfg.remote["initial_directory"] == "/code"
    assert cfg.editor["command"] == "vim"
    assert cfg.editor["candidates"]


def test_user_override_must_be_a_mapping(sitesh_data_home: Path) -> None:
    override = config.user_config_path()
    override.parent.mkdir(parents=True, exist_ok=True)
    override.write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        config.load_system_config()


def test_deep_merge_rules() -> None:
    base = {"a": {"x": 1, "y": [1, 2]}, "b": 1}
    merged = config.deep_merge(base, {"a": {"y": [3]}, "b": None, "c": 2})

    assert merged == {"a": {"x": 1, "y": [3]}, "b": 1, "c": 2}
    assert base == {"a": {"x": 1, "y": [1, 2]}, "b": 1}


def test_get_path_lookup() -> None:
    cfg = config.YAMLConfig({"ui": {"prompt": {"site_color": "pink"}}})

    assert cfg.get_path("ui.prompt.site_color") == "pink"
    assert cfg.get_path("ui.prompt.missing", "cyan") == "cyan"
    assert cfg.get_path("ui.prompt.site_color.deeper", "x") == "x"
    assert cfg.get_path("", "d") == "d"


def test_tag_renders_label() -> None:
    assert "[ERR]" in config.tag("ERR", "boom")
    assert config.tag("ERR", "boom").endswith(" boom")
