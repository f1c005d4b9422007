"""Tests for the application configuration."""

from pathlib import Path

import fsspec
import pytest
from pydantic import ValidationError

from stickyboard.config import (
    AppConfig,
    UnknownSettingError,
    apply_config_changes,
    default_config_path,
    default_data_path,
    load_config,
    save_config,
)
from stickyboard.utils import fs_join, fs_read_json, fs_write_json


def test_defaults_follow_home_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STICKYBOARD_HOME", str(tmp_path))
    assert default_config_path() == tmp_path / "config.json"
    assert default_data_path() == str(tmp_path / "data")

    config = AppConfig()
    assert config.data_path == str(tmp_path / "data")
    assert config.hotkeys.toggle_overlay == "Alt+Q"
    assert config.confirm_delete is True


def test_missing_file_gives_defaults(fs_impl: tuple[fsspec.AbstractFileSystem, str]) -> None:
    fs, root = fs_impl
    config = load_config(fs_join(root, "config.json"), fs)
    assert config.hotkeys.search == "Ctrl+F"


def test_save_and_load(fs_impl: tuple[fsspec.AbstractFileSystem, str]) -> None:
    fs, root = fs_impl
    path = fs_join(root, "config.json")
    config = AppConfig(data_path="/somewhere", confirm_delete=False)

    assert save_config(config, path, fs) is True
    raw = fs_read_json(fs, path)
    assert raw["dataPath"] == "/somewhere"
    assert raw["hotkeys"]["toggleOverlay"] == "Alt+Q"

    loaded = load_config(path, fs)
    assert loaded == config


def test_invalid_keys_keep_defaults(fs_impl: tuple[fsspec.AbstractFileSystem, str]) -> None:
    fs, root = fs_impl
    path = fs_join(root, "config.json")
    fs_write_json(
        fs,
        path,
        {
            "confirmDelete": "sometimes",
            "checkForUpdates": False,
            "hotkeys": {"newNote": "Ctrl+N", "explode": "X"},
            "theme": "dark",
        },
    )

    config = load_config(path, fs)
    assert config.confirm_delete is True
    assert config.check_for_updates is False
    assert config.hotkeys.new_note == "Ctrl+N"


def test_corrupt_file_gives_defaults(fs_impl: tuple[fsspec.AbstractFileSystem, str]) -> None:
    fs, root = fs_impl
    path = fs_join(root, "config.json")
    fs.makedirs(root, exist_ok=True)
    with fs.open(path, "w") as handle:
        handle.write("[1, 2")
    assert load_config(path, fs) == AppConfig()


def test_apply_changes_returns_copy() -> None:
    config = AppConfig(data_path="/a")
    updated = apply_config_changes(config, {"confirmDelete": False, "hotkeys": {"search": "F3"}})

    assert updated.confirm_delete is False
    assert updated.hotkeys.search == "F3"
    assert updated.hotkeys.archive == "Ctrl+Shift+A"
    assert config.confirm_delete is True

    with pytest.raises(UnknownSettingError):
        apply_config_changes(config, {"theme": "dark"})
    with pytest.raises(ValidationError):
        apply_config_changes(config, {"confirm_delete": "sometimes"})
