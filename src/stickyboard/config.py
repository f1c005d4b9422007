"""Application configuration persisted as ``config.json``."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .utils import fs_exists, fs_read_json, fs_write_json, get_fs_and_path

if TYPE_CHECKING:
    import fsspec

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "STICKYBOARD_HOME"
DEFAULT_HOME_DIRNAME = "StickyBoard"
CONFIG_FILENAME = "config.json"
DATA_DIRNAME = "data"


class UnknownSettingError(ValueError):
    """Raised when a config key does not name a setting."""


def config_home() -> Path:
    """Directory holding the config file and, by default, the data."""
    return Path(os.environ.get(HOME_ENV_VAR, str(Path.home() / DEFAULT_HOME_DIRNAME)))


def default_config_path() -> Path:
    return config_home() / CONFIG_FILENAME


def default_data_path() -> str:
    return str(config_home() / DATA_DIRNAME)


_CAMEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    validate_assignment=True,
)


class Hotkeys(BaseModel):
    """Global shortcut bindings, in accelerator notation."""

    model_config = _CAMEL_CONFIG

    toggle_overlay: str = "Alt+Q"
    new_note: str = "Ctrl+Shift+N"
    search: str = "Ctrl+F"
    archive: str = "Ctrl+Shift+A"


class AppConfig(BaseModel):
    """Process-wide settings."""

    model_config = _CAMEL_CONFIG

    data_path: str = Field(default_factory=default_data_path)
    hotkeys: Hotkeys = Field(default_factory=Hotkeys)
    confirm_delete: bool = True
    check_for_updates: bool = True

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _merge(override: dict[str, Any]) -> AppConfig:
    """Overlay on-disk keys on the defaults, one key at a time.

    A key whose value fails validation keeps its default.
    """
    config = AppConfig()
    for key, value in override.items():
        if key == "hotkeys" and isinstance(value, dict):
            for name, binding in value.items():
                try:
                    setattr(config.hotkeys, _field(Hotkeys, name), binding)
                except (UnknownSettingError, ValidationError) as e:
                    logger.warning("Ignoring hotkey %s: %s", name, e)
            continue
        try:
            setattr(config, _field(AppConfig, key), value)
        except (UnknownSettingError, ValidationError) as e:
            logger.warning("Ignoring config key %s: %s", key, e)
    return config


def _field(model: type[BaseModel], key: str) -> str:
    for name, info in model.model_fields.items():
        if key in (name, info.alias):
            return name
    msg = f"Unknown setting: {key}"
    raise UnknownSettingError(msg)


def load_config(
    path: str | Path | None = None,
    fs: fsspec.AbstractFileSystem | None = None,
) -> AppConfig:
    """Load the configuration, falling back to defaults.

    Args:
        path: Config file; defaults to ``default_config_path()``.
        fs: Optional filesystem implementation.

    Returns:
        Defaults merged with whatever the file provides. A missing or
        unreadable file yields the defaults.

    """
    fs_obj, config_path = get_fs_and_path(path or default_config_path(), fs)
    if not fs_exists(fs_obj, config_path):
        return AppConfig()
    try:
        raw = fs_read_json(fs_obj, config_path)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not read config %s: %s", config_path, e)
        return AppConfig()
    if not isinstance(raw, dict):
        logger.warning("Ignoring config %s: expected a JSON object", config_path)
        return AppConfig()
    return _merge(raw)


def save_config(
    config: AppConfig,
    path: str | Path | None = None,
    fs: fsspec.AbstractFileSystem | None = None,
) -> bool:
    """Write ``config`` as pretty JSON; failures are logged, not raised."""
    fs_obj, config_path = get_fs_and_path(path or default_config_path(), fs)
    try:
        fs_write_json(fs_obj, config_path, config.to_json())
    except OSError:
        logger.exception("Could not save config to %s", config_path)
        return False
    return True


def apply_config_changes(config: AppConfig, changes: dict[str, Any]) -> AppConfig:
    """Return a validated copy of ``config`` with ``changes`` applied.

    Keys may be snake_case or camelCase; ``hotkeys`` may be a partial mapping.

    Raises:
        UnknownSettingError: If a key is not a setting.
        pydantic.ValidationError: If a value is invalid.

    """
    updated = config.model_copy(deep=True)
    for key, value in changes.items():
        name = _field(AppConfig, key)
        if name == "hotkeys" and isinstance(value, dict):
            for hotkey, binding in value.items():
                setattr(updated.hotkeys, _field(Hotkeys, hotkey), binding)
        else:
            setattr(updated, name, value)
    return updated
