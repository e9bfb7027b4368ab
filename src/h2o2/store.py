"""Persisted component table (the ``.h2o2config`` file)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from h2o2.components import Com, ComponentInfo, Components, default_components
from h2o2.config import get_settings
from h2o2.errors import (
    ConfigDecodeError,
    ConfigError,
    ConfigFileNotFound,
    ConfigReadError,
    ConfigWriteError,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Config:
    components: Components = field(default_factory=default_components)
    profile: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "components": {com.value: self.components[com].to_dict() for com in Com},
            "profile": dict(self.profile),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Config:
        raw_components = data.get("components") or {}
        if not isinstance(raw_components, dict):
            raise ValueError("`components` must be a table")
        components = default_components()
        for com in Com:
            entry = raw_components.get(com.value)
            if isinstance(entry, dict):
                components[com] = ComponentInfo.from_dict(entry)
        profile = data.get("profile")
        return cls(components=components, profile=profile if isinstance(profile, dict) else {})


def get_config_path() -> Path:
    return get_settings().resolved_config_path()


def load_config(path: Path | None = None) -> Config:
    config_path = path or get_config_path()
    if not config_path.is_file():
        raise ConfigFileNotFound()
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigReadError() from exc
    try:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")
        return Config.from_dict(data)
    except ValueError as exc:
        raise ConfigDecodeError() from exc


def save_config(config: Config, path: Path | None = None) -> None:
    config_path = path or get_config_path()
    text = json.dumps(config.to_dict(), indent=2, sort_keys=True) + "\n"
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ConfigWriteError() from exc


def load_or_default(path: Path | None = None) -> Config:
    """Load the config file, falling back to defaults when it is absent or broken."""
    try:
        config = load_config(path)
    except ConfigFileNotFound:
        logger.info("Config file does not exist, start initialization.")
        return Config()
    except ConfigError as exc:
        logger.error("Failed to load config! Try to reinitialize.")
        logger.debug("%r", exc.__cause__ or exc)
        return Config()
    logger.info("Config loaded successfully.")
    return config
