"""Application configuration management."""

from __future__ import annotations

import json
import logging
import os
import sys
from configparser import ConfigParser
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, MutableMapping

CONFIG_DIR_NAME = "AssistantChat"
DEFAULT_JSON_FILENAME = "settings.json"
DEFAULT_INI_FILENAME = "settings.ini"
SETTINGS_SECTION = "assistant"

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_WELCOME_MESSAGE = "Hello! How can I help you today?"
DEFAULT_FALLBACK_MESSAGE = "Sorry, I encountered an error. Please try again later."


logger = logging.getLogger(__name__)


def get_user_config_dir(app_name: str = CONFIG_DIR_NAME) -> Path:
    """Return the configuration directory for the current user.

    The directory is created on first use. On Windows the directory is
    under ``%APPDATA%``; otherwise the XDG base directory or ``~/.config``
    is used.
    """
    if sys.platform.startswith("win"):
        base_dir = Path(os.getenv("APPDATA", Path.home()))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    config_dir = base_dir / app_name
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


class ConfigManager:
    """Load and save the widget configuration file."""

    def __init__(
        self,
        app_name: str = CONFIG_DIR_NAME,
        *,
        format: str = "json",
        filename: str | None = None,
    ) -> None:
        self.app_name = app_name
        self.format = format.lower()
        if self.format not in {"json", "ini"}:
            raise ValueError("format must be either 'json' or 'ini'")
        if filename is None:
            filename = (
                DEFAULT_JSON_FILENAME if self.format == "json" else DEFAULT_INI_FILENAME
            )
        self.config_dir = get_user_config_dir(app_name)
        self.config_path = self.config_dir / filename

    def load(self) -> dict[str, Any]:
        """Load configuration from disk.

        Returns an empty dictionary if the configuration file is absent.
        """
        if not self.config_path.exists():
            return {}

        if self.format == "json":
            with self.config_path.open("r", encoding="utf-8") as fh:
                return json.load(fh)

        parser = ConfigParser()
        parser.read(self.config_path, encoding="utf-8")
        return {section: dict(parser.items(section)) for section in parser.sections()}

    def save(self, data: MutableMapping[str, Any]) -> None:
        """Persist configuration data to disk."""
        if self.format == "json":
            with self.config_path.open("w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
                fh.write("\n")
            return

        parser = ConfigParser()
        for section, values in data.items():
            if not isinstance(values, MutableMapping):
                raise ValueError("INI configuration requires mapping values per section")
            parser[section] = {str(key): str(value) for key, value in values.items()}
        with self.config_path.open("w", encoding="utf-8") as fh:
            parser.write(fh)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"ConfigManager(app_name={self.app_name!r}, format={self.format!r}, path={self.config_path!s})"


@dataclass(frozen=True)
class AssistantSettings:
    """Connection and copy settings for the chat widget."""

    base_url: str = DEFAULT_BASE_URL
    chat_path: str = "/api/chat"
    feedback_path: str = "/api/feedback"
    articles_path: str = "/api/knowledge-articles"
    timeout: float = 60.0
    max_retries: int = 0
    retry_backoff: float = 0.5
    welcome_message: str = DEFAULT_WELCOME_MESSAGE
    input_placeholder: str = "Type your message..."
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> "AssistantSettings":
        """Build settings from a config section, ignoring invalid entries.

        INI sections deliver every value as a string, so numbers are
        coerced here rather than trusted.
        """

        if not isinstance(values, Mapping):
            return cls()
        defaults = cls()
        parsed: dict[str, Any] = {}
        for field_info in fields(cls):
            if field_info.name not in values:
                continue
            raw = values[field_info.name]
            default = getattr(defaults, field_info.name)
            try:
                value: Any
                if isinstance(default, int):
                    value = max(int(raw), 0)
                elif isinstance(default, float):
                    value = float(raw)
                    if value <= 0:
                        raise ValueError(f"{field_info.name} must be positive")
                else:
                    value = str(raw).strip()
                    if not value:
                        raise ValueError(f"{field_info.name} must not be empty")
            except (TypeError, ValueError) as exc:
                logger.warning(
                    "Ignoring invalid setting",
                    extra={"setting": field_info.name, "value": raw, "error": str(exc)},
                )
                continue
            parsed[field_info.name] = value
        if "base_url" in parsed:
            parsed["base_url"] = parsed["base_url"].rstrip("/") or DEFAULT_BASE_URL
        return cls(**parsed)


def load_settings(config_manager: ConfigManager | None = None) -> AssistantSettings:
    """Return :class:`AssistantSettings` read from the user configuration."""

    manager = config_manager or ConfigManager()
    data = manager.load()
    if not isinstance(data, dict):
        data = {}
    return AssistantSettings.from_mapping(data.get(SETTINGS_SECTION))


__all__ = [
    "AssistantSettings",
    "ConfigManager",
    "get_user_config_dir",
    "load_settings",
]
