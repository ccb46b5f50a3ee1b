"""
Manages loading and validation of the INI configuration file, with
environment variable and command-line overrides.
"""

import configparser
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ncore_stream.exceptions import ConfigurationError
from ncore_stream.models.config import StreamConfig

log = logging.getLogger(__name__)

# Environment variable -> config key
ENV_OVERRIDES = {
    "NCORE_USERNAME": "ncore_username",
    "NCORE_PASSWORD": "ncore_password",
    "NCORE_URL": "ncore_url",
    "CINEMETA_URL": "cinemeta_url",
    "PORT": "port",
    "PUBLIC_URL": "public_url",
    "ADDON_DIR": "addon_dir",
    "TORRENT_DIR": "torrent_dir",
    "TORRENTS_DIR": "torrents_dir",
    "DOWNLOADS_DIR": "downloads_dir",
    "ADMIN_TOKEN": "admin_token",
    "LOG_DIR": "log_dir",
}

_HIDDEN_KEYS = {"ncore_password", "admin_token"}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path, environ: Mapping[str, str] | None = None):
        self.config_file_path = config_file_path
        self._environ = os.environ if environ is None else environ
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> StreamConfig:
        """
        Loads configuration from the INI file, then applies environment and
        CLI overrides (in that order), and validates the result.

        Raises:
            ConfigurationError: If the file cannot be parsed or validation fails.
        """
        settings = self.read_settings()

        for env_key, config_key in ENV_OVERRIDES.items():
            value = self._environ.get(env_key)
            if value:
                settings[config_key] = value

        if cli_options:
            settings.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            return StreamConfig(**settings)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def read_settings(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file, if there is one."""
        if not self.config_file_path.is_file():
            log.debug(
                f"No config file at '{self.config_file_path}', "
                "relying on environment and defaults."
            )
            return {}
        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        known_keys = StreamConfig.get_ini_keys()
        section = self._parser["DEFAULT"]
        unknown = set(section) - known_keys
        if unknown:
            log.warning(
                f"[yellow]Ignoring unknown config keys: {', '.join(sorted(unknown))}"
                "[/yellow]"
            )
        return {key: value for key, value in section.items() if key in known_keys}

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file with every known key,
        using the given settings first and model defaults otherwise.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        for key, field in StreamConfig.model_fields.items():
            value = settings.get(key)
            if value is None:
                value = "" if field.is_required() else field.default
            config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def redacted(config: StreamConfig) -> dict[str, Any]:
        """The config as a dictionary with secrets hidden, for display."""
        return {
            key: "[hidden]" if key in _HIDDEN_KEYS and value else value
            for key, value in config.model_dump().items()
        }
