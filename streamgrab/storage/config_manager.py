"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from streamgrab.exceptions import ConfigurationError
from streamgrab.models.config import EngineConfig

log = logging.getLogger(__name__)

SECTION = "DEFAULT"


def _to_ini(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(map(str, value))
    return str(value)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> EngineConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing file is not an error: defaults are used, so the engine runs
        without an `init` step.

        Args:
            cli_options: A dictionary of options provided via the command line.
                Entries set to None are ignored.

        Returns:
            A validated EngineConfig object.

        Raises:
            ConfigurationError: If the config file is unreadable or validation fails.
        """
        config_from_file: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(f"No configuration file at '{self.config_file_path}'.")

        if cli_options:
            config_from_file.update(
                {k: v for k, v in cli_options.items() if v is not None}
            )

        try:
            config_dir = self.config_file_path.parent
            return EngineConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Missing keys take
                the model defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        defaults = EngineConfig()

        for key in sorted(EngineConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key))
            config[SECTION][key] = _to_ini(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser[SECTION]
        defaults = EngineConfig()
        try:
            return {
                "concurrency": section.getint("concurrency", defaults.concurrency),
                "failure_budget": section.getint(
                    "failure_budget", defaults.failure_budget
                ),
                "segment_retries": section.getint(
                    "segment_retries", defaults.segment_retries
                ),
                "retry_delay": section.getfloat("retry_delay", defaults.retry_delay),
                "max_track_duration": section.getint(
                    "max_track_duration", defaults.max_track_duration
                ),
                "preferred_quality": section.get(
                    "preferred_quality", defaults.preferred_quality
                ),
                "user_agent": section.get("user_agent", defaults.user_agent),
                "connect_timeout": section.getfloat(
                    "connect_timeout", defaults.connect_timeout
                ),
                "read_timeout": section.getfloat(
                    "read_timeout", defaults.read_timeout
                ),
                "output_dir": section.get("output_dir", defaults.output_dir),
                "confirm_save": section.getboolean(
                    "confirm_save", defaults.confirm_save
                ),
                "overwrite": section.getboolean("overwrite", defaults.overwrite),
                "cookies_file": section.get("cookies_file", defaults.cookies_file),
                "min_size": section.getint("min_size", defaults.min_size),
                "blacklisted_domains": [
                    d.strip()
                    for d in section.get("blacklisted_domains", "").split(",")
                    if d.strip()
                ],
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = EngineConfig()
        needs_saving = False

        config_section = self._parser[SECTION]

        for key in sorted(EngineConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = _to_ini(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
