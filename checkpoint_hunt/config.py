"""
Settings for the checkpoint hunt service.

Defaults are overlaid by an optional JSON file, then by environment variables.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class HuntConfig:
    """Configuration management for the checkpoint hunt."""

    DEFAULT_CONFIG = {
        "event_name": "Checkpoint Hunt",
        "event": {
            "default_active": False,  # used when no event_config row exists
        },
        "secrets": {
            "prefix": "CSBC{",
            "suffix": "}",
            "max_length": 1000,
            "min_delay_ms": 100,
            "max_delay_ms": 150,
        },
        "store": {
            "busy_timeout": 5.0,  # seconds a writer waits for the database lock
            "max_commit_attempts": 5,
            "retry_backoff_ms": 25,
        },
        "review": {
            "default_rejection_reason": "Flag is incorrect",
            "already_completed_reason": "Level already completed via another submission",
        },
        "logging": {
            "level": "INFO",
        },
    }

    def __init__(
        self,
        config_path: Optional[str] = "hunt_config.json",
        create_missing: bool = True,
    ) -> None:
        """
        @param config_path: JSON settings file, or None to use defaults and env only
        @param create_missing: Write a default file when config_path does not exist
        """
        self.config_path = Path(config_path) if config_path else None
        self.create_missing = create_missing
        self.config = self._load_config()
        self._apply_env_overrides()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Start from the defaults and merge the JSON file over them, writing
        a fresh default file when none exists and create_missing is set.

        @return: Merged settings dict
        """
        config = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path is None:
            return config

        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded_config = json.load(f)

                # Merge with defaults to ensure all keys exist
                self._deep_merge(config, loaded_config)
                return config

            except (json.JSONDecodeError, IOError) as e:
                logger.warning(
                    "Error loading config from %s: %s; using default configuration",
                    self.config_path,
                    e,
                )
                return copy.deepcopy(self.DEFAULT_CONFIG)

        if self.create_missing:
            self._create_default_config()
        return config

    def _deep_merge(
        self,
        base_dict: Dict[str, Any],
        update_dict: Dict[str, Any],
    ) -> None:
        """
        Merge update_dict into base_dict in place, section by section.

        @param base_dict: Settings being built
        @param update_dict: Values read from the file
        """
        for key, value in update_dict.items():
            if (
                key in base_dict
                and isinstance(base_dict[key], dict)
                and isinstance(value, dict)
            ):
                self._deep_merge(base_dict[key], value)
            else:
                base_dict[key] = value

    def _apply_env_overrides(self) -> None:
        """
        Overlay settings named by environment variables (SECRET_PREFIX,
        MAX_COMMIT_ATTEMPTS and so on).
        """
        env_mappings = {
            "EVENT_NAME": ("event_name",),
            "DEFAULT_EVENT_ACTIVE": ("event", "default_active"),
            # Flag format and timing
            "SECRET_PREFIX": ("secrets", "prefix"),
            "SECRET_SUFFIX": ("secrets", "suffix"),
            "MAX_SECRET_LENGTH": ("secrets", "max_length"),
            "SECRET_MIN_DELAY_MS": ("secrets", "min_delay_ms"),
            "SECRET_MAX_DELAY_MS": ("secrets", "max_delay_ms"),
            # Datastore
            "STORE_BUSY_TIMEOUT": ("store", "busy_timeout"),
            "MAX_COMMIT_ATTEMPTS": ("store", "max_commit_attempts"),
            "COMMIT_RETRY_BACKOFF_MS": ("store", "retry_backoff_ms"),
            "LOG_LEVEL": ("logging", "level"),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_value)
                self._set_nested_config(config_path, converted_value)

    def _convert_env_value(self, value: str) -> Any:
        """
        Parse an environment string into a bool, int or float where it looks like one.

        @param value: Raw environment value
        @return: Parsed value, or the string unchanged
        """
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _set_nested_config(self, path: tuple, value: Any) -> None:
        """
        Store value under a section path such as ("store", "busy_timeout").

        @param path: Section keys, outermost first
        @param value: New setting
        """
        current = self.config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _create_default_config(self) -> None:
        """Write DEFAULT_CONFIG to config_path so operators have a file to edit."""
        try:
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(self.DEFAULT_CONFIG, f, indent=2)
            logger.info("Created default configuration file: %s", self.config_path)
        except IOError as e:
            logger.warning("Could not create config file %s: %s", self.config_path, e)

    def _reset(self, *path: str) -> None:
        default = self.DEFAULT_CONFIG
        for key in path:
            default = default[key]
        self._set_nested_config(path, copy.deepcopy(default))

    def _validate_config(self) -> None:
        """
        Replace out-of-range settings with their defaults, logging each one.
        """
        secrets = self.config["secrets"]
        if not isinstance(secrets["prefix"], str) or not secrets["prefix"]:
            logger.warning("Invalid secrets.prefix, using 'CSBC{'")
            self._reset("secrets", "prefix")
        if not isinstance(secrets["suffix"], str) or not secrets["suffix"]:
            logger.warning("Invalid secrets.suffix, using '}'")
            self._reset("secrets", "suffix")

        for key in ("max_length", "min_delay_ms", "max_delay_ms"):
            value = secrets[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                logger.warning("Invalid secrets.%s, using default", key)
                self._reset("secrets", key)

        if secrets["max_delay_ms"] < secrets["min_delay_ms"]:
            logger.warning("secrets.max_delay_ms below min_delay_ms, using min_delay_ms")
            secrets["max_delay_ms"] = secrets["min_delay_ms"]

        store = self.config["store"]
        attempts = store["max_commit_attempts"]
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts <= 0:
            logger.warning("Invalid store.max_commit_attempts, using 5")
            self._reset("store", "max_commit_attempts")

        for key in ("busy_timeout", "retry_backoff_ms"):
            value = store[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                logger.warning("Invalid store.%s, using default", key)
                self._reset("store", key)

        if not isinstance(self.config["event"]["default_active"], bool):
            logger.warning("Invalid event.default_active, using False")
            self._reset("event", "default_active")

    def get(
        self,
        *keys: str,
    ) -> Any:
        """
        Look up a setting by section path, e.g. get("secrets", "prefix").

        @param keys: Section keys, outermost first
        @return: The setting, or None when any key is missing
        """
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return None
        return value

    def get_delay_range(self) -> tuple:
        """
        Get the validator's artificial delay window in seconds.

        @return: (min_seconds, max_seconds)
        """
        return (
            self.get("secrets", "min_delay_ms") / 1000.0,
            self.get("secrets", "max_delay_ms") / 1000.0,
        )
