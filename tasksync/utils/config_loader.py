"""Configuration loader for the task sync engine.

Settings come from ``config/<TASKSYNC_ENV>.yaml`` (or an explicit path) with
``${VAR}`` references expanded from the environment, then validated as
:class:`AppConfig`.
"""

import os
import re
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from pydantic import ValidationError

from tasksync.models.config import AppConfig

log = structlog.stdlib.get_logger()

ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")
CONFIG_DIR = Path(__file__).parent.parent.parent / "config"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""


def _expand_env(value: Any) -> Any:
    """Replace ``${VAR}`` references in every string of a YAML tree."""
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    if not isinstance(value, str):
        return value

    def lookup(match: re.Match) -> str:
        name = match.group(1)
        resolved = os.getenv(name)
        if resolved is None:
            raise ConfigurationError(f"Required environment variable not set: {name}")
        return resolved

    return ENV_REFERENCE.sub(lookup, value)


class ConfigLoader:
    """Loads the sync engine configuration and checks settings that interact."""

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load and validate the configuration.

        Args:
            config_path: YAML file to read. If None, uses
                config/<TASKSYNC_ENV>.yaml, falling back to config/default.yaml

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If the file is missing, unreadable, empty or invalid,
                or references an unset environment variable
        """
        path = Path(config_path) if config_path else self._environment_config_path()
        log.info("loading_configuration", config_path=str(path))

        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {path}") from e
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load configuration file {path}: {e}") from e
        if raw is None:
            raise ConfigurationError(f"Configuration file is empty: {path}")

        try:
            config = AppConfig(**_expand_env(raw))
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info("configuration_loaded", sync_label=config.remote.sync_label, documents_root=config.documents.root)
        return config

    @staticmethod
    def _environment_config_path() -> Path:
        env = os.getenv("TASKSYNC_ENV", "default")
        for candidate in (CONFIG_DIR / f"{env}.yaml", CONFIG_DIR / "default.yaml"):
            if candidate.exists():
                return candidate
        raise ConfigurationError(f"No configuration file for environment {env!r} in {CONFIG_DIR}")

    def validate_config(self, config: AppConfig) -> list[str]:
        """Return warnings for settings that validate individually but combine badly.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []

        if abs(config.sync.conflict_window_seconds) > config.sync.interval_seconds:
            warnings.append(
                f"conflict_window_seconds ({config.sync.conflict_window_seconds}) exceeds "
                f"interval_seconds ({config.sync.interval_seconds}); most conflicts will be "
                f"decided by the window sign rather than by recency"
            )

        if config.sync.self_write_window_seconds >= config.sync.interval_seconds:
            warnings.append(
                f"self_write_window_seconds ({config.sync.self_write_window_seconds}) should be "
                f"less than interval_seconds ({config.sync.interval_seconds})"
            )

        if config.retry.base_delay_seconds > config.retry.max_delay_seconds:
            warnings.append(
                f"retry.base_delay_seconds ({config.retry.base_delay_seconds}) is larger than "
                f"retry.max_delay_seconds ({config.retry.max_delay_seconds})"
            )

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
