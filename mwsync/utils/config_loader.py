"""Configuration loader for mwsync."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Mapping

import structlog
import yaml
from pydantic import ValidationError

from mwsync.errors import ConfigurationError
from mwsync.models.config import AppConfig

log = structlog.stdlib.get_logger()


class ConfigLoader:
    """Loads and validates application configuration from YAML files and environment variables."""

    def __init__(self) -> None:
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    def load_config(self, config_path: str | Path) -> AppConfig:
        """Load configuration from a YAML file.

        Nested sections and flat dotted keys (``source.location: ...``) may be
        mixed freely. ``${VAR}`` references are substituted from the environment.

        Args:
            config_path: Path to the configuration YAML file

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If the file is missing, unparsable, or invalid
        """
        log.info("loading_configuration", config_path=str(config_path))

        config_dict = self._load_yaml_file(str(config_path))
        return self.load_mapping(config_dict)

    def load_mapping(self, mapping: Mapping[str, Any]) -> AppConfig:
        """Build an AppConfig from an already-parsed key/value mapping.

        Raises:
            ConfigurationError: If validation fails
        """
        config_dict = self._unflatten(mapping)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info(
            "configuration_loaded_successfully",
            source=str(app_config.source.location),
            target=str(app_config.target.location),
            period=app_config.sync.period,
        )
        return app_config

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file {config_path}: {e}") from e

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _unflatten(self, mapping: Mapping[str, Any]) -> Dict[str, Any]:
        """Expand dotted keys into nested dictionaries.

        ``{"source.location": "x", "sync": {"root": "/tmp"}}`` becomes
        ``{"source": {"location": "x"}, "sync": {"root": "/tmp"}}``.

        Raises:
            ConfigurationError: If a dotted key collides with a scalar value
        """
        result: Dict[str, Any] = {}
        for raw_key, value in mapping.items():
            key = str(raw_key)
            if isinstance(value, Mapping):
                value = self._unflatten(value)
            parts = key.split(".")
            node = result
            for part in parts[:-1]:
                child = node.setdefault(part, {})
                if not isinstance(child, dict):
                    raise ConfigurationError(f"Conflicting configuration key: {key}")
                node = child
            leaf = parts[-1]
            if isinstance(value, dict) and isinstance(node.get(leaf), dict):
                node[leaf].update(value)
            else:
                node[leaf] = value
        return result

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ``${VAR_NAME}`` environment references.

        Raises:
            ConfigurationError: If a referenced environment variable is not set
        """
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        for var_name in self.env_var_pattern.findall(value):
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value
