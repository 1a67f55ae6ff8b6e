"""Configuration loader for strata.yaml setup files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .exceptions import ConfigurationError
from .filters import Filter

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "strata.yaml"
SOURCE_TYPES = ("env", "cli", "properties", "redis", "map")
POLICY_NAMES = ("override", "collect", "adaptive")


class ConfigLoader:
    """Handles loading and parsing of strata.yaml configuration files."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize config loader.

        Args:
            config_path: Path to strata.yaml file. If None, looks in current
                directory and parent directories.
        """
        self.config_path = self._find_config_file(config_path)
        self._config: Optional[Dict[str, Any]] = None

    def _find_config_file(
        self, config_path: Optional[Union[str, Path]] = None
    ) -> Optional[Path]:
        """Find the strata.yaml file.

        Args:
            config_path: Explicit path to config file, or None to search.

        Returns:
            Path to config file if found, None otherwise.
        """
        if config_path is not None:
            path = Path(config_path)
            if path.exists():
                return path
            logger.warning("Setup file %s not found", path)
            return None

        current = Path.cwd()
        for directory in (current, *current.parents):
            candidate = directory / CONFIG_FILE_NAME
            if candidate.exists():
                return candidate
        return None

    def load(self) -> Dict[str, Any]:
        """Load the configuration file.

        Returns:
            Parsed configuration dictionary, or empty dict if no config file.

        Raises:
            ConfigurationError: If the config file is invalid YAML.
        """
        if self.config_path is None:
            return {}

        if self._config is not None:
            return self._config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid {CONFIG_FILE_NAME} at {self.config_path}: {e}"
            ) from e
        except OSError as e:
            logger.warning("Could not read %s at %s: %s", CONFIG_FILE_NAME, self.config_path, e)
            return {}
        if not isinstance(loaded, dict):
            raise ConfigurationError(
                f"Invalid {CONFIG_FILE_NAME} at {self.config_path}: expected a mapping"
            )
        self._config = loaded
        return self._config

    def get_environment_config(
        self, environment_name: str
    ) -> Optional[Dict[str, Any]]:
        """Get configuration for a specific environment.

        Args:
            environment_name: Name of the environment.

        Returns:
            Environment configuration dict, or None if not found.
        """
        config = self.load()
        environments = config.get("environments") or {}
        return environments.get(environment_name)

    def get_sources(self, environment_name: str) -> List[Dict[str, Any]]:
        env_config = self.get_environment_config(environment_name)
        if env_config is None:
            return []
        return env_config.get("sources") or []

    def get_filters(self, environment_name: str) -> List[Filter]:
        env_config = self.get_environment_config(environment_name) or {}
        filters = []
        for spec in env_config.get("filters") or []:
            flt = Filter.from_dict(spec)
            if flt is not None:
                filters.append(flt)
        return filters

    def get_combination_policy(self, environment_name: str) -> str:
        """Name of the combination policy of an environment, ``override`` by default.

        Raises:
            ConfigurationError: If the name is not a known policy.
        """
        env_config = self.get_environment_config(environment_name) or {}
        name = str(env_config.get("combination_policy") or "override").lower()
        if name not in POLICY_NAMES:
            raise ConfigurationError(
                f"Unknown combination_policy {name!r} for environment {environment_name!r}"
            )
        return name

    def parse_source(self, source_config: Dict[str, Any]) -> Dict[str, Any]:
        """Parse a source configuration into components.

        The type is taken from ``type``, or inferred: a ``redis://`` uri is a
        redis source and a ``path`` is a properties file.

        Args:
            source_config: Raw source configuration from YAML.

        Returns:
            Dictionary with ``type`` and the options of that source type.

        Raises:
            ConfigurationError: If the type is unknown or a required option
                is missing.
        """
        source_type = source_config.get("type")
        if source_type is None:
            uri = str(source_config.get("uri", ""))
            if uri.startswith(("redis://", "rediss://", "unix://")):
                source_type = "redis"
            elif "path" in source_config:
                source_type = "properties"
            else:
                raise ConfigurationError("Source must have a 'type', a 'path' or a redis 'uri'")
        if source_type not in SOURCE_TYPES:
            raise ConfigurationError(f"Unsupported source type: {source_type}")

        result: Dict[str, Any] = {"type": source_type}
        if source_type == "properties":
            if "path" not in source_config:
                raise ConfigurationError("Properties source must have a 'path'")
            result["path"] = Path(source_config["path"])
        if source_type == "redis":
            if "uri" not in source_config:
                raise ConfigurationError("Redis source must have a 'uri'")
            result["uri"] = source_config["uri"]
        if source_type == "map":
            result["data"] = {str(k): str(v) for k, v in (source_config.get("data") or {}).items()}
        if source_type == "cli" and "args" in source_config:
            result["args"] = [str(a) for a in source_config["args"]]

        if "ordinal" in source_config:
            try:
                result["ordinal"] = int(source_config["ordinal"])
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"Source ordinal must be an integer: {source_config['ordinal']!r}"
                ) from e
        for option in ("name", "prefix"):
            if option in source_config:
                result[option] = str(source_config[option])
        for option in ("writable", "scannable"):
            if option in source_config:
                result[option] = bool(source_config[option])
        return result
