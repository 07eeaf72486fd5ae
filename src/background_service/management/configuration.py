"""Bundle metadata loading with multiple sources and precedence.

The bundle metadata is a YAML mapping shipped next to the service:

    principal_class: mail.fetcher
    log_level: INFO
    registry:
      mail.fetcher: mailsvc.fetcher
"""

import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml

from background_service.management.service_registry import (
    FatalConfigurationError,
    PrincipalClassMissingError,
)


PRINCIPAL_CLASS_KEY = "principal_class"
BUNDLE_ENV_VAR = "BACKGROUND_SERVICE_BUNDLE"
DEFAULT_BUNDLE_FILE = "bundle.yaml"


class BundleLoadError(FatalConfigurationError):
    """Raised when the bundle metadata file is missing or malformed."""
    pass


class InvalidLogLevelError(FatalConfigurationError):
    """Raised when a log level name is not known to the logging module."""
    pass


def parse_log_level(value: Any) -> int:
    """Convert a level name such as 'debug' or 'WARNING' to its numeric level."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    level = logging.getLevelName(str(value).strip().upper())
    if not isinstance(level, int):
        raise InvalidLogLevelError(f"Unknown log level '{value}'")
    return level


def expand_env_vars(value: Any) -> Any:
    """Recursively expand ${VAR_NAME} environment variables in metadata.

    Behavior:
        - If VAR_NAME is set: Replace with environment variable value
        - If VAR_NAME is unset: Keep placeholder and log warning
        - If the entire value is ${VAR} and result is numeric, convert to int/float

    Examples:
        >>> os.environ["SVC_NAME"] = "mail.fetcher"
        >>> expand_env_vars("${SVC_NAME}")
        'mail.fetcher'
        >>> os.environ["POLL"] = "30"
        >>> expand_env_vars("${POLL}")
        30
    """
    if isinstance(value, str):
        pattern = r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}'

        full_match = re.fullmatch(pattern, value)
        if full_match:
            var_name = full_match.group(1)
            env_value = os.getenv(var_name)
            if env_value is None:
                logging.getLogger("cfg").warning(
                    f"Environment variable '${{{var_name}}}' not set, keeping placeholder"
                )
                return value

            try:
                if '.' in env_value:
                    return float(env_value)
                else:
                    return int(env_value)
            except ValueError:
                return env_value

        def replacer(match):
            var_name = match.group(1)
            env_value = os.getenv(var_name)
            if env_value is None:
                logging.getLogger("cfg").warning(
                    f"Environment variable '${{{var_name}}}' not set, keeping placeholder"
                )
                return match.group(0)
            return env_value

        return re.sub(pattern, replacer, value)

    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]

    else:
        return value


class ConfigSource(ABC):
    """Base class for metadata sources."""

    def __init__(self, priority: int = 0):
        self.priority = priority  # Higher number = higher priority

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Load metadata."""
        pass


class FileConfigSource(ConfigSource):
    """Metadata from a YAML bundle file."""

    def __init__(self, file_path: str | Path, priority: int = 10):
        super().__init__(priority)
        self.file_path = Path(file_path)

    def load(self) -> dict[str, Any]:
        """Load metadata from file and expand environment variables.

        Raises:
            BundleLoadError: If the file cannot be read or is not a mapping
        """
        try:
            with open(self.file_path) as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise BundleLoadError(f"Cannot read bundle metadata {self.file_path}: {e}") from e

        if not isinstance(config, dict):
            raise BundleLoadError(
                f"Bundle metadata {self.file_path} must be a mapping, got {type(config).__name__}"
            )

        return expand_env_vars(config)


class ArgsConfigSource(ConfigSource):
    """Metadata overrides from command line arguments or a dict."""

    def __init__(self, config_dict: dict[str, Any], priority: int = 30):
        super().__init__(priority)
        self.config_dict = config_dict

    def load(self) -> dict[str, Any]:
        return {k: v for k, v in self.config_dict.items() if v is not None}


class ConfigurationManager:
    """Merges metadata from multiple sources, higher priority wins."""

    def __init__(self):
        self.logger = logging.getLogger("cfg")
        self.sources: list[ConfigSource] = []

    def add_source(self, source: ConfigSource):
        """Add a metadata source."""
        self.sources.append(source)
        self.sources.sort(key=lambda s: s.priority, reverse=True)
        self.logger.debug(f"Added config source with priority {source.priority}")

    def get_raw_config(self) -> dict[str, Any]:
        """Get merged metadata from all sources."""
        merged_config = {}

        for source in reversed(self.sources):
            source_config = source.load()
            if source_config:
                merged_config = self._deep_merge(merged_config, source_config)
                self.logger.debug(f"Merged metadata from {type(source).__name__}")

        return merged_config

    def _deep_merge(self, base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if (key in result and
                isinstance(result[key], dict) and
                isinstance(value, dict)):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result


def determine_bundle_file(bundle: str | Path | None = None) -> Path:
    """Pick the bundle metadata file: explicit path, then environment, then ./bundle.yaml."""
    if bundle:
        return Path(bundle)
    env_bundle = os.getenv(BUNDLE_ENV_VAR)
    if env_bundle:
        return Path(env_bundle)
    return Path.cwd() / DEFAULT_BUNDLE_FILE


def load_bundle_metadata(
    bundle_file: str | Path,
    overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Load bundle metadata with the standard sources."""
    manager = ConfigurationManager()
    manager.add_source(FileConfigSource(bundle_file))
    if overrides:
        manager.add_source(ArgsConfigSource(overrides))
    return manager.get_raw_config()


def principal_class_name(metadata: dict[str, Any]) -> str:
    """Return the principal type name declared in bundle metadata.

    Raises:
        PrincipalClassMissingError: If the key is absent or not a non-empty string
    """
    name = metadata.get(PRINCIPAL_CLASS_KEY)
    if not isinstance(name, str) or not name.strip():
        raise PrincipalClassMissingError(
            f"Bundle metadata does not contain a valid '{PRINCIPAL_CLASS_KEY}' entry"
        )
    return name.strip()
