"""Configuration manager: file, override and environment layering."""

import json
import os
import threading
from pathlib import Path
from typing import Any, Optional, TypeVar

import yaml
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pyclouds.config.deep_merge import deep_merge
from pyclouds.config.schemas import PyCloudsConfig
from pyclouds.domain.base.exceptions import ConfigurationError
from pyclouds.infrastructure.logging.logger import get_logger

T = TypeVar("T", bound=BaseModel)

ENV_PREFIX = "PYCLOUDS_"
ENV_NESTING = "__"

# Root-level section of each typed model.
_SECTIONS: dict[str, Optional[str]] = {
    "PyCloudsConfig": None,
    "HttpConfig": "http",
    "ComputeConfig": "compute",
    "BlobStoreConfig": "blobstore",
    "LoggingConfig": "logging",
}


class ConfigurationManager:
    """
    Layered configuration.

    Sources are applied in this order, later ones winning:
    defaults, file contents, explicit overrides, then ``PYCLOUDS_`` environment
    variables.
    Nested keys in environment variable names are separated by a double
    underscore, e.g. ``PYCLOUDS_HTTP__MAX_RETRIES=3``.
    """

    def __init__(self, config_file: Optional[str] = None, use_environment: bool = True) -> None:
        self._defaults: dict[str, Any] = {}
        self._config: dict[str, Any] = {}
        self._overrides: dict[str, Any] = {}
        self._config_file_path: Optional[str] = None
        self._use_environment = use_environment
        self._typed_cache: dict[type, BaseModel] = {}
        self._lock = threading.RLock()
        self._logger = get_logger(__name__)

        if config_file:
            self.load_from_file(config_file)

    def load_from_dict(self, config_dict: dict[str, Any]) -> None:
        """Replace file-level configuration with a dictionary."""
        with self._lock:
            self._config = dict(config_dict)
            self._typed_cache.clear()

    def load_from_file(self, config_path: str) -> None:
        """
        Load configuration from a JSON or YAML file.

        :raises FileNotFoundError: when the file does not exist
        :raises json.JSONDecodeError: when a ``.json`` file is malformed
        :raises yaml.YAMLError: when a YAML file is malformed
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration root must be a mapping: {config_path}",
                details={"path": config_path},
            )

        with self._lock:
            self._config = data
            self._config_file_path = str(config_path)
            self._typed_cache.clear()
        self._logger.debug("Loaded configuration from %s", config_path)

    def override(self, overrides: dict[str, Any]) -> None:
        """Merge explicit overrides on top of the file configuration."""
        with self._lock:
            self._overrides = deep_merge(self._overrides, overrides)
            self._typed_cache.clear()

    def set_defaults(self, defaults: dict[str, Any]) -> None:
        """Install values that the file, overrides and environment all take precedence over."""
        with self._lock:
            self._defaults = deep_merge(self._defaults, _expand_dotted(defaults))
            self._typed_cache.clear()

    def set(self, key: str, value: Any) -> None:
        """Set a single dotted key as an override."""
        self.override(_expand_dotted({key: value}))

    def get_raw_config(self) -> dict[str, Any]:
        """Return the merged configuration dictionary."""
        with self._lock:
            merged = deep_merge(deep_merge(self._defaults, self._config), self._overrides)
        if self._use_environment:
            merged = deep_merge(merged, self._environment_overrides())
        return merged

    def get(self, key: str, default: Any = None) -> Any:
        """Return a value by dotted key, e.g. ``get("http.max_retries")``."""
        value: Any = self.get_raw_config()
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def get_typed(self, config_type: type[T]) -> T:
        """
        Return a validated configuration section.

        :raises ConfigurationError: when the section does not validate
        """
        with self._lock:
            cached = self._typed_cache.get(config_type)
            if cached is not None:
                return cached  # type: ignore[return-value]

        section = _SECTIONS.get(config_type.__name__)
        raw = self.get_raw_config()
        data = raw if section is None else raw.get(section, {})
        try:
            typed = config_type.model_validate(data or {})
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid {config_type.__name__} configuration: {e}",
                details={"section": section or "root"},
            ) from e

        with self._lock:
            self._typed_cache[config_type] = typed
        return typed

    def get_app_config(self) -> PyCloudsConfig:
        return self.get_typed(PyCloudsConfig)

    @staticmethod
    def _environment_overrides() -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name, raw_value in os.environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            path = [p.lower() for p in name[len(ENV_PREFIX) :].split(ENV_NESTING) if p]
            if not path:
                continue
            cursor = result
            for part in path[:-1]:
                existing = cursor.get(part)
                if not isinstance(existing, dict):
                    existing = {}
                    cursor[part] = existing
                cursor = existing
            cursor[path[-1]] = _parse_env_value(raw_value)
        return result


def _parse_env_value(value: str) -> Any:
    """Interpret an environment value as JSON when possible, else as a string."""
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return value


def _expand_dotted(values: dict[str, Any]) -> dict[str, Any]:
    """Turn ``{"http.max_retries": 3}`` into ``{"http": {"max_retries": 3}}``."""
    result: dict[str, Any] = {}
    for key, value in values.items():
        nested: dict[str, Any] = {}
        cursor = nested
        parts = key.split(".")
        for part in parts[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[parts[-1]] = value
        result = deep_merge(result, nested)
    return result
