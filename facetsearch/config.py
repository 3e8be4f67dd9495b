"""Configuration loading.

A configuration file is YAML with three optional sections::

    settings:
      max_limit: 500
    parameters:
      COUNTRY: {type: enum, values: [DK, ES, FR]}
      YEAR: {type: integer}
    catalog:
      mappings:
        COUNTRY: {field: country, cardinality: 250}
        YEAR: year

Environment variables override individual settings.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .catalog import FieldCatalog
from .exceptions import CatalogError, ConfigurationError
from .parameters import SearchParameter, create_parameter_enum

DEFAULT_HIGHLIGHT_PRE_TAG = '<em class="gbifHl">'
DEFAULT_HIGHLIGHT_POST_TAG = "</em>"

ENV_OVERRIDES = {
    "FACETSEARCH_MAX_LIMIT": "max_limit",
    "FACETSEARCH_DEFAULT_LIMIT": "default_limit",
    "FACETSEARCH_FACET_SIZE_CEILING": "facet_size_ceiling",
}


@dataclass(frozen=True)
class SearchSettings:
    """Request limits and presentation settings."""

    default_limit: int = 20
    max_limit: int = 1000
    facet_limit: int = 10
    facet_size_ceiling: int = 1_200_000
    suggest_limit: int = 5
    highlight_pre_tag: str = DEFAULT_HIGHLIGHT_PRE_TAG
    highlight_post_tag: str = DEFAULT_HIGHLIGHT_POST_TAG

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SearchSettings":
        """Build settings from a mapping, ignoring unknown keys."""
        data = data or {}
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                continue
            try:
                values[key] = int(value) if key.endswith(("limit", "ceiling")) else str(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Invalid value for setting {key}: {value!r}")
        return cls(**values)

    def with_env_overrides(self, environ: dict[str, str] | None = None) -> "SearchSettings":
        """Apply FACETSEARCH_* environment variables."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for variable, name in ENV_OVERRIDES.items():
            if value := environ.get(variable):
                try:
                    overrides[name] = int(value)
                except ValueError:
                    raise ConfigurationError(f"{variable} must be an integer, got {value!r}")
        return replace(self, **overrides) if overrides else self


@dataclass(frozen=True)
class SearchConfig:
    """Everything loaded from one configuration file."""

    settings: SearchSettings
    parameters: type[SearchParameter] | None = None
    catalog: FieldCatalog | None = None


class Config:
    """Reading and locating configuration files."""

    @staticmethod
    def from_file(path: Path) -> dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error reading config file: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    @staticmethod
    def get_config_paths() -> list[Path]:
        """Get the default configuration file paths to check."""
        xdg_config_home = Path(
            os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
        )
        return [
            xdg_config_home / "facetsearch" / "config.yaml",
            Path("facetsearch.yaml"),
        ]

    @staticmethod
    def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
        """Merge multiple configuration dictionaries."""
        result: dict[str, Any] = {}
        for config in configs:
            result = _deep_merge(result, config)
        return result


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load raw configuration from an explicit file or the default locations.

    Later default locations override earlier ones.
    """
    if path is not None:
        return Config.from_file(path)

    config: dict[str, Any] = {}
    for candidate in Config.get_config_paths():
        if candidate.exists():
            config = Config.merge_configs(config, Config.from_file(candidate))
    return config


def build_search_config(
    data: dict[str, Any], environ: dict[str, str] | None = None
) -> SearchConfig:
    """Build settings, parameters and catalog from raw configuration.

    Raises:
        ConfigurationError: If any section is invalid
    """
    settings = SearchSettings.from_dict(data.get("settings")).with_env_overrides(environ)

    parameters = None
    catalog = None
    if definitions := data.get("parameters"):
        try:
            parameters = create_parameter_enum("ConfiguredParameter", definitions)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid parameter definitions: {e}")

        try:
            catalog = FieldCatalog.from_config(data.get("catalog") or {}, parameters)
        except CatalogError as e:
            raise ConfigurationError(f"Invalid catalog: {e}")

    return SearchConfig(settings=settings, parameters=parameters, catalog=catalog)


def load_search_config(path: Path | None = None) -> SearchConfig:
    """Load and build the search configuration."""
    return build_search_config(load_config(path))


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
