"""Run configuration discovery and loading.

Settings are merged from four layers, later layers winning:

1. AccrualConfig defaults
2. YAML configuration file
3. BEANINTEREST_* environment variables
4. Explicit overrides (CLI options)
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from . import constants
from .exceptions import ConfigurationError
from .schema import AccrualConfig

logger = logging.getLogger(__name__)


def find_config_file() -> Optional[Path]:
    """
    Locate the configuration file.

    Search order:
    1. BEANINTEREST_CONFIG environment variable
    2. beaninterest.yaml in current directory

    Returns:
        Path to the configuration file, or None (environment-only setup)
    """
    if env_file := os.getenv(constants.ENV_CONFIG_FILE):
        path = Path(env_file)
        if path.is_file():
            return path
        logger.warning("%s points to non-existent file: %s", constants.ENV_CONFIG_FILE, env_file)

    cwd_file = Path.cwd() / constants.DEFAULT_CONFIG_FILE
    if cwd_file.is_file():
        return cwd_file

    return None


def read_config_file(filepath: Path) -> dict[str, Any]:
    """
    Read raw settings from a YAML file.

    Raises:
        ConfigurationError: If the file cannot be read or is not a mapping
    """
    logger.info("Loading configuration from: %s", filepath)

    try:
        with filepath.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"YAML parsing error in {filepath}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {filepath}: {e}") from e

    if data is None:
        logger.warning("Empty configuration file: %s", filepath)
        return {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {filepath} must contain a mapping")

    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """Collect settings from BEANINTEREST_* environment variables."""
    if environ is None:
        environ = os.environ

    settings = {}
    for field, variable in constants.ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value is not None and value.strip() != "":
            settings[field] = value
    return settings


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(loc) for loc in err["loc"]) or "config"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def load_config(
    filepath: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AccrualConfig:
    """
    Build the run configuration.

    Args:
        filepath: Explicit configuration file. If None, find_config_file()
                  is used and a missing file is not an error.
        overrides: Highest-priority settings; None values are ignored
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated, immutable AccrualConfig

    Raises:
        ConfigurationError: If a required setting is missing or any
                            setting is invalid
    """
    settings: dict[str, Any] = {}

    if filepath is not None:
        if not filepath.is_file():
            raise ConfigurationError(f"Configuration file not found: {filepath}")
        config_path: Optional[Path] = filepath
    else:
        config_path = find_config_file()

    if config_path is not None:
        settings.update(read_config_file(config_path))

    settings.update(env_overrides(environ))
    settings.update({k: v for k, v in (overrides or {}).items() if v is not None})

    missing = [key for key in constants.REQUIRED_SETTINGS if not settings.get(key)]
    if missing:
        names = ", ".join(f"{key} ({constants.ENV_OVERRIDES[key]})" for key in missing)
        raise ConfigurationError(f"Missing required setting(s): {names}", setting=missing[0])

    try:
        return AccrualConfig(**settings)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {_format_validation_error(e)}") from e
