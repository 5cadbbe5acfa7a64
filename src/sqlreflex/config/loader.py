"""Configuration loading for sqlreflex.

This module provides functions for loading, creating, and validating
sqlreflex configuration files.

Functions:
    load_config: Load configuration from a YAML file
    create_default_config: Write a default configuration file
    config_exists: Check if the default config file exists

Environment:
    SQLREFLEX_DATABASE_URL overrides ``database.url``. A ``.env`` file in the
    current directory is read before the environment is consulted.
"""

import os
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError as PydanticValidationError
import yaml

from sqlreflex.config.models import ReflexConfig, get_config_dir, get_default_config
from sqlreflex.core.errors import ConfigError
from sqlreflex.core.security import mask_database_url

DATABASE_URL_ENV = "SQLREFLEX_DATABASE_URL"


def _default_config_path() -> Path:
    return get_config_dir() / "config.yaml"


def _apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    url = os.environ.get(DATABASE_URL_ENV)
    if url:
        database = dict(config_dict.get("database") or {})
        database["url"] = url
        config_dict = {**config_dict, "database": database}
    return config_dict


def create_default_config(
    config_path: Path | None = None,
    *,
    overwrite: bool = False,
) -> Path:
    """Write the default configuration as YAML.

    Args:
        config_path: Target file. Defaults to ~/.sqlreflex/config.yaml.
        overwrite: If True, overwrite an existing file.

    Returns:
        Path of the written file.

    Raises:
        ConfigError: If the file exists and overwrite=False.
    """
    if config_path is None:
        config_path = _default_config_path()

    if config_path.exists() and not overwrite:
        raise ConfigError(
            f"Configuration file already exists: {config_path}",
            config_file=str(config_path),
        )

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_dict = get_default_config().model_dump(mode="json")
    with config_path.open("w") as f:
        yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

    return config_path


def load_config(config_path: Path | None = None) -> ReflexConfig:
    """Load configuration from YAML file.

    Loads and validates configuration from the specified path or
    ~/.sqlreflex/config.yaml, then applies environment overrides.

    Args:
        config_path: Path to config file.

    Returns:
        Validated ReflexConfig instance.

    Raises:
        ConfigError: If file doesn't exist, is malformed, or fails validation.
    """
    load_dotenv(find_dotenv(usecwd=True))

    if config_path is None:
        config_path = _default_config_path()

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            config_file=str(config_path),
        )

    try:
        with config_path.open() as f:
            config_dict = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse configuration file: {e}",
            config_file=str(config_path),
            details={"yaml_error": str(e)},
        ) from e

    if config_dict is None:
        config_dict = {}
    if not isinstance(config_dict, dict):
        raise ConfigError(
            "Configuration file must contain a mapping at the top level",
            config_file=str(config_path),
        )

    config_dict = _apply_env_overrides(config_dict)

    try:
        return ReflexConfig.model_validate(config_dict)
    except PydanticValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            if loc == "database.url":
                msg = f"{msg} ({mask_database_url(str(error.get('input', '')))})"
            error_messages.append(f"  - {loc}: {msg}")

        raise ConfigError(
            "Configuration validation failed:\n" + "\n".join(error_messages),
            config_file=str(config_path),
            details={"error_count": e.error_count()},
        ) from e


def config_exists() -> bool:
    """Check if the default configuration file exists."""
    return _default_config_path().exists()
