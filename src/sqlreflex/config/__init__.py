"""Configuration module for sqlreflex.

Main exports:
    ReflexConfig: Main configuration model
    load_config: Load config from YAML file
    create_default_config: Write default config file

Usage:
    from sqlreflex.config import load_config

    config = load_config(Path("reflex.yaml"))
    engine = open_engine(config.database)
"""

from sqlreflex.config.loader import (
    DATABASE_URL_ENV,
    config_exists,
    create_default_config,
    load_config,
)
from sqlreflex.config.models import (
    ConsumerConfig,
    DatabaseConfig,
    ReflexConfig,
    StreamLoopConfig,
    get_config_dir,
    get_default_config,
)

__all__ = [
    # Models
    "ReflexConfig",
    "DatabaseConfig",
    "ConsumerConfig",
    "StreamLoopConfig",
    # Loader functions
    "DATABASE_URL_ENV",
    "load_config",
    "create_default_config",
    "config_exists",
    # Model helpers
    "get_config_dir",
    "get_default_config",
]
