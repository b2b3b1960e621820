"""Configuration: pydantic schema plus TOML/env loading."""

from groundwork.config.loader import get_default_config_path, load_config
from groundwork.config.schema import AppConfig

__all__ = ["AppConfig", "get_default_config_path", "load_config"]
