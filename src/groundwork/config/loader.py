"""Configuration loading from files and environment.

Supports:
- TOML config files
- Environment variables (GROUNDWORK_* prefix)
- .env files
- Multiple profiles (local, server)
"""

import os
import re
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from groundwork.config.schema import AppConfig
from groundwork.observability.logging import get_logger

logger = get_logger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in a data structure.

    Supports formats:
    - ${VAR_NAME}
    - ${VAR_NAME:-default}

    Unset variables without a default are left as written.
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        def replace_var(match: re.Match) -> str:
            var_expr = match.group(1)
            if ":-" in var_expr:
                var_name, default_value = var_expr.split(":-", 1)
                return os.getenv(var_name.strip(), default_value)

            var_name = var_expr.strip()
            value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    "env_var_not_found",
                    var_name=var_name,
                    suggestion="Check that the environment variable is set",
                )
                return match.group(0)
            return value

        return _ENV_VAR_PATTERN.sub(replace_var, obj)
    else:
        return obj


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into ``base``, recursing into nested tables."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_path: Optional[Path] = None,
    profile: Optional[str] = None,
    env_file: Optional[Path] = None,
) -> AppConfig:
    """Load application configuration.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (profile overrides base tables)
    3. Defaults

    Args:
        config_path: Path to TOML config file
        profile: Config profile to use (e.g., "local", "server")
        env_file: Path to .env file

    Returns:
        Loaded and validated configuration
    """
    if env_file and env_file.exists():
        load_dotenv(env_file)
        logger.info("loaded_env_file", path=str(env_file))

    config_data: dict[str, Any] = {}
    if config_path and config_path.exists():
        with open(config_path, "rb") as f:
            config_data = tomllib.load(f)
        logger.info("loaded_config_file", path=str(config_path))

        profiles = config_data.pop("profiles", {})
        if profile:
            if profile in profiles:
                config_data = _merge(config_data, profiles[profile])
                logger.info("applied_profile", profile=profile)
            else:
                logger.warning("profile_not_found", profile=profile, available=sorted(profiles))

        config_data = _substitute_env_vars(config_data)

    # pydantic-settings gives init kwargs priority over the environment, so
    # drop file values that an env var is about to supply.
    config_data = _drop_env_overridden(config_data)

    config = AppConfig(**config_data)
    logger.debug(
        "config_loaded",
        embedding_provider=config.embedding.provider.value,
        llm_provider=config.llm.provider.value,
        passage_store=config.passage_store.store_type.value,
    )

    return config


def _drop_env_overridden(config_data: dict[str, Any]) -> dict[str, Any]:
    """Remove file settings shadowed by GROUNDWORK_* environment variables."""
    prefix = AppConfig.model_config["env_prefix"].lower()
    delimiter = AppConfig.model_config["env_nested_delimiter"].lower()
    overridden = [
        key[len(prefix):].split(delimiter)
        for key in (k.lower() for k in os.environ)
        if key.startswith(prefix)
    ]

    result = dict(config_data)
    for path in overridden:
        node: dict[str, Any] | None = result
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                node = None
                break
            node[part] = dict(child)
            node = node[part]
        if node is not None:
            node.pop(path[-1], None)
    return result


def get_default_config_path() -> Path:
    """Get the default config file path.

    Searches in order:
    1. ./groundwork.toml
    2. ~/.groundwork/config.toml
    """
    search_paths = [
        Path.cwd() / "groundwork.toml",
        Path.home() / ".groundwork" / "config.toml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return search_paths[0]
