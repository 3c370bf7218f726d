"""Configuration loading and validation for the functions runtime.

Configuration comes from the ``FUNCTIONS_RUNTIME_CONFIG`` environment variable
(JSON) when set, otherwise from a YAML file. An optional ``.env`` file supplies
values for the ``env`` section that the YAML file does not set itself.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from core.config import RuntimeConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FUNCTIONS_RUNTIME_CONFIG"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


def validate_config_structure(config: Any) -> None:
    """Validate basic configuration structure.

    Args:
        config: Parsed configuration

    Raises:
        ConfigurationError: If structure is invalid
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a YAML dictionary")

    env = config.get("env")
    if env is not None and not isinstance(env, dict):
        raise ConfigurationError("'env' section must be a dictionary")


def load_env_file(env_path: Union[str, Path]) -> Dict[str, Optional[str]]:
    """Read a ``.env`` file.

    Args:
        env_path: Path to the .env file

    Returns:
        Mapping of variable names to values (empty if the file is missing)
    """
    path = Path(env_path)
    if not path.exists():
        logger.debug(f"No env file at {path}")
        return {}
    values = dotenv_values(path)
    logger.info(f"Loaded {len(values)} variables from {path}")
    return dict(values)


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def build_config(
    raw: Dict[str, Any],
    env_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RuntimeConfig:
    """Validate a raw configuration mapping into a RuntimeConfig.

    Args:
        raw: Parsed configuration dictionary
        env_file: Optional .env file merged under the ``env`` section
        overrides: Values that replace those in ``raw`` (one level of
            nested sections is merged)

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If validation fails
    """
    validate_config_structure(raw)

    data = _merge(raw, overrides or {})
    if env_file is not None:
        env = load_env_file(env_file)
        env.update(data.get("env") or {})
        data["env"] = env

    try:
        return RuntimeConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_and_validate_config(
    config_path: Union[str, Path] = "config.yaml",
    env_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RuntimeConfig:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to config.yaml file
        env_file: Optional .env file merged under the ``env`` section
        overrides: Values that replace those read from the file

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If validation fails
        FileNotFoundError: If config file doesn't exist
    """
    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            "Create config.yaml or set the "
            f"{CONFIG_ENV_VAR} environment variable."
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if config is None:
        raise ConfigurationError(f"Configuration file {config_path} is empty")

    if isinstance(config, dict):
        # Relative project directories resolve against the config file
        config["base_dir"] = str(Path(config_path).parent / config.get("base_dir", "."))

    runtime_config = build_config(config, env_file=env_file, overrides=overrides)

    logger.info(
        f"Configuration validated: serving {runtime_config.functions_dir}/ and "
        f"{runtime_config.assets_dir}/ at {runtime_config.url}"
    )

    return runtime_config


def load_config(
    config_path: Union[str, Path] = "config.yaml",
    env_file: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> RuntimeConfig:
    """Load configuration from the environment or a YAML file.

    Without either source, the defaults (plus ``overrides``) are used.

    Returns:
        Validated configuration
    """
    config_json = os.environ.get(CONFIG_ENV_VAR)
    if config_json:
        try:
            raw = json.loads(config_json)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Failed to parse {CONFIG_ENV_VAR}: {e}"
            ) from e
        logger.info("Loaded configuration from environment variable")
        return build_config(raw, env_file=env_file, overrides=overrides)

    if not Path(config_path).exists():
        logger.info(f"No configuration file at {config_path}, using defaults")
        return build_config({}, env_file=env_file, overrides=overrides)

    return load_and_validate_config(config_path, env_file=env_file, overrides=overrides)


def get_logging_config(config: Union[RuntimeConfig, Dict[str, Any]]) -> Dict[str, Any]:
    """Get the logging section of a configuration.

    Args:
        config: Validated configuration or raw configuration dictionary

    Returns:
        Dictionary with ``level`` and ``pretty`` keys
    """
    if isinstance(config, RuntimeConfig):
        return config.logging.model_dump()
    logging_config = config.get("logging") or {}
    return {
        "level": str(logging_config.get("level", "INFO")).upper(),
        "pretty": bool(logging_config.get("pretty", False)),
    }
