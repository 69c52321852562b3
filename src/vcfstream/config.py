"""Configuration file support for vcfstream."""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .reader import Region

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class FilterConfig:
    """Defaults for the ``filter`` command."""

    filters: list[str] = field(default_factory=list)
    sample_filters: list[str] = field(default_factory=list)
    region: str | None = None
    invert: bool = False
    tag: str | None = None
    log_level: str = "INFO"


def _validate_spec_list(config_dict: dict[str, Any], key: str) -> None:
    if key not in config_dict:
        return
    value = config_dict[key]
    if not isinstance(value, list) or not all(isinstance(spec, str) for spec in value):
        raise ConfigValidationError(f"{key} must be a list of strings, got {value!r}")


def validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values.

    Raises:
        ConfigValidationError: If any configuration value is invalid.
    """
    _validate_spec_list(config_dict, "filters")
    _validate_spec_list(config_dict, "sample_filters")

    if "region" in config_dict:
        region = config_dict["region"]
        if not isinstance(region, str):
            raise ConfigValidationError(f"region must be a string, got {type(region).__name__}")
        try:
            Region.parse(region)
        except ValueError as e:
            raise ConfigValidationError(str(e)) from None

    if "invert" in config_dict and not isinstance(config_dict["invert"], bool):
        raise ConfigValidationError(
            f"invert must be a boolean, got {type(config_dict['invert']).__name__}"
        )

    if "tag" in config_dict:
        tag = config_dict["tag"]
        if not isinstance(tag, str) or not tag or any(c in tag for c in " \t;"):
            raise ConfigValidationError(f"tag must be a non-empty FILTER identifier, got {tag!r}")

    if "log_level" in config_dict:
        log_level = config_dict["log_level"]
        if not isinstance(log_level, str):
            raise ConfigValidationError(
                f"log_level must be a string, got {type(log_level).__name__}"
            )
        if log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                f"log_level must be one of {VALID_LOG_LEVELS}, got '{log_level}'"
            )


def load_config(config_path: Path, overrides: dict[str, Any] | None = None) -> FilterConfig:
    """Load configuration from a TOML file.

    Args:
        config_path: Path to the TOML configuration file.
        overrides: Optional dict of values to override loaded config.

    Returns:
        FilterConfig instance with loaded values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigValidationError: If any configuration value is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "rb") as f:
        toml_data = tomllib.load(f)

    config_dict = toml_data.get("vcfstream", {})

    if overrides:
        config_dict.update({k: v for k, v in overrides.items() if v is not None})

    validate_config(config_dict)

    valid_fields = {"filters", "sample_filters", "region", "invert", "tag", "log_level"}
    unknown = set(config_dict) - valid_fields
    if unknown:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(sorted(unknown)))

    filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}

    return FilterConfig(**filtered_config)
