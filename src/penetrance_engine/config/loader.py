"""Configuration loading with YAML parsing and validation."""

from pathlib import Path
from typing import Any

import pydantic_yaml

from .schema import EngineConfig


def load_config(config_path: Path | str) -> EngineConfig:
    """
    Load and validate engine configuration from a YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated EngineConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If config is invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return pydantic_yaml.parse_yaml_raw_as(EngineConfig, config_path.read_text())


def _set_dotted(config_dict: dict[str, Any], key: str, value: Any) -> None:
    """Assign ``value`` at a dotted path such as ``em.max_iterations``."""
    *parents, leaf = key.split(".")
    target = config_dict
    for part in parents:
        if not isinstance(target.get(part), dict):
            raise KeyError(f"Unknown config section '{part}' in override '{key}'")
        target = target[part]
    target[leaf] = value


def load_config_with_overrides(
    config_path: Path | str,
    overrides: dict[str, Any],
) -> EngineConfig:
    """
    Load config from YAML and apply overrides, e.g. from CLI flags.

    Overrides whose value is None are ignored so unset click options can be
    passed straight through.

    Args:
        config_path: Path to YAML configuration file
        overrides: Mapping of dotted keys to values

    Returns:
        Re-validated EngineConfig with overrides applied

    Raises:
        FileNotFoundError: If config file doesn't exist
        KeyError: If an override names an unknown section
        pydantic.ValidationError: If final config is invalid
    """
    config_dict = load_config(config_path).model_dump()

    for key, value in overrides.items():
        if value is not None:
            _set_dotted(config_dict, key, value)

    return EngineConfig.model_validate(config_dict)
