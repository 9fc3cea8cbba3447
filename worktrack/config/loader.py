"""Configuration loader with validation."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import WorktrackConfig


class ConfigError(Exception):
    """Configuration error."""

    pass


def load_config(config_path: Path) -> WorktrackConfig:
    """Load and validate configuration from YAML file.

    Relative store and log paths are resolved against the config file's
    parent directory.

    Args:
        config_path: Path to config YAML file

    Returns:
        Validated WorktrackConfig instance

    Raises:
        ConfigError: If config file missing or invalid
    """
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    if not data:
        raise ConfigError(f"Empty configuration file: {config_path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping: {config_path}")

    base_dir = config_path.parent.resolve()
    for section, key in (("store", "path"), ("logging", "log_dir")):
        value = (data.get(section) or {}).get(key)
        if value and not Path(value).is_absolute():
            data[section][key] = base_dir / value

    try:
        return WorktrackConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}")


def create_default_config(config_path: Path) -> None:
    """Create default configuration file.

    Args:
        config_path: Path where config should be created
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    default_config = {
        "git": {
            "timeout_sec": 30,
        },
        "commit": {
            "checkpoint_prefix": "checkpoint: ",
            "structured_timeout_ms": 5000,
            "poll_interval_ms": 250,
        },
        "agent": {
            "timeout_sec": 1800,
        },
        "store": {
            "path": "sessions.json",
        },
        "logging": {
            "level": "INFO",
            "log_dir": "logs",
        },
    }

    with open(config_path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
