"""Configuration loading, validation and generation utilities."""

from __future__ import annotations

import secrets
from pathlib import Path
from typing import Union

import yaml
from pydantic import ValidationError

from duco_fleet.config.models import Config, DeviceConfig


class ConfigError(Exception):
    """Configuration error."""

    pass


def load_config(path: Union[str, Path]) -> Config:
    """
    Load and validate configuration from a YAML file.

    Args:
        path: Path to the configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or the configuration is invalid.
    """
    path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    if not path.is_file():
        raise ConfigError(f"Configuration path is not a file: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file: {e}") from e

    if raw_config is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(raw_config, dict):
        raise ConfigError(
            f"Configuration file must contain a YAML mapping (dict), "
            f"got {type(raw_config).__name__}"
        )

    try:
        return Config.model_validate(raw_config)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")
        raise ConfigError("Configuration validation failed:\n" + "\n".join(errors)) from e


def validate_config(path: Union[str, Path]) -> tuple[bool, str]:
    """
    Validate a configuration file.

    Args:
        path: Path to the configuration file.

    Returns:
        Tuple of (is_valid, message).
    """
    try:
        config = load_config(path)
        device_count = len(config.devices)
        total_rate = sum(d.target_rate for d in config.devices)
        return (
            True,
            f"Configuration valid: {device_count} devices, {total_rate} H/s combined target rate",
        )
    except ConfigError as e:
        return False, str(e)


def generate_chip_id() -> str:
    """Generate a chip identifier in the DUCOID + 8 hex digits form."""
    return f"DUCOID{secrets.token_hex(4).upper()}"


def generate_config(
    username: str,
    device_count: int,
    device_name_prefix: str,
    device_type: str,
    firmware: str,
    target_rate: int,
) -> Config:
    """
    Build a roster of identical devices with unique names and chip ids.

    Devices are named ``<prefix>1`` .. ``<prefix><device_count>``.

    Raises:
        ConfigError: If the generated roster does not validate.
    """
    try:
        devices = [
            DeviceConfig(
                username=username,
                device_name=f"{device_name_prefix}{i + 1}",
                device_type=device_type,
                chip_id=generate_chip_id(),
                firmware=firmware,
                target_rate=target_rate,
            )
            for i in range(device_count)
        ]
        return Config(devices=devices)
    except ValidationError as e:
        errors = [
            f"  - {'.'.join(str(x) for x in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigError("Generated configuration is invalid:\n" + "\n".join(errors)) from e


def write_config(config: Config, path: Union[str, Path]) -> None:
    """
    Write a configuration to a YAML file.

    Raises:
        ConfigError: If the file cannot be written.
    """
    data = config.model_dump(mode="json", exclude_none=True)
    try:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
    except OSError as e:
        raise ConfigError(f"Cannot write configuration file: {e}") from e
