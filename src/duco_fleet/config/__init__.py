"""Configuration module for the device fleet."""

from duco_fleet.config.models import (
    Config,
    DeviceConfig,
    LoggingConfig,
    MinerConfig,
    PoolAddress,
    PoolConfig,
    StatsConfig,
    SupervisorConfig,
    parse_pool_address,
)
from duco_fleet.config.loader import (
    ConfigError,
    generate_config,
    load_config,
    validate_config,
    write_config,
)

__all__ = [
    "Config",
    "DeviceConfig",
    "LoggingConfig",
    "MinerConfig",
    "PoolAddress",
    "PoolConfig",
    "StatsConfig",
    "SupervisorConfig",
    "parse_pool_address",
    "ConfigError",
    "generate_config",
    "load_config",
    "validate_config",
    "write_config",
]
