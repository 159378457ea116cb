"""Pydantic configuration models with validation."""

from __future__ import annotations

from typing import List, Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Fallback pool used when no address is configured and the resolver fails
DEFAULT_POOL_HOST = "server.duinocoin.com"
DEFAULT_POOL_PORT = 2813
DEFAULT_RESOLVER_URL = "https://server.duinocoin.com/getPool"


class PoolAddress(NamedTuple):
    """Pool endpoint as a (host, port) pair."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def parse_pool_address(value: str) -> PoolAddress:
    """
    Parse a ``host:port`` string.

    Args:
        value: Address string, e.g. "server.duinocoin.com:2813".

    Returns:
        Parsed pool address.

    Raises:
        ValueError: If the string is not a valid host:port pair.
    """
    value = value.strip()
    host, sep, port_str = value.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Invalid pool address '{value}': expected host:port")
    # Allow bracketed IPv6 literals like [::1]:2813
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid pool address '{value}': port must be an integer")
    if not (1 <= port <= 65535):
        raise ValueError(f"Invalid pool address '{value}': port must be 1-65535")
    return PoolAddress(host, port)


class DeviceConfig(BaseModel):
    """Identity and tuning of a single emulated device."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., description="Pool account the device mines for")
    device_name: str = Field(..., description="Unique device (rig) name")
    device_type: str = Field(default="AVR", description="Device type tag sent with job requests")
    chip_id: str = Field(..., description="Chip/hardware identifier")
    firmware: str = Field(default="Official AVR Miner v2.6", description="Firmware label")
    target_rate: int = Field(..., gt=0, description="Hash rate the device should appear to sustain (H/s)")
    pool: Optional[str] = Field(default=None, description="Per-device pool address (host:port)")

    @field_validator("username", "device_name", "device_type", "chip_id", "firmware")
    @classmethod
    def validate_wire_field(cls, v: str) -> str:
        """
        Validate identity fields are safe to embed in protocol lines.

        Job requests and results are comma-separated, newline-terminated
        text, so a comma or control character would corrupt the message.
        """
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty")
        if "," in v:
            raise ValueError("Value cannot contain commas")
        for char in v:
            if ord(char) < 32 or ord(char) == 127:
                raise ValueError(
                    f"Value cannot contain control characters (found \\x{ord(char):02x})"
                )
        if len(v) > 128:
            raise ValueError("Value must be 128 characters or less")
        return v

    @field_validator("pool")
    @classmethod
    def validate_pool(cls, v: Optional[str]) -> Optional[str]:
        """Validate the per-device pool address."""
        if v is None:
            return v
        parse_pool_address(v)
        return v.strip()

    @property
    def pool_address(self) -> Optional[PoolAddress]:
        """Per-device pool address, if configured."""
        return parse_pool_address(self.pool) if self.pool else None


class PoolConfig(BaseModel):
    """Configuration for reaching the pool."""

    address: Optional[str] = Field(
        default=None, description="Fleet-wide pool address (host:port); null resolves dynamically"
    )
    resolver_url: str = Field(default=DEFAULT_RESOLVER_URL, description="Pool picker endpoint")
    resolver_timeout: float = Field(default=10.0, gt=0, description="Pool picker request timeout in seconds")
    fallback_host: str = Field(default=DEFAULT_POOL_HOST, description="Pool host used when resolution fails")
    fallback_port: int = Field(default=DEFAULT_POOL_PORT, ge=1, le=65535, description="Pool port used when resolution fails")
    connect_timeout: Optional[float] = Field(default=30.0, gt=0, description="Connect timeout in seconds")
    # 120s - the pool answers every request immediately, a silent pool is a dead pool
    read_timeout: Optional[float] = Field(default=120.0, gt=0, description="Read timeout in seconds")
    send_timeout: Optional[float] = Field(default=30.0, gt=0, description="Send timeout in seconds")
    # 200 bytes is what the original device firmware allocates for pool messages
    recv_buffer_size: int = Field(default=200, ge=16, le=65536, description="Receive buffer size in bytes")
    tcp_keepalive: bool = Field(default=True, description="Enable TCP keepalive on pool connections")
    keepalive_idle: int = Field(default=60, ge=10, description="Seconds before sending keepalive probes")
    keepalive_interval: int = Field(default=10, ge=1, description="Seconds between keepalive probes")
    keepalive_count: int = Field(default=3, ge=1, description="Number of failed probes before connection is dead")

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        """Validate the fleet-wide pool address."""
        if v is None:
            return v
        parse_pool_address(v)
        return v.strip()

    @property
    def pool_address(self) -> Optional[PoolAddress]:
        """Fleet-wide pool address, if configured."""
        return parse_pool_address(self.address) if self.address else None

    @property
    def fallback_address(self) -> PoolAddress:
        """Address used when dynamic resolution fails."""
        return PoolAddress(self.fallback_host, self.fallback_port)


class SupervisorConfig(BaseModel):
    """Jitter ranges for session start and restart."""

    heatup_min_ms: int = Field(default=10, ge=0, description="Minimum delay before the first connection")
    heatup_max_ms: int = Field(default=10_000, ge=0, description="Maximum delay before the first connection")
    # 30s-180s spreads reconnects of a large fleet after a shared pool outage
    backoff_min_ms: int = Field(default=30_000, ge=0, description="Minimum delay before reconnecting")
    backoff_max_ms: int = Field(default=180_000, ge=0, description="Maximum delay before reconnecting")

    @model_validator(mode="after")
    def validate_ranges(self) -> "SupervisorConfig":
        """Ensure each range is ordered."""
        if self.heatup_min_ms > self.heatup_max_ms:
            raise ValueError(
                f"heatup_min_ms ({self.heatup_min_ms}) must not exceed heatup_max_ms ({self.heatup_max_ms})"
            )
        if self.backoff_min_ms > self.backoff_max_ms:
            raise ValueError(
                f"backoff_min_ms ({self.backoff_min_ms}) must not exceed backoff_max_ms ({self.backoff_max_ms})"
            )
        return self


class MinerConfig(BaseModel):
    """Configuration for result production."""

    hasher: Literal["sha1", "fabricated"] = Field(
        default="sha1", description="sha1 searches for the result, fabricated draws it at random"
    )
    submit_jitter_ms: int = Field(
        default=0, ge=0, le=10_000, description="Maximum random pause before each result is sent"
    )


class StatsConfig(BaseModel):
    """Configuration for periodic statistics logging."""

    enabled: bool = Field(default=True, description="Log a fleet summary every quarter hour")


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    file: Optional[str] = Field(default=None, description="Log file path")
    rotation: str = Field(default="50 MB", description="Log rotation size")
    retention: int = Field(default=10, ge=1, description="Number of rotated files to keep")
    format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[device]: <12} | {message}",
        description="Log message format",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class Config(BaseModel):
    """Main configuration model: the device roster plus fleet settings."""

    devices: List[DeviceConfig] = Field(..., min_length=1)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    miner: MinerConfig = Field(default_factory=MinerConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_config(self) -> "Config":
        """Ensure all device names are unique."""
        names = [d.device_name for d in self.devices]
        if len(names) != len(set(names)):
            duplicates = [n for n in names if names.count(n) > 1]
            raise ValueError(f"Duplicate device names: {set(duplicates)}")
        return self

    def get_device_names(self) -> List[str]:
        """Get list of all device names."""
        return [d.device_name for d in self.devices]
