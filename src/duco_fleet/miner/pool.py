"""Pool address resolution."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

import requests
from loguru import logger

from duco_fleet.config.models import DEFAULT_RESOLVER_URL, PoolAddress

if TYPE_CHECKING:
    from duco_fleet.config.models import PoolConfig


class PoolResolver:
    """
    Asks the pool picker which node to connect to.

    The resolver holds no mutable state, so one instance can be shared by
    every supervisor; each call makes its own request.
    """

    def __init__(
        self,
        fallback: PoolAddress,
        url: str = DEFAULT_RESOLVER_URL,
        timeout: float = 10.0,
    ):
        """
        Initialize the resolver.

        Args:
            fallback: Address returned when resolution fails.
            url: Pool picker endpoint.
            timeout: HTTP request timeout in seconds.
        """
        self.fallback = fallback
        self.url = url
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: PoolConfig) -> PoolResolver:
        """Create a resolver from the pool configuration."""
        return cls(
            fallback=config.fallback_address,
            url=config.resolver_url,
            timeout=config.resolver_timeout,
        )

    def fetch(self) -> PoolAddress:
        """
        Query the pool picker.

        Raises:
            requests.RequestException: On transport errors or non-2xx status.
            ValueError: If the response is not a usable pool description.
        """
        response = requests.get(self.url, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()

        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        if not data.get("success"):
            raise ValueError(data.get("message") or "pool picker reported failure")

        host = data.get("ip")
        port = data.get("port")
        if not isinstance(host, str) or not host:
            raise ValueError(f"invalid pool host: {host!r}")
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ValueError(f"invalid pool port: {port!r}")
        if not (1 <= port <= 65535):
            raise ValueError(f"invalid pool port: {port}")

        name = data.get("name")
        if name:
            logger.debug(f"Pool picker chose node {name}")
        return PoolAddress(host, port)

    def resolve(self) -> PoolAddress:
        """Resolve the pool address, falling back to the fixed default on any failure."""
        try:
            return self.fetch()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Pool resolution failed ({e}), using fallback {self.fallback}")
            return self.fallback

    async def resolve_async(self) -> PoolAddress:
        """Resolve without blocking the event loop."""
        return await asyncio.to_thread(self.resolve)


def select_pool_address(
    device_pool: Optional[PoolAddress],
    fleet_pool: Optional[PoolAddress],
) -> Optional[PoolAddress]:
    """Pick the statically configured address for a device, if any."""
    return device_pool or fleet_pool
