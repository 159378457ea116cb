"""TCP socket tuning for long-lived pool connections."""

from __future__ import annotations

import socket
import sys
from typing import TYPE_CHECKING, List, Tuple

from loguru import logger

if TYPE_CHECKING:
    import asyncio

    from duco_fleet.config.models import PoolConfig

SocketOption = Tuple[int, int, int]


def keepalive_options(config: PoolConfig, platform: str = sys.platform) -> List[SocketOption]:
    """
    Socket options enabling keepalive with the configured timings.

    Only Linux exposes all three timings; macOS exposes the idle time and
    other platforms get the OS defaults.
    """
    options: List[SocketOption] = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    if platform == "linux":
        options += [
            (socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, config.keepalive_idle),
            (socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, config.keepalive_interval),
            (socket.IPPROTO_TCP, socket.TCP_KEEPCNT, config.keepalive_count),
        ]
    elif platform == "darwin":
        options.append((socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, config.keepalive_idle))
    return options


def enable_tcp_keepalive(
    writer: asyncio.StreamWriter,
    config: PoolConfig,
    device_name: str = "device",
) -> bool:
    """
    Tune a pool socket: TCP_NODELAY always, keepalive when enabled.

    Result lines are tiny and each one waits for a reply, so Nagle's
    algorithm is switched off. Keepalive lets the OS notice a pool that
    vanished without closing the connection.

    Args:
        writer: Stream writer owning the socket.
        config: Pool configuration with the keepalive settings.
        device_name: Device name for logging.

    Returns:
        True if the socket was tuned.
    """
    log = logger.bind(device=device_name)
    sock = writer.get_extra_info("socket")
    if sock is None:
        log.debug("No socket to tune")
        return False

    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except (OSError, AttributeError) as e:
        log.debug(f"TCP_NODELAY not available: {e}")

    if not config.tcp_keepalive:
        return True

    try:
        for level, option, value in keepalive_options(config):
            sock.setsockopt(level, option, value)
        if sys.platform == "win32":
            sock.ioctl(
                socket.SIO_KEEPALIVE_VALS,
                (1, config.keepalive_idle * 1000, config.keepalive_interval * 1000),
            )
    except (OSError, AttributeError) as e:
        log.warning(f"Failed to enable TCP keepalive: {e}")
        return False

    log.debug(
        f"TCP keepalive enabled: idle={config.keepalive_idle}s, "
        f"interval={config.keepalive_interval}s, count={config.keepalive_count}"
    )
    return True
