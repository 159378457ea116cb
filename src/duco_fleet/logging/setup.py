"""Loguru-based logging configuration."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from duco_fleet.config.models import LoggingConfig

# Value of the "device" field for records not bound to a device
FLEET_LOG_NAME = "fleet"


def setup_logging(config: LoggingConfig) -> None:
    """
    Route fleet logs to stderr and, optionally, a rotating file.

    Device code logs through ``logger.bind(device=name)``; everything else
    is tagged with FLEET_LOG_NAME so the ``{extra[device]}`` format field
    always resolves.

    Args:
        config: Logging configuration object.
    """
    logger.remove()
    logger.configure(extra={"device": FLEET_LOG_NAME})

    common = {"level": config.level, "format": config.format}
    logger.add(sys.stderr, colorize=True, **common)

    if config.file:
        logger.add(
            config.file,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            encoding="utf-8",
            **common,
        )

    sinks = f"stderr and {config.file}" if config.file else "stderr"
    logger.debug(f"Logging to {sinks} at {config.level}")
