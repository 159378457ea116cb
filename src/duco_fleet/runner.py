"""Foreground application runner with signal handling."""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

if TYPE_CHECKING:
    from duco_fleet.config.models import Config, PoolAddress


class FleetApp:
    """
    Runs the fleet in the foreground until SIGINT or SIGTERM.

    Handles:
    - Logging setup
    - Signal handling for graceful shutdown
    - The event loop lifecycle
    """

    def __init__(self, config: Config, pool: Optional[PoolAddress] = None):
        """
        Initialize the application.

        Args:
            config: Application configuration.
            pool: Pool address overriding the configured one.
        """
        self.config = config
        self.pool = pool
        self._stop_event: Optional[asyncio.Event] = None
        self._signal_received = False

    def run(self) -> None:
        """Run the fleet (blocking)."""
        asyncio.run(self._run_main_loop())

    def _setup_signals(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._request_stop)
        else:
            # Windows loops don't implement add_signal_handler
            def sync_signal_handler(signum: int, frame: Any) -> None:
                self._signal_received = True
                try:
                    loop.call_soon_threadsafe(self._request_stop)
                except RuntimeError:
                    # Loop already closed
                    pass

            signal.signal(signal.SIGINT, sync_signal_handler)
            signal.signal(signal.SIGTERM, sync_signal_handler)

            asyncio.create_task(self._windows_signal_watcher())

    def _request_stop(self) -> None:
        if self._stop_event and not self._stop_event.is_set():
            logger.info("Received shutdown signal")
            self._stop_event.set()

    async def _windows_signal_watcher(self) -> None:
        """
        Periodically check for signals on Windows.

        Signal handlers only run when Python executes bytecode, so the loop
        must wake up regularly while every device is blocked on I/O.
        """
        while self._stop_event and not self._stop_event.is_set():
            if self._signal_received:
                self._request_stop()
                break
            await asyncio.sleep(0.1)

    async def _run_main_loop(self) -> None:
        """Main application loop."""
        from duco_fleet.logging.setup import setup_logging
        from duco_fleet.miner.fleet import run_fleet

        self._stop_event = asyncio.Event()
        self._setup_signals()

        setup_logging(self.config.logging)

        logger.info("Starting DUCO device fleet")
        logger.info(f"Devices: {', '.join(self.config.get_device_names())}")

        await run_fleet(self.config, self._stop_event, pool=self.pool)

        logger.info("Fleet shutdown complete")
