"""Fleet runner - one supervised session per device."""

from __future__ import annotations

import asyncio
import random
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Dict, List, Optional

from loguru import logger

from duco_fleet.miner.constants import HASHER_THREAD_PREFIX, SHUTDOWN_TIMEOUT
from duco_fleet.miner.hasher import build_hasher
from duco_fleet.miner.pool import PoolResolver
from duco_fleet.miner.session import SessionSettings
from duco_fleet.miner.stats import DeviceStats, FleetStats, run_stats_logger
from duco_fleet.miner.supervisor import SessionSupervisor
from duco_fleet.miner.utils import log_task_exception

if TYPE_CHECKING:
    from duco_fleet.config.models import Config, PoolAddress


class Fleet:
    """
    Runs every device in the roster concurrently.

    Each device gets its own supervisor task, hash producer, random source
    and statistics; devices share nothing mutable, so one device's failures
    never reach another. Hash searches run on a thread pool with one worker
    per device.
    """

    def __init__(
        self,
        config: Config,
        pool: Optional[PoolAddress] = None,
        stop_event: Optional[asyncio.Event] = None,
        resolver: Optional[PoolResolver] = None,
    ):
        """
        Initialize the fleet.

        Args:
            config: Application configuration (roster and settings).
            pool: Pool address overriding the configured one.
            stop_event: Event that stops every device.
            resolver: Pool resolver (defaults to one built from the config).
        """
        self.config = config
        self.pool = pool or config.pool.pool_address
        self._stop_event = stop_event or asyncio.Event()
        self.resolver = resolver or PoolResolver.from_config(config.pool)
        self.stats = FleetStats()

        self._executor: Optional[ThreadPoolExecutor] = None
        self._supervisors: Dict[str, SessionSupervisor] = {}
        self._tasks: List[asyncio.Task] = []

    @property
    def supervisors(self) -> List[SessionSupervisor]:
        return list(self._supervisors.values())

    def _build_supervisors(self) -> None:
        settings = SessionSettings.from_config(self.config.pool, self.config.miner.submit_jitter_ms)
        for device in self.config.devices:
            rng = random.Random()
            stats = DeviceStats(device.device_name)
            self.stats.add(stats)
            self._supervisors[device.device_name] = SessionSupervisor(
                device,
                build_hasher(self.config.miner.hasher, rng),
                config=self.config.supervisor,
                stats=stats,
                resolver=self.resolver,
                pool=self.pool,
                pool_config=self.config.pool,
                session_settings=settings,
                stop_event=self._stop_event,
                executor=self._executor,
                rng=rng,
            )

    async def run(self) -> None:
        """Run every device until the stop event is set."""
        device_count = len(self.config.devices)
        logger.info(f"running with {device_count} miners")
        if self.pool:
            logger.info(f"Pool: {self.pool}")
        else:
            logger.info(f"Pool: resolved via {self.resolver.url} (fallback {self.resolver.fallback})")

        self._executor = ThreadPoolExecutor(
            max_workers=device_count, thread_name_prefix=HASHER_THREAD_PREFIX
        )
        try:
            self._build_supervisors()
            for name, supervisor in self._supervisors.items():
                task = asyncio.create_task(supervisor.run(), name=f"supervisor:{name}")
                log_task_exception(task, f"Supervisor {name}")
                self._tasks.append(task)

            stats_task: Optional[asyncio.Task] = None
            if self.config.stats.enabled:
                stats_task = asyncio.create_task(
                    run_stats_logger(self.stats, self._stop_event), name="stats-logger"
                )
                log_task_exception(stats_task, "Stats logger task")

            try:
                await asyncio.gather(*self._tasks, return_exceptions=True)
            finally:
                if stats_task:
                    stats_task.cancel()
                    try:
                        await stats_task
                    except asyncio.CancelledError:
                        pass
        finally:
            # Running hash searches cannot be interrupted; don't wait for them
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    async def stop(self) -> None:
        """Stop every device and wait for the supervisors to finish."""
        logger.info("Stopping fleet...")
        self._stop_event.set()

        if self._tasks:
            done, pending = await asyncio.wait(self._tasks, timeout=SHUTDOWN_TIMEOUT)
            if pending:
                logger.warning(f"{len(pending)} devices did not stop in time, cancelling")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        if self.config.stats.enabled:
            self.stats.log_stats()
        logger.info("Fleet stopped")


async def run_fleet(
    config: Config,
    stop_event: Optional[asyncio.Event] = None,
    pool: Optional[PoolAddress] = None,
) -> None:
    """
    Run the fleet.

    Args:
        config: Application configuration.
        stop_event: Optional event to signal shutdown.
        pool: Pool address overriding the configured one.
    """
    stop_event = stop_event or asyncio.Event()
    fleet = Fleet(config, pool=pool, stop_event=stop_event)

    async def wait_for_stop():
        await stop_event.wait()
        await fleet.stop()

    stop_task = asyncio.create_task(wait_for_stop())
    log_task_exception(stop_task, "Stop signal handler")

    try:
        await fleet.run()
    except asyncio.CancelledError:
        pass
    finally:
        if stop_event.is_set():
            # Let the shutdown sequence finish logging
            await asyncio.gather(stop_task, return_exceptions=True)
        elif not stop_task.done():
            stop_task.cancel()
            try:
                await stop_task
            except asyncio.CancelledError:
                pass
