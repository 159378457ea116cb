"""Session supervisor - keeps one device connected forever."""

from __future__ import annotations

import asyncio
import random
from functools import partial
from typing import TYPE_CHECKING, Callable, Optional

from loguru import logger

from duco_fleet.errors import MinerError
from duco_fleet.miner.pool import select_pool_address
from duco_fleet.miner.session import MiningSession, SessionSettings, SleepFunction
from duco_fleet.miner.utils import interruptible_sleep

if TYPE_CHECKING:
    from concurrent.futures import Executor

    from duco_fleet.config.models import DeviceConfig, PoolAddress, PoolConfig, SupervisorConfig
    from duco_fleet.miner.hasher import HashProducer
    from duco_fleet.miner.pool import PoolResolver
    from duco_fleet.miner.stats import DeviceStats

SessionFactory = Callable[["PoolAddress"], MiningSession]


class SessionSupervisor:
    """
    Runs a device's mining session in an endless reconnect loop.

    Before the first connection the supervisor waits a random heatup delay
    so a fleet started at once does not connect in lockstep. After every
    session it waits a random backoff delay, so devices that lost the pool
    together come back at different times. The loop only ends when the stop
    event is set.
    """

    def __init__(
        self,
        device: DeviceConfig,
        producer: HashProducer,
        *,
        config: SupervisorConfig,
        stats: DeviceStats,
        resolver: PoolResolver,
        pool: Optional[PoolAddress] = None,
        pool_config: Optional[PoolConfig] = None,
        session_settings: Optional[SessionSettings] = None,
        stop_event: Optional[asyncio.Event] = None,
        executor: Optional[Executor] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[SleepFunction] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        """
        Initialize the supervisor.

        Args:
            device: Device descriptor.
            producer: Hash producer handed to every session.
            config: Heatup and backoff ranges.
            stats: Counters owned by this device.
            resolver: Pool resolver used when no address is configured.
            pool: Fleet-wide pool address (the device's own address wins).
            pool_config: Pool configuration for sessions.
            session_settings: Transport limits for sessions.
            stop_event: Event that ends the loop.
            executor: Executor running the hash producer.
            rng: Random source owned by this device.
            sleep: Sleep coroutine taking seconds (defaults to a stop-aware sleep).
            session_factory: Builds a session for a pool address (for tests).
        """
        self.device = device
        self.producer = producer
        self.config = config
        self.stats = stats
        self.resolver = resolver
        self.pool = pool
        self.pool_config = pool_config
        self.session_settings = session_settings or SessionSettings()
        self._stop_event = stop_event or asyncio.Event()
        self._executor = executor
        self._rng = rng or random.Random()
        self._sleep: SleepFunction = sleep or partial(interruptible_sleep, self._stop_event)
        self._session_factory = session_factory or self._create_session
        self._log = logger.bind(device=device.device_name)

        self.attempts = 0

    @property
    def name(self) -> str:
        return self.device.device_name

    def heatup_delay(self) -> float:
        """Random delay before the first connection, in seconds."""
        return self._rng.randint(self.config.heatup_min_ms, self.config.heatup_max_ms) / 1000

    def backoff_delay(self) -> float:
        """Random delay before reconnecting, in seconds."""
        return self._rng.randint(self.config.backoff_min_ms, self.config.backoff_max_ms) / 1000

    async def resolve_pool(self) -> PoolAddress:
        """Pick the pool for the next attempt; dynamic addresses are resolved fresh each time."""
        static = select_pool_address(self.device.pool_address, self.pool)
        if static is not None:
            return static
        return await self.resolver.resolve_async()

    def _create_session(self, pool: PoolAddress) -> MiningSession:
        return MiningSession(
            self.device,
            pool,
            self.producer,
            settings=self.session_settings,
            pool_config=self.pool_config,
            stats=self.stats,
            stop_event=self._stop_event,
            rng=self._rng,
            executor=self._executor,
        )

    async def run(self) -> None:
        """Keep the device's session alive until the stop event is set."""
        self._log.info(f"Spawning {self.name}...")

        await self._sleep(self.heatup_delay())

        while not self._stop_event.is_set():
            await self.run_once()
            if self._stop_event.is_set():
                break

            delay = self.backoff_delay()
            self._log.info(f"Reconnecting in {delay:.1f}s")
            await self._sleep(delay)

        self._log.info(f"{self.name} stopped after {self.attempts} connection attempts")

    async def run_once(self) -> None:
        """Run a single session attempt, absorbing whatever ends it."""
        self.attempts += 1
        pool = await self.resolve_pool()
        session = self._session_factory(pool)
        try:
            await session.run()
        except MinerError as e:
            self.stats.record_failure(e.kind)
            self._log.error(f"exited with error: {e.kind}: {e}")
        except Exception as e:
            self.stats.record_failure(type(e).__name__)
            self._log.exception(f"exited with unexpected error: {e!r}")
        else:
            if not self._stop_event.is_set():
                self._log.error("exited without error")
