"""Mining session - one device's connection to the pool."""

from __future__ import annotations

import asyncio
import errno
import random
from concurrent.futures import Executor
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple

from loguru import logger

from duco_fleet.duco.messages import (
    AckStatus,
    Job,
    build_job_request,
    build_result,
    classify_ack,
    parse_job,
)
from duco_fleet.duco.protocol import DEFAULT_RECV_BUFFER_SIZE, DucoProtocol
from duco_fleet.errors import MinerConnectionError, ReceiveError, SendError
from duco_fleet.miner.constants import (
    MAX_LOGGED_RESPONSE_LENGTH,
    MICROS_PER_SECOND,
    POOL_DISCONNECT_TIMEOUT,
)
from duco_fleet.miner.keepalive import enable_tcp_keepalive
from duco_fleet.miner.throttle import hash_rate, plan_throttle
from duco_fleet.miner.utils import interruptible_sleep, monotonic_us, truncate

if TYPE_CHECKING:
    from duco_fleet.config.models import DeviceConfig, PoolAddress, PoolConfig
    from duco_fleet.miner.hasher import HashProducer
    from duco_fleet.miner.stats import DeviceStats

OpenConnection = Callable[..., Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]]
SleepFunction = Callable[[float], Awaitable[object]]


@dataclass(frozen=True)
class SessionSettings:
    """Transport limits for a session."""

    recv_buffer_size: int = DEFAULT_RECV_BUFFER_SIZE
    connect_timeout: Optional[float] = 30.0
    read_timeout: Optional[float] = 120.0
    send_timeout: Optional[float] = 30.0
    submit_jitter_ms: int = 0

    @classmethod
    def from_config(cls, pool: PoolConfig, submit_jitter_ms: int = 0) -> SessionSettings:
        return cls(
            recv_buffer_size=pool.recv_buffer_size,
            connect_timeout=pool.connect_timeout,
            read_timeout=pool.read_timeout,
            send_timeout=pool.send_timeout,
            submit_jitter_ms=submit_jitter_ms,
        )


@dataclass(frozen=True)
class WorkResult:
    """
    Outcome of one compute-and-throttle round.

    Attributes:
        result: Reported hash count (0 if the producer found nothing).
        elapsed_us: Computation time before throttling.
        total_us: Time from start to report, including the throttle wait.
        wait_us: Throttle wait (0 when falling behind).
        lag_us: How far the computation fell behind the target (0 when ahead).
        real_rate: Rate the computation actually achieved (H/s).
        emu_rate: Rate reported to the pool (H/s).
    """

    result: int
    elapsed_us: int
    total_us: int
    wait_us: int
    lag_us: int
    real_rate: float
    emu_rate: float


class MiningSession:
    """
    Runs one device's protocol loop on a single pool connection.

    Protocol:
        connect -> read version banner -> repeat:
            send JOB,<username>,<device_type>
            read <last_hash>,<expected_hash>,<difficulty>
            compute the result, throttle to the target rate
            send <result>,<rate>,<firmware>,<device_name>,<chip_id>
            read GOOD / BLOCK / anything else

    The loop only ends by raising a MinerError (or returning when the stop
    event is set). There is no retry inside a session; the connection is
    closed on exit and the supervisor decides when to reconnect.
    """

    def __init__(
        self,
        device: DeviceConfig,
        pool: PoolAddress,
        producer: HashProducer,
        *,
        settings: Optional[SessionSettings] = None,
        pool_config: Optional[PoolConfig] = None,
        stats: Optional[DeviceStats] = None,
        stop_event: Optional[asyncio.Event] = None,
        rng: Optional[random.Random] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], int] = monotonic_us,
        sleep: Optional[SleepFunction] = None,
        open_connection: OpenConnection = asyncio.open_connection,
    ):
        """
        Initialize a mining session.

        Args:
            device: Device descriptor.
            pool: Pool address to connect to.
            producer: Hash producer for job results.
            settings: Transport limits.
            pool_config: Pool configuration (for TCP keepalive settings).
            stats: Device counters to update.
            stop_event: Event that ends the session cleanly.
            rng: Random source for result dithering.
            executor: Executor running the hash producer.
            clock: Monotonic clock in microseconds.
            sleep: Sleep coroutine taking seconds (defaults to a stop-aware sleep).
            open_connection: Stream connection factory.
        """
        self.device = device
        self.pool = pool
        self.producer = producer
        self.settings = settings or SessionSettings()
        self.pool_config = pool_config
        self.stats = stats
        self._stop_event = stop_event
        self._rng = rng or random.Random()
        self._executor = executor
        self._clock = clock
        self._sleep: SleepFunction = sleep or partial(interruptible_sleep, stop_event)
        self._open_connection = open_connection

        self._protocol = DucoProtocol(self.settings.recv_buffer_size)
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._log = logger.bind(device=device.device_name)

        self.rounds = 0

    @property
    def name(self) -> str:
        return self.device.device_name

    @property
    def connected(self) -> bool:
        return self._writer is not None

    @property
    def stopping(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    async def run(self) -> None:
        """
        Run the session until an error ends it.

        Raises:
            MinerError: The error that ended the session.
        """
        try:
            await self._connect()
            if self.stopping:
                return
            await self._handshake()

            while not self.stopping:
                job = await self._request_job()
                work = await self._compute(job)
                if self.stopping:
                    break
                await self._report(work)
                await self._await_ack(work)
                self.rounds += 1
        finally:
            await self._disconnect()

    async def _connect(self) -> None:
        """Open the pool connection."""
        host, port = self.pool
        self._log.debug(f"Connecting to pool {self.pool}")
        try:
            self._reader, self._writer = await asyncio.wait_for(
                self._open_connection(host, port),
                timeout=self.settings.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise MinerConnectionError(f"connection to {self.pool} timed out") from e
        except OSError as e:
            error_msg = str(e)
            if e.errno == errno.ECONNREFUSED:
                error_msg = "connection refused (is the pool running?)"
            elif e.errno == errno.EHOSTUNREACH:
                error_msg = "host unreachable (check network connectivity)"
            elif e.errno == errno.ENETUNREACH:
                error_msg = "network unreachable (check network configuration)"
            elif "getaddrinfo failed" in error_msg.lower() or e.errno in (
                errno.ENOENT,
                getattr(errno, "EAI_NONAME", -2),
            ):
                error_msg = f"DNS resolution failed: {e}"
            raise MinerConnectionError(f"connection to {self.pool} failed: {error_msg}") from e

        if self.pool_config:
            enable_tcp_keepalive(self._writer, self.pool_config, self.name)

        if self.stats:
            self.stats.record_session_start()
        self._log.info(f"{self.name} connected to pool {self.pool}")

    async def _disconnect(self) -> None:
        """Close the pool connection."""
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        try:
            writer.close()
            await asyncio.wait_for(writer.wait_closed(), timeout=POOL_DISCONNECT_TIMEOUT)
        except asyncio.TimeoutError:
            self._log.debug("Timeout waiting for pool socket to close")
        except OSError as e:
            self._log.debug(f"Error closing pool connection: {e}")

    async def _recv(self) -> str:
        """
        Read one message from the pool.

        Raises:
            ReceiveError: On read failure, timeout, closed stream or oversized message.
            EncodingError: If the message is not valid text.
        """
        if self._reader is None:
            raise ReceiveError("not connected")
        try:
            data = await asyncio.wait_for(
                self._reader.read(self._protocol.read_size),
                timeout=self.settings.read_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ReceiveError(f"no response from pool within {self.settings.read_timeout}s") from e
        except OSError as e:
            raise ReceiveError(f"read from pool failed: {e}") from e

        if not data:
            raise ReceiveError("connection closed by pool")
        return self._protocol.decode(data)

    async def _send(self, line: str) -> None:
        """
        Write one line to the pool.

        Raises:
            SendError: On write failure or timeout.
        """
        if self._writer is None:
            raise SendError("not connected")
        try:
            self._writer.write(self._protocol.encode(line))
            await asyncio.wait_for(self._writer.drain(), timeout=self.settings.send_timeout)
        except asyncio.TimeoutError as e:
            raise SendError(f"send to pool timed out after {self.settings.send_timeout}s") from e
        except OSError as e:
            raise SendError(f"write to pool failed: {e}") from e

    async def _handshake(self) -> None:
        """Read and log the pool's version banner."""
        banner = await self._recv()
        self._log.info(f"version: {truncate(banner.strip(), MAX_LOGGED_RESPONSE_LENGTH)}")

    async def _request_job(self) -> Job:
        """Ask the pool for a job and parse the answer."""
        await self._send(build_job_request(self.device.username, self.device.device_type))
        job = parse_job(await self._recv())
        self._log.info(
            f"last: {job.last_hash}, expected: {job.expected_hash}, diff: {job.difficulty}"
        )
        return job

    async def _find(self, job: Job) -> Optional[int]:
        """Run the hash producer off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            self.producer.find,
            job.last_hash,
            job.expected_hash,
            job.difficulty,
        )

    async def _compute(self, job: Job) -> WorkResult:
        """Produce the job result and wait until it can be reported at the target rate."""
        start = self._clock()

        result = await self._find(job)
        if result is None:
            # Reported as 0, as the device firmware does, rather than retried
            self._log.warning(f"No result below difficulty {job.difficulty}, reporting 0")
            result = 0

        elapsed = self._clock() - start
        real_rate = hash_rate(result, elapsed)

        plan = plan_throttle(result, elapsed, self.device.target_rate)
        if plan.wait > 0:
            await self._sleep(plan.wait / MICROS_PER_SECOND)
            self._log.info(f"waited {plan.wait} micro sec")
        else:
            self._log.warning(f"system too slow, lag {plan.lag} micro sec")

        total = self._clock() - start
        emu_rate = hash_rate(result, total)

        if self.settings.submit_jitter_ms > 0:
            jitter_ms = self._rng.randint(0, self.settings.submit_jitter_ms)
            await self._sleep(jitter_ms / 1000)

        return WorkResult(
            result=result,
            elapsed_us=elapsed,
            total_us=total,
            wait_us=plan.wait,
            lag_us=plan.lag,
            real_rate=real_rate,
            emu_rate=emu_rate,
        )

    async def _report(self, work: WorkResult) -> None:
        """Send the result line."""
        await self._send(
            build_result(
                work.result,
                work.emu_rate,
                self.device.firmware,
                self.device.device_name,
                self.device.chip_id,
            )
        )

    async def _await_ack(self, work: WorkResult) -> AckStatus:
        """Read the pool's verdict. Every verdict is logged; none ends the session."""
        response = (await self._recv()).strip()
        status = classify_ack(response)

        summary = f"result: {work.result}, rate: {work.emu_rate:.2f}, real: {work.real_rate:.2f}"
        if status is AckStatus.GOOD:
            self._log.info(f"result good, {summary}")
        elif status is AckStatus.BLOCK:
            self._log.info(f"FOUND BLOCK!, {summary}")
        else:
            self._log.warning(f"resp: {truncate(response, MAX_LOGGED_RESPONSE_LENGTH)}, {summary}")

        if self.stats:
            self.stats.record_result(status, work.emu_rate, work.real_rate)
        return status
