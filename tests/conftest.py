import asyncio
from typing import List, Optional

import pytest
from loguru import logger

from duco_fleet.config.models import DeviceConfig, PoolAddress

POOL = PoolAddress("pool.test", 2813)


def make_device(**overrides) -> DeviceConfig:
    fields = dict(
        username="alice",
        device_name="avr-1",
        device_type="AVR",
        chip_id="DUCOID0A1B2C3D",
        firmware="Official AVR Miner v2.6",
        target_rate=190,
    )
    fields.update(overrides)
    return DeviceConfig(**fields)


class FakeClock:
    """Microsecond clock that only moves when told to."""

    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, micros: int) -> None:
        self.now += micros


class RecordingSleep:
    """Sleep stub that records durations and optionally advances a fake clock."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(round(seconds * 1_000_000))


class ScriptedWriter:
    def __init__(self, pool: "ScriptedPool", reader: asyncio.StreamReader):
        self.pool = pool
        self.reader = reader
        self.closed = False

    def get_extra_info(self, _name, default=None):
        return default

    def write(self, data: bytes) -> None:
        if self.pool.write_error is not None:
            raise self.pool.write_error
        self.pool.sent.append(data.decode("utf-8"))
        if self.pool.silent:
            return
        if self.pool.responses:
            self.reader.feed_data(self.pool.responses.pop(0))
        else:
            self.reader.feed_eof()

    async def drain(self) -> None:
        if self.pool.drain_delay:
            await asyncio.sleep(self.pool.drain_delay)

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return


class ScriptedPool:
    """
    In-memory pool: sends a banner on connect, then answers each client
    write with the next scripted response, and closes the stream when the
    script runs out.
    """

    def __init__(self, banner: Optional[bytes], responses: List[bytes]):
        self.banner = banner
        self.responses = list(responses)
        self.sent: List[str] = []
        self.connections: List[tuple] = []
        self.writers: List[ScriptedWriter] = []
        self.write_error: Optional[Exception] = None
        # Never answer writes, leaving the stream open
        self.silent = False
        self.drain_delay = 0.0

    async def open_connection(self, host, port):
        self.connections.append((host, port))
        reader = asyncio.StreamReader()
        if self.banner is None:
            reader.feed_eof()
        else:
            reader.feed_data(self.banner)
        writer = ScriptedWriter(self, reader)
        self.writers.append(writer)
        return reader, writer


@pytest.fixture
def log_messages():
    messages: List[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
