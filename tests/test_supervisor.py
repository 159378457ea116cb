import asyncio
import random

import pytest

from conftest import POOL, make_device
from duco_fleet.config.models import PoolAddress, SupervisorConfig
from duco_fleet.errors import MinerConnectionError
from duco_fleet.miner.hasher import DelegatedHasher
from duco_fleet.miner.stats import DeviceStats
from duco_fleet.miner.supervisor import SessionSupervisor

PRODUCER = DelegatedHasher(lambda last_hash, expected_hash, difficulty: 0)


class FakeResolver:
    def __init__(self):
        self.calls = 0
        self.url = "http://picker.test/getPool"
        self.fallback = PoolAddress("fallback.test", 2813)

    async def resolve_async(self):
        self.calls += 1
        return PoolAddress("resolved.test", 6000 + self.calls)


class FailingSession:
    def __init__(self, error):
        self.error = error

    async def run(self):
        raise self.error


class StoppingSession:
    def __init__(self, stop_event):
        self.stop_event = stop_event

    async def run(self):
        self.stop_event.set()


def run_supervised(failures, device=None, pool=None, error=None):
    """
    Run a supervisor whose first ``failures`` sessions fail and whose next
    session stops the fleet. Returns (supervisor, sleeps, pools, resolver).
    """
    sleeps = []
    pools = []
    resolver = FakeResolver()

    async def sleep(seconds):
        sleeps.append(seconds)

    async def scenario():
        stop_event = asyncio.Event()

        def factory(address):
            pools.append(address)
            if len(pools) <= failures:
                return FailingSession(error or MinerConnectionError("connection refused"))
            return StoppingSession(stop_event)

        supervisor = SessionSupervisor(
            device or make_device(),
            PRODUCER,
            config=SupervisorConfig(),
            stats=DeviceStats("avr-1"),
            resolver=resolver,
            pool=pool,
            stop_event=stop_event,
            rng=random.Random(42),
            sleep=sleep,
            session_factory=factory,
        )
        await supervisor.run()
        return supervisor

    supervisor = asyncio.run(scenario())
    return supervisor, sleeps, pools, resolver


def test_failures_are_retried_after_jittered_backoff():
    supervisor, sleeps, pools, _ = run_supervised(failures=3)

    assert supervisor.attempts == 4
    assert supervisor.stats.failures["MinerConnectionError"] == 3
    # One heatup delay, then one backoff delay per failed session
    assert len(sleeps) == 4
    assert 0.01 <= sleeps[0] <= 10.0
    for delay in sleeps[1:]:
        assert 30.0 <= delay <= 180.0


def test_backoff_delays_differ_between_attempts():
    _, sleeps, _, _ = run_supervised(failures=5)
    assert len(set(sleeps[1:])) > 1


def test_pool_is_resolved_fresh_for_every_attempt():
    _, _, pools, resolver = run_supervised(failures=2)

    assert resolver.calls == 3
    assert pools == [
        PoolAddress("resolved.test", 6001),
        PoolAddress("resolved.test", 6002),
        PoolAddress("resolved.test", 6003),
    ]


def test_fleet_pool_skips_resolution():
    _, _, pools, resolver = run_supervised(failures=1, pool=POOL)

    assert resolver.calls == 0
    assert pools == [POOL, POOL]


def test_device_pool_overrides_fleet_pool():
    device = make_device(pool="device.test:1234")
    _, _, pools, resolver = run_supervised(failures=0, device=device, pool=POOL)

    assert resolver.calls == 0
    assert pools == [PoolAddress("device.test", 1234)]


def test_unexpected_exception_is_absorbed(log_messages):
    supervisor, _, _, _ = run_supervised(failures=2, error=RuntimeError("boom"))

    assert supervisor.attempts == 3
    assert supervisor.stats.failures["RuntimeError"] == 2
    assert any("exited with unexpected error" in m for m in log_messages)


def test_error_kind_is_logged(log_messages):
    run_supervised(failures=1)

    assert "exited with error: MinerConnectionError: connection refused" in log_messages
    assert "Spawning avr-1..." in log_messages
    assert "avr-1 stopped after 2 connection attempts" in log_messages


def test_clean_exit_without_stop_is_logged_and_retried(log_messages):
    sleeps = []

    class CleanSession:
        async def run(self):
            return None

    async def scenario():
        stop_event = asyncio.Event()
        sessions = []

        def factory(address):
            sessions.append(address)
            if len(sessions) == 1:
                return CleanSession()
            return StoppingSession(stop_event)

        async def sleep(seconds):
            sleeps.append(seconds)

        supervisor = SessionSupervisor(
            make_device(),
            PRODUCER,
            config=SupervisorConfig(),
            stats=DeviceStats("avr-1"),
            resolver=FakeResolver(),
            pool=POOL,
            stop_event=stop_event,
            sleep=sleep,
            session_factory=factory,
        )
        await supervisor.run()
        return supervisor

    supervisor = asyncio.run(scenario())

    assert supervisor.attempts == 2
    assert "exited without error" in log_messages
    assert not supervisor.stats.failures


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_delays_stay_within_configured_ranges(seed):
    config = SupervisorConfig(
        heatup_min_ms=100, heatup_max_ms=200, backoff_min_ms=1_000, backoff_max_ms=2_000
    )
    supervisor = SessionSupervisor(
        make_device(),
        PRODUCER,
        config=config,
        stats=DeviceStats("avr-1"),
        resolver=FakeResolver(),
        rng=random.Random(seed),
    )
    for _ in range(50):
        assert 0.1 <= supervisor.heatup_delay() <= 0.2
        assert 1.0 <= supervisor.backoff_delay() <= 2.0


def test_stop_during_heatup_makes_no_attempt():
    async def scenario():
        stop_event = asyncio.Event()

        async def sleep(seconds):
            stop_event.set()

        supervisor = SessionSupervisor(
            make_device(),
            PRODUCER,
            config=SupervisorConfig(),
            stats=DeviceStats("avr-1"),
            resolver=FakeResolver(),
            stop_event=stop_event,
            sleep=sleep,
            session_factory=lambda address: pytest.fail("session should not start"),
        )
        await supervisor.run()
        return supervisor

    assert asyncio.run(scenario()).attempts == 0
