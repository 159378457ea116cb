"""Miner core module: sessions, supervision and the fleet runner."""

from duco_fleet.miner.fleet import Fleet, run_fleet
from duco_fleet.miner.hasher import DelegatedHasher, HashProducer, Sha1Hasher, build_hasher
from duco_fleet.miner.pool import PoolResolver
from duco_fleet.miner.session import MiningSession, SessionSettings, WorkResult
from duco_fleet.miner.stats import DeviceStats, FleetStats
from duco_fleet.miner.supervisor import SessionSupervisor
from duco_fleet.miner.throttle import ThrottlePlan, hash_rate, plan_throttle

__all__ = [
    "Fleet",
    "run_fleet",
    "DelegatedHasher",
    "HashProducer",
    "Sha1Hasher",
    "build_hasher",
    "PoolResolver",
    "MiningSession",
    "SessionSettings",
    "WorkResult",
    "DeviceStats",
    "FleetStats",
    "SessionSupervisor",
    "ThrottlePlan",
    "hash_rate",
    "plan_throttle",
]
