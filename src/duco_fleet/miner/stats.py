"""Statistics tracking for emulated devices."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from loguru import logger

from duco_fleet.duco.messages import AckStatus


@dataclass
class DeviceStats:
    """
    Counters for a single device.

    Each instance is written only by its own device's supervisor and session;
    the fleet reads them when logging a summary.
    """

    device_name: str
    sessions: int = 0
    failures: Counter = field(default_factory=Counter)
    accepted: int = 0
    blocks: int = 0
    other_responses: int = 0
    last_emu_rate: float = 0.0
    last_real_rate: float = 0.0

    @property
    def total_results(self) -> int:
        """Total results acknowledged by the pool."""
        return self.accepted + self.blocks + self.other_responses

    @property
    def accept_rate(self) -> float:
        """Share of results answered GOOD or BLOCK, as a percentage."""
        if self.total_results == 0:
            return 0.0
        return (self.accepted + self.blocks) / self.total_results * 100

    def record_session_start(self) -> None:
        self.sessions += 1

    def record_failure(self, kind: str) -> None:
        self.failures[kind] += 1

    def record_result(self, status: AckStatus, emu_rate: float, real_rate: float) -> None:
        """Record the pool's verdict on a submitted result."""
        if status is AckStatus.GOOD:
            self.accepted += 1
        elif status is AckStatus.BLOCK:
            self.blocks += 1
        else:
            self.other_responses += 1
        self.last_emu_rate = emu_rate
        self.last_real_rate = real_rate


class FleetStats:
    """Read-only view over every device's counters."""

    def __init__(self, devices: Optional[List[DeviceStats]] = None):
        self._devices: Dict[str, DeviceStats] = {d.device_name: d for d in devices or []}
        self.start_time = datetime.now(timezone.utc).astimezone()

    def add(self, stats: DeviceStats) -> None:
        """Register a device's counters (fleet startup only)."""
        self._devices[stats.device_name] = stats

    def get(self, device_name: str) -> Optional[DeviceStats]:
        return self._devices.get(device_name)

    def get_uptime(self) -> str:
        """Get formatted uptime string."""
        delta = datetime.now(timezone.utc).astimezone() - self.start_time
        days = delta.days
        hours, remainder = divmod(delta.seconds, 3600)
        minutes, _ = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0 or days > 0:
            parts.append(f"{hours}h")
        parts.append(f"{minutes}m")

        return " ".join(parts)

    def log_stats(self) -> None:
        """Log a summary of every device."""
        devices = list(self._devices.values())
        accepted = sum(d.accepted for d in devices)
        blocks = sum(d.blocks for d in devices)
        other = sum(d.other_responses for d in devices)
        reported_rate = sum(d.last_emu_rate for d in devices)

        logger.info("=" * 60)
        logger.info(f"FLEET STATISTICS (uptime: {self.get_uptime()})")
        logger.info("=" * 60)
        logger.info(
            f"Devices: {len(devices)} | Reported rate: {reported_rate:.2f} H/s | "
            f"Results: {accepted} good / {blocks} block / {other} other"
        )

        for d in devices:
            logger.info("-" * 40)
            logger.info(
                f"{d.device_name}: sessions={d.sessions} | "
                f"good={d.accepted} block={d.blocks} other={d.other_responses} "
                f"({d.accept_rate:.1f}% accepted) | "
                f"rate={d.last_emu_rate:.2f} real={d.last_real_rate:.2f}"
            )
            if d.failures:
                failures_str = ", ".join(
                    f"{kind}: {count}" for kind, count in d.failures.most_common()
                )
                logger.info(f"  Failures: {failures_str}")

        logger.info("=" * 60)


async def run_stats_logger(stats: FleetStats, stop_event: asyncio.Event) -> None:
    """
    Log fleet statistics at minute 0, 15, 30 and 45 of each hour.

    Args:
        stats: Fleet statistics to log.
        stop_event: Event to signal shutdown.
    """
    while not stop_event.is_set():
        now = datetime.now()

        # Seconds until the next quarter hour
        next_quarter = ((now.minute // 15) + 1) * 15
        wait_seconds = (next_quarter - now.minute) * 60 - now.second
        # Ensure minimum wait time to prevent tight loop
        wait_seconds = max(1, wait_seconds)

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=wait_seconds)
            break
        except asyncio.TimeoutError:
            stats.log_stats()
