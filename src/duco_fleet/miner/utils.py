"""Shared utility functions for the miner module."""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from loguru import logger


def monotonic_us() -> int:
    """Monotonic clock in whole microseconds."""
    return time.perf_counter_ns() // 1000


async def interruptible_sleep(stop_event: Optional[asyncio.Event], seconds: float) -> bool:
    """
    Sleep for ``seconds`` or until ``stop_event`` is set.

    Args:
        stop_event: Event that cuts the sleep short (None sleeps unconditionally).
        seconds: Sleep duration.

    Returns:
        True if the sleep was interrupted by the stop event.
    """
    if stop_event is None:
        await asyncio.sleep(max(0.0, seconds))
        return False
    if stop_event.is_set():
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=max(0.0, seconds))
        return True
    except asyncio.TimeoutError:
        return False


def truncate(text: str, max_length: int) -> str:
    """Truncate text for logging."""
    if len(text) > max_length:
        return text[:max_length] + "... (truncated)"
    return text


def log_task_exception(task: asyncio.Task, task_name: str) -> None:
    """Add exception logging callback to a task."""
    def _callback(t: asyncio.Task) -> None:
        try:
            if t.cancelled():
                return
            exc = t.exception()
            if exc:
                logger.error(f"{task_name} failed with exception: {exc!r}")
        except Exception as e:
            logger.error(f"Error in task exception callback for {task_name}: {e}")
    task.add_done_callback(_callback)
