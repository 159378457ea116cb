"""Hash producers: strategies that supply the numeric result for a job."""

from __future__ import annotations

import hashlib
import random
from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, Optional

ResultFunction = Callable[[str, str, int], Optional[int]]


class HashProducer(ABC):
    """
    Capability that supplies the result for a job.

    Implementations are called from a worker thread and must not touch the
    event loop.
    """

    name: str = "producer"

    @abstractmethod
    def find(self, last_hash: str, expected_hash: str, difficulty: int) -> Optional[int]:
        """
        Find the result for a job.

        Args:
            last_hash: Previous block hash (candidate prefix).
            expected_hash: Digest the winning candidate must produce.
            difficulty: Exclusive upper bound of the candidate range.

        Returns:
            The winning candidate, or None if there is none below ``difficulty``.
        """


class Sha1Hasher(HashProducer):
    """DUCO-S1 brute-force search: SHA-1 of ``last_hash`` followed by the decimal candidate."""

    name = "sha1"

    def find(self, last_hash: str, expected_hash: str, difficulty: int) -> Optional[int]:
        expected = expected_hash.strip().lower()
        # Hash the shared prefix once and copy the state for each candidate
        base = hashlib.sha1(last_hash.encode("utf-8"))
        for candidate in range(difficulty):
            h = base.copy()
            h.update(str(candidate).encode("ascii"))
            if h.hexdigest() == expected:
                return candidate
        return None


class DelegatedHasher(HashProducer):
    """Hands the job to an opaque function and returns whatever it produces."""

    name = "delegated"

    def __init__(self, func: ResultFunction, name: Optional[str] = None):
        """
        Args:
            func: Called as ``func(last_hash, expected_hash, difficulty)``.
            name: Name used in logs.
        """
        self._func = func
        if name:
            self.name = name

    def find(self, last_hash: str, expected_hash: str, difficulty: int) -> Optional[int]:
        return self._func(last_hash, expected_hash, difficulty)


def fabricate_result(rng: random.Random, last_hash: str, expected_hash: str, difficulty: int) -> int:
    """Draw a result uniformly from the job's candidate range."""
    return rng.randrange(difficulty)


def build_hasher(kind: str, rng: Optional[random.Random] = None) -> HashProducer:
    """
    Create the hash producer for a device.

    Args:
        kind: "sha1" or "fabricated".
        rng: Random source for fabricated results (one per device).

    Raises:
        ValueError: If ``kind`` is unknown.
    """
    if kind == "sha1":
        return Sha1Hasher()
    if kind == "fabricated":
        return DelegatedHasher(partial(fabricate_result, rng or random.Random()), name="fabricated")
    raise ValueError(f"Unknown hasher: {kind}")
