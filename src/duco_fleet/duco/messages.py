"""DUCO pool message types and line builders."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from duco_fleet.errors import MalformedJobError

# Pool difficulty is scaled by the client before it bounds the nonce search
DIFFICULTY_SCALE = 100

# Pools send the difficulty as a 32-bit unsigned integer
MAX_RAW_DIFFICULTY = 0xFFFFFFFF

FIELD_SEPARATOR = ","

_DECIMAL = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Job:
    """
    A challenge issued by the pool.

    Attributes:
        last_hash: Previous block hash, the prefix of every candidate.
        expected_hash: Digest the winning candidate must produce.
        raw_difficulty: Difficulty value as sent by the pool.
    """

    last_hash: str
    expected_hash: str
    raw_difficulty: int

    @property
    def difficulty(self) -> int:
        """Exclusive upper bound of the candidate search space (always >= 1)."""
        return self.raw_difficulty * DIFFICULTY_SCALE + 1


class AckStatus(Enum):
    """Pool verdict on a submitted result."""

    GOOD = "GOOD"
    BLOCK = "BLOCK"
    OTHER = "OTHER"


def parse_job(text: str) -> Job:
    """
    Parse a ``<lastHash>,<expectedHash>,<difficulty>`` job line.

    Extra trailing fields are ignored.

    Args:
        text: Decoded job line (surrounding whitespace is ignored).

    Returns:
        Parsed job.

    Raises:
        MalformedJobError: If there are fewer than 3 fields or the difficulty
            is not a decimal integer no larger than MAX_RAW_DIFFICULTY.
    """
    line = text.strip()
    fields = line.split(FIELD_SEPARATOR)
    if len(fields) < 3:
        raise MalformedJobError(line, f"expected 3 fields, got {len(fields)}")

    diff_field = fields[2].strip()
    if not _DECIMAL.fullmatch(diff_field):
        raise MalformedJobError(line, f"invalid difficulty {diff_field!r}")

    raw_difficulty = int(diff_field)
    if raw_difficulty > MAX_RAW_DIFFICULTY:
        raise MalformedJobError(line, "difficulty out of range")

    return Job(
        last_hash=fields[0],
        expected_hash=fields[1],
        raw_difficulty=raw_difficulty,
    )


def build_job_request(username: str, device_type: str) -> str:
    """Build the ``JOB,<username>,<device_type>`` request line."""
    return f"JOB,{username},{device_type}\n"


def build_result(
    result: int,
    rate: float,
    firmware: str,
    device_name: str,
    chip_id: str,
) -> str:
    """Build the result line reporting ``result`` at ``rate`` H/s."""
    return f"{result},{rate:.2f},{firmware},{device_name},{chip_id}\n"


def classify_ack(text: str) -> AckStatus:
    """Classify the pool's response to a submitted result."""
    token = text.strip()
    if token == AckStatus.GOOD.value:
        return AckStatus.GOOD
    if token == AckStatus.BLOCK.value:
        return AckStatus.BLOCK
    return AckStatus.OTHER
