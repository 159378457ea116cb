"""Errors that end a mining session.

Every error here is fatal to the session that raised it. The supervisor
catches them, logs the kind and reconnects after a backoff delay.
"""

from __future__ import annotations


class MinerError(Exception):
    """Base class for session-ending errors."""

    @property
    def kind(self) -> str:
        """Short error kind used in logs and statistics."""
        return type(self).__name__


class MinerConnectionError(MinerError):
    """Could not connect to the pool."""

    pass


class ReceiveError(MinerError):
    """Reading from the pool failed, timed out, or the pool closed the stream."""

    pass


class MessageTooLargeError(ReceiveError):
    """Pool message does not fit in the receive buffer."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"message of {size} bytes exceeds receive buffer of {limit} bytes")
        self.size = size
        self.limit = limit


class SendError(MinerError):
    """Writing to the pool failed or timed out."""

    pass


class EncodingError(MinerError):
    """Pool sent bytes that are not valid text."""

    pass


class MalformedJobError(MinerError):
    """Job line could not be parsed."""

    def __init__(self, raw: str, reason: str = "malformed job"):
        super().__init__(f"{reason}: {raw!r}")
        self.raw = raw
        self.reason = reason
