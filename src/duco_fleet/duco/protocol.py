"""DUCO text protocol encoding and decoding."""

from __future__ import annotations

from duco_fleet.errors import EncodingError, MessageTooLargeError

# Size of the device firmware's receive buffer (bytes)
DEFAULT_RECV_BUFFER_SIZE = 200


class DucoProtocol:
    """
    Encodes outgoing lines and decodes incoming pool messages.

    The pool protocol is request/response: every client line is answered by
    exactly one server message, so each read is treated as one message.
    Messages longer than the receive buffer are rejected, not truncated.
    """

    ENCODING = "utf-8"

    def __init__(self, recv_buffer_size: int = DEFAULT_RECV_BUFFER_SIZE):
        """
        Initialize the protocol handler.

        Args:
            recv_buffer_size: Largest accepted inbound message in bytes.
        """
        self.recv_buffer_size = recv_buffer_size

    @property
    def read_size(self) -> int:
        """Bytes to request per read; one more than the buffer so overflow is detectable."""
        return self.recv_buffer_size + 1

    def decode(self, data: bytes) -> str:
        """
        Decode one inbound message.

        Args:
            data: Raw bytes from a single read.

        Returns:
            Decoded text, untrimmed.

        Raises:
            MessageTooLargeError: If the message exceeds the receive buffer.
            EncodingError: If the bytes are not valid UTF-8.
        """
        if len(data) > self.recv_buffer_size:
            raise MessageTooLargeError(len(data), self.recv_buffer_size)
        try:
            return data.decode(self.ENCODING)
        except UnicodeDecodeError as e:
            raise EncodingError(f"Invalid {self.ENCODING} from pool: {e}") from e

    def encode(self, line: str) -> bytes:
        """Encode an outgoing protocol line."""
        return line.encode(self.ENCODING)
