"""LSP base protocol framing with Content-Length headers.

Wire format:
    Content-Length: <length>\r\n
    [Content-Type: <type>]\r\n
    \r\n
    <payload>

Content-Length is the byte count of the payload. Outgoing messages carry
only the Content-Length header. Payloads are opaque bytes here: encoding
and JSON handling belong to the caller.

Sending is a plain function over a ChannelEnd (write_message). Incoming
framing is a separate buffering decoder (MessageDecoder) fed with whatever
raw reads return.
"""

from __future__ import annotations

import os

from spectre_lsp.config.schema import DEFAULT_MAX_MESSAGE_SIZE
from spectre_lsp.logging import TRACE, get_logger
from spectre_lsp.transport.channel import ChannelEnd

log = get_logger("transport")

CONTENT_LENGTH = "Content-Length"
HEADER_ENCODING = "ascii"
HEADER_SEPARATOR = b"\r\n\r\n"
# Longest header block accepted, separator excluded
MAX_HEADER_SIZE = 8192


class LSPFramingError(Exception):
    """Error in LSP message framing.

    Raised when:
    - Content-Length header is missing
    - Content-Length value is not a valid integer
    - Content-Length value is negative or above the size limit
    - Header format is malformed or the header block is too long
    - The stream ends inside a message
    """


def encode_header(length: int) -> bytes:
    """Build the header block for a payload of the given byte length."""
    if length < 0:
        raise ValueError(f"Negative payload length: {length}")
    return f"{CONTENT_LENGTH}: {length}\r\n\r\n".encode(HEADER_ENCODING)


def frame_message(payload: bytes | bytearray | memoryview) -> bytes:
    """Return header and payload as one bytes object."""
    body = memoryview(payload)
    return encode_header(body.nbytes) + body.tobytes()


def write_message(end: ChannelEnd, payload: bytes | bytearray | memoryview) -> bool:
    """Write one framed message: header, then payload.

    The two writes go to the same descriptor in order and each must be
    complete. Nothing is written when the end is already closed.

    Returns:
        True if both writes completed, False on a closed end, an OS error
        (e.g. broken pipe) or a short write. After False the peer may hold
        a partial message; the session should be restarted.

    Raises:
        TypeError: If payload is not bytes-like.
    """
    body = memoryview(payload).cast("B")
    if end.closed:
        log.debug("Send on closed channel")
        return False

    header = encode_header(body.nbytes)
    if not _write_exact(end, header) or not _write_exact(end, body):
        return False

    if log.isEnabledFor(TRACE):
        log.log(TRACE, "--> %s%r", header.decode(HEADER_ENCODING), body.tobytes())
    return True


def _write_exact(end: ChannelEnd, data: bytes | memoryview) -> bool:
    expected = len(data)
    try:
        written = os.write(end.fileno(), data)
    except (OSError, ValueError) as e:
        # ValueError: the end was closed by stop() in the meantime
        log.warning("Write to server failed: %s", e)
        return False
    if written != expected:
        log.warning("Short write to server: %d of %d bytes", written, expected)
        return False
    return True


def parse_header(header_bytes: bytes) -> dict[str, str]:
    """Parse LSP headers from raw bytes.

    Args:
        header_bytes: Raw header bytes without the trailing blank line, e.g.
            b"Content-Length: 123\\r\\nContent-Type: ..."

    Returns:
        Dictionary mapping header names to values.

    Raises:
        LSPFramingError: If headers are malformed or Content-Length is missing/invalid.

    Example:
        >>> parse_header(b"Content-Length: 42\\r\\nContent-Type: application/json")
        {'Content-Length': '42', 'Content-Type': 'application/json'}
    """
    headers: dict[str, str] = {}

    if not header_bytes:
        raise LSPFramingError("Empty header block")

    try:
        header_text = header_bytes.decode(HEADER_ENCODING)
    except UnicodeDecodeError as e:
        raise LSPFramingError(f"Header contains non-ASCII characters: {e}") from e

    for line in header_text.split("\r\n"):
        if not line:
            continue

        colon_pos = line.find(":")
        if colon_pos == -1:
            raise LSPFramingError(f"Malformed header line (no colon): {line!r}")

        name = line[:colon_pos].strip()
        value = line[colon_pos + 1 :].strip()

        if not name:
            raise LSPFramingError(f"Empty header name in line: {line!r}")

        headers[name] = value

    if CONTENT_LENGTH not in headers:
        raise LSPFramingError("Missing required Content-Length header")

    try:
        length = int(headers[CONTENT_LENGTH])
    except ValueError as e:
        raise LSPFramingError(f"Invalid Content-Length value: {headers[CONTENT_LENGTH]!r}") from e

    if length < 0:
        raise LSPFramingError(f"Negative Content-Length: {length}")

    return headers


class MessageDecoder:
    """Reassemble framed messages from an arbitrarily chunked byte stream.

    Feed it whatever a raw read returned; it hands back every payload that
    is now complete and keeps the remainder buffered.

    Example:
        >>> decoder = MessageDecoder()
        >>> decoder.feed(b"Content-Length: 4\\r\\n\\r\\npi")
        []
        >>> decoder.feed(b"ng")
        [b'ping']
    """

    def __init__(self, max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> None:
        self._max_message_size = max_message_size
        self._buffer = bytearray()
        # Payload length of the message whose header is already consumed
        self._expected: int | None = None

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet returned as a message."""
        return len(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self._expected = None

    def finish(self) -> None:
        """Declare end of stream.

        Raises:
            LSPFramingError: If the stream ended inside a header or body.
        """
        if self._expected is not None:
            raise LSPFramingError(
                f"Incomplete message body: expected {self._expected} bytes, "
                f"got {len(self._buffer)}"
            )
        if self._buffer:
            raise LSPFramingError("Unexpected EOF while reading headers")

    def feed(self, data: bytes | bytearray | memoryview) -> list[bytes]:
        """Add bytes and return the payloads completed by them, in order.

        Raises:
            LSPFramingError: On a malformed or overlong header, or an
                oversized message. The decoder should be reset (or
                discarded) afterwards.
        """
        self._buffer += data
        messages: list[bytes] = []

        while True:
            if self._expected is None:
                header_end = self._buffer.find(HEADER_SEPARATOR)
                if header_end == -1:
                    # A separator may still straddle the next chunk
                    if len(self._buffer) > MAX_HEADER_SIZE + len(HEADER_SEPARATOR) - 1:
                        raise LSPFramingError(
                            f"Header block too long: no terminator in {len(self._buffer)} bytes"
                        )
                    break
                if header_end > MAX_HEADER_SIZE:
                    raise LSPFramingError(
                        f"Header block too long: {header_end} bytes (max {MAX_HEADER_SIZE})"
                    )
                headers = parse_header(bytes(self._buffer[:header_end]))
                length = int(headers[CONTENT_LENGTH])
                if length > self._max_message_size:
                    raise LSPFramingError(
                        f"Message size {length} exceeds maximum {self._max_message_size}"
                    )
                del self._buffer[: header_end + len(HEADER_SEPARATOR)]
                self._expected = length

            if len(self._buffer) < self._expected:
                break

            messages.append(bytes(self._buffer[: self._expected]))
            del self._buffer[: self._expected]
            self._expected = None

        return messages
