"""Raw receive primitive: one read attempt on the incoming channel."""

from __future__ import annotations

import errno
import os
from dataclasses import dataclass
from enum import Enum

from spectre_lsp.logging import TRACE, get_logger
from spectre_lsp.transport.channel import ChannelEnd

log = get_logger("transport")


class RecvStatus(Enum):
    """Outcome of a single read.

    CLOSED and ERROR are both terminal for a session; they are kept apart so
    callers can log or report them differently.
    """

    OK = "ok"  # Read succeeded; data may be empty when nothing was available
    CLOSED = "closed"  # End closed locally, or EOF from the server
    ERROR = "error"  # Any other read failure


@dataclass(frozen=True)
class RecvResult:
    """Result of recv(): status plus whatever bytes were read."""

    status: RecvStatus
    data: bytes = b""
    error: OSError | None = None

    @property
    def ok(self) -> bool:
        return self.status is RecvStatus.OK

    @property
    def count(self) -> int:
        """Bytes read, or -1 when the channel is closed or unreadable."""
        return len(self.data) if self.ok else -1

    def __repr__(self) -> str:
        if self.ok:
            return f"<RecvResult ok, {len(self.data)} bytes>"
        if self.error is not None:
            return f"<RecvResult {self.status.value}: {self.error}>"
        return f"<RecvResult {self.status.value}>"


CLOSED = RecvResult(RecvStatus.CLOSED)
_EMPTY = RecvResult(RecvStatus.OK)


def recv_raw(end: ChannelEnd, max_len: int) -> RecvResult:
    """Read at most max_len bytes with a single os.read().

    No framing is applied: the bytes may hold part of a message, or several.
    In non-blocking mode an empty OK result means "nothing yet"; in blocking
    mode the call waits for data or EOF.
    """
    if end.closed:
        return CLOSED
    if max_len <= 0:
        return _EMPTY

    try:
        data = os.read(end.fileno(), max_len)
    except BlockingIOError:
        return _EMPTY
    except ValueError:
        # Closed by stop() in the meantime
        return CLOSED
    except OSError as e:
        if e.errno == errno.EBADF:
            return CLOSED
        log.warning("Read from server failed: %s", e)
        return RecvResult(RecvStatus.ERROR, error=e)

    if not data:
        log.debug("Server closed its output")
        return CLOSED

    log.log(TRACE, "<-- %r", data)
    return RecvResult(RecvStatus.OK, data=data)
