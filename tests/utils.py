"""Shared test helpers for driving a ServerSession."""

from __future__ import annotations

import sys
import time

import pytest

from spectre_lsp.transport.receive import RecvResult
from spectre_lsp.transport.session import ServerSession

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="fork/exec transport is POSIX only")


def read_bytes(session: ServerSession, count: int, timeout: float = 5.0) -> bytes:
    """Accumulate raw reads until count bytes arrived, the channel closed or timeout.

    Returns whatever was read; callers assert on the length.
    """
    data = bytearray()
    deadline = time.monotonic() + timeout
    while len(data) < count:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not session.wait_readable(remaining):
            break
        result = session.recv()
        if not result.ok:
            break
        data += result.data
    return bytes(data)


def read_until_closed(session: ServerSession, timeout: float = 5.0) -> tuple[bytes, RecvResult | None]:
    """Read everything until recv() stops returning OK.

    Returns:
        (all bytes read, the final non-OK result or None on timeout)
    """
    data = bytearray()
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0 or not session.wait_readable(remaining):
            return bytes(data), None
        result = session.recv()
        if not result.ok:
            return bytes(data), result
        data += result.data
