"""Unidirectional byte channels backed by OS pipes.

A PipePair holds the two channels used to talk to a server process:

    outgoing: parent writes  ->  child reads (child's stdin)
    incoming: child writes   ->  parent reads (child's stdout)

The ends used by the parent after spawn are the "near" ends; the ones handed
to the child are the "far" ends. The two sets are disjoint.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from spectre_lsp.logging import get_logger

log = get_logger("transport")


class Direction(Enum):
    """Which way bytes flow through an end."""

    READ = "read"
    WRITE = "write"


class Owner(Enum):
    """Which process an end belongs to after spawn."""

    PARENT = "parent"
    CHILD = "child"


class ChannelEnd:
    """One end of a pipe.

    Closing is idempotent: the descriptor is released exactly once and any
    further close() is a no-op.
    """

    def __init__(self, fd: int, direction: Direction, owner: Owner) -> None:
        self._fd: int | None = fd
        self.direction = direction
        self.owner = owner

    @property
    def closed(self) -> bool:
        return self._fd is None

    def fileno(self) -> int:
        """Return the descriptor. Raises ValueError once closed."""
        if self._fd is None:
            raise ValueError(f"{self.direction.value} end is closed")
        return self._fd

    def set_blocking(self, blocking: bool) -> None:
        os.set_blocking(self.fileno(), blocking)

    def close(self) -> None:
        fd, self._fd = self._fd, None
        if fd is None:
            return
        try:
            os.close(fd)
        except OSError as e:
            log.debug("Closing fd %d failed: %s", fd, e)

    def __repr__(self) -> str:
        state = "closed" if self._fd is None else f"fd={self._fd}"
        return f"<ChannelEnd {self.owner.value} {self.direction.value} {state}>"


@dataclass
class Channel:
    """A single pipe: bytes written to write_end come out of read_end."""

    read_end: ChannelEnd
    write_end: ChannelEnd

    @classmethod
    def open(cls, reader: Owner, writer: Owner) -> Channel:
        """Allocate a pipe. Raises OSError when the OS refuses."""
        read_fd, write_fd = os.pipe()
        return cls(
            read_end=ChannelEnd(read_fd, Direction.READ, reader),
            write_end=ChannelEnd(write_fd, Direction.WRITE, writer),
        )

    def close(self) -> None:
        self.write_end.close()
        self.read_end.close()


@dataclass
class PipePair:
    """The outgoing and incoming channels of one server process."""

    outgoing: Channel
    incoming: Channel

    @classmethod
    def open(cls) -> PipePair:
        """Allocate both pipes.

        If the second allocation fails the first pipe is released before the
        OSError propagates, so nothing leaks.
        """
        outgoing = Channel.open(reader=Owner.CHILD, writer=Owner.PARENT)
        try:
            incoming = Channel.open(reader=Owner.PARENT, writer=Owner.CHILD)
        except OSError:
            outgoing.close()
            raise
        return cls(outgoing=outgoing, incoming=incoming)

    def ends(self) -> tuple[ChannelEnd, ...]:
        return (
            self.outgoing.read_end,
            self.outgoing.write_end,
            self.incoming.read_end,
            self.incoming.write_end,
        )

    def near_ends(self) -> tuple[ChannelEnd, ChannelEnd]:
        """Parent's (write, read) ends: outgoing write end, incoming read end."""
        return self.outgoing.write_end, self.incoming.read_end

    def far_ends(self) -> tuple[ChannelEnd, ChannelEnd]:
        """Child's (stdin, stdout) ends: outgoing read end, incoming write end."""
        return self.outgoing.read_end, self.incoming.write_end

    def close_far_ends(self) -> None:
        for end in self.far_ends():
            end.close()

    def close(self) -> None:
        for end in self.ends():
            end.close()
