"""Stdio pipe transport to an external language server.

Spawns the server, frames outgoing messages with Content-Length headers and
exposes raw reads plus an optional decoder for incoming frames.
"""

from spectre_lsp.transport.aio import AsyncMessageReader
from spectre_lsp.transport.channel import Channel, ChannelEnd, Direction, Owner, PipePair
from spectre_lsp.transport.framing import (
    LSPFramingError,
    MessageDecoder,
    encode_header,
    frame_message,
    parse_header,
    write_message,
)
from spectre_lsp.transport.launcher import EXEC_FAILURE_STATUS, SpawnedServer, reap, spawn_server
from spectre_lsp.transport.receive import RecvResult, RecvStatus, recv_raw
from spectre_lsp.transport.session import ServerSession, ServerState

__all__ = [
    # Session
    "ServerSession",
    "ServerState",
    "AsyncMessageReader",
    # Pipes
    "Channel",
    "ChannelEnd",
    "Direction",
    "Owner",
    "PipePair",
    # Process
    "EXEC_FAILURE_STATUS",
    "SpawnedServer",
    "spawn_server",
    "reap",
    # Framing
    "LSPFramingError",
    "MessageDecoder",
    "encode_header",
    "frame_message",
    "parse_header",
    "write_message",
    # Receive
    "RecvResult",
    "RecvStatus",
    "recv_raw",
]
