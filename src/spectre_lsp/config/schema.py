"""Configuration schema dataclasses for spectre-lsp.

All fields have defaults so partial configs merge together cleanly.

Example config.yaml:
    server:
      path: pyright-langserver
      args: ["--stdio"]
    transport:
      read_chunk_size: 8192
    shutdown:
      wait_timeout: 2.0
    logging:
      level: debug
      file: ~/.spectre/lsp.log
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_READ_CHUNK_SIZE = 4096
DEFAULT_MAX_MESSAGE_SIZE = 10 * 1024 * 1024  # 10 MB


@dataclass
class ServerConfig:
    """Language server launch settings."""

    path: str | None = None  # Executable, resolved through PATH
    args: list[str] = field(default_factory=list)  # Extra argv after the program name
    env: dict[str, str] = field(default_factory=dict)  # Merged over os.environ
    cwd: str | None = None  # Working directory for the child


@dataclass
class TransportConfig:
    """Pipe transport settings."""

    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE  # Default recv() max length
    nonblocking_reads: bool = True  # recv() returns empty instead of blocking
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE  # Decoder limit per message


@dataclass
class ShutdownConfig:
    """Shutdown escalation for stop().

    With wait_timeout unset, stop() waits for the server to exit on its own
    after stdin is closed.
    """

    wait_timeout: float | None = None
    """Seconds to wait after closing the pipes before sending SIGTERM."""

    terminate_timeout: float = 3.0
    """Seconds to wait after SIGTERM before sending SIGKILL."""


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, overrides level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    shutdown: ShutdownConfig = field(default_factory=ShutdownConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Unknown top-level sections, kept for callers layered on top
    extra: dict[str, Any] = field(default_factory=dict)
