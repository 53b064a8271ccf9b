"""Server session: one language server process and its two pipes.

A ServerSession is a synchronous, lock-free object. Callers own the
concurrency: one writer calling send(), one reader calling recv(), and
stop() only after in-flight sends have finished.

Example:
    with ServerSession() as session:
        if session.start("pyright-langserver", ["--stdio"]):
            session.send(b'{"jsonrpc":"2.0","id":1,"method":"initialize"}')
            decoder = MessageDecoder()
            while session.wait_readable(1.0):
                result = session.recv()
                if not result.ok:
                    break
                for payload in decoder.feed(result.data):
                    handle(payload)
"""

from __future__ import annotations

import os
import select
from collections.abc import Mapping, Sequence
from enum import Enum
from types import TracebackType

from spectre_lsp.config.schema import Config
from spectre_lsp.logging import get_logger
from spectre_lsp.transport.framing import write_message
from spectre_lsp.transport.launcher import SpawnedServer, reap, spawn_server
from spectre_lsp.transport.receive import CLOSED, RecvResult, recv_raw

log = get_logger("transport")


class ServerState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class ServerSession:
    """Lifecycle, framed sends and raw receives for one server process.

    Sessions are independent; several may run side by side. A stopped
    session can be started again and gets a new process.
    """

    def __init__(self, config: Config | None = None) -> None:
        self._config = config or Config()
        self._server: SpawnedServer | None = None
        self._state = ServerState.NOT_STARTED
        self._returncode: int | None = None

    @property
    def config(self) -> Config:
        return self._config

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is ServerState.RUNNING

    @property
    def pid(self) -> int | None:
        """Process id of the running server, None when not running."""
        return self._server.pid if self._server else None

    @property
    def returncode(self) -> int | None:
        """Exit code collected by the last stop(); None if unknown."""
        return self._returncode

    def start(
        self,
        server_path: str | None = None,
        args: Sequence[str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> bool:
        """Spawn the server and wire its stdin/stdout to this session.

        Arguments left as None fall back to the ``server`` config section.
        ``env`` entries are added on top of the current environment.

        Returns:
            True once the child process exists. This does not mean the
            server binary could be executed; a failed exec shows up later
            as a closed channel and exit code 127.
        """
        if self._state is ServerState.RUNNING:
            log.warning("Server already running (pid %s); call stop() first", self.pid)
            return False

        server_config = self._config.server
        server_path = server_path or server_config.path
        if not server_path:
            log.error("No language server configured")
            return False

        if args is None:
            args = server_config.args
        if cwd is None:
            cwd = server_config.cwd

        child_env: dict[str, str] | None = None
        extra_env = {**server_config.env, **(env or {})}
        if extra_env:
            child_env = os.environ.copy()
            child_env.update(extra_env)

        server = spawn_server(server_path, args, env=child_env, cwd=cwd)
        if server is None:
            return False

        if self._config.transport.nonblocking_reads:
            server.stdout.set_blocking(False)

        self._server = server
        self._state = ServerState.RUNNING
        self._returncode = None
        return True

    def send(self, payload: bytes | bytearray | memoryview) -> bool:
        """Send one Content-Length framed message.

        Returns False without writing anything when the session is not
        running. A False result after a partial write leaves the server's
        framing state unknown; stop() and start() again.
        """
        server = self._server
        if server is None:
            log.debug("Send with no running server")
            return False
        return write_message(server.stdin, payload)

    def recv(self, max_len: int | None = None) -> RecvResult:
        """Single raw read from the server's stdout. See recv_raw()."""
        if self._server is None:
            return CLOSED
        if max_len is None:
            max_len = self._config.transport.read_chunk_size
        return recv_raw(self._server.stdout, max_len)

    def wait_readable(self, timeout: float | None = None) -> bool:
        """Block until recv() would not block, or timeout expires.

        Also returns True when the server closed its output, so the
        following recv() reports CLOSED.
        """
        if self._server is None or self._server.stdout.closed:
            return False
        try:
            ready, _, _ = select.select([self._server.stdout], [], [], timeout)
        except (OSError, ValueError):
            return False
        return bool(ready)

    def fileno(self) -> int:
        """Descriptor of the incoming read end, for selectors and event loops.

        Raises:
            ValueError: If the session is not running.
        """
        if self._server is None:
            raise ValueError("Server session is not running")
        return self._server.stdout.fileno()

    def stop(self) -> None:
        """Close both pipes and reap the server. Idempotent, never raises.

        Closing stdin is the server's signal to exit. By default this waits
        for it indefinitely; configure shutdown.wait_timeout to escalate to
        SIGTERM/SIGKILL instead.
        """
        server, self._server = self._server, None
        if server is None:
            return

        server.close_pipes()
        shutdown = self._config.shutdown
        self._returncode = reap(
            server.pid,
            wait_timeout=shutdown.wait_timeout,
            terminate_timeout=shutdown.terminate_timeout,
        )
        self._state = ServerState.STOPPED
        log.info("Server pid %d exited with %s", server.pid, self._returncode)

    def __enter__(self) -> ServerSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    def __repr__(self) -> str:
        if self._server is not None:
            return f"<ServerSession running pid={self._server.pid}>"
        return f"<ServerSession {self._state.value}>"
