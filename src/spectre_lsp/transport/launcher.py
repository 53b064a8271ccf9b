"""Language server process launching and reaping.

spawn_server() forks a child whose stdin/stdout are the far ends of a fresh
PipePair and replaces its image with the server binary. Success means the
child exists; whether exec succeeded is only visible later, as a closed
channel and exit status 127.
"""

from __future__ import annotations

import os
import signal
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import NoReturn

from spectre_lsp.logging import get_logger
from spectre_lsp.transport.channel import ChannelEnd, PipePair

log = get_logger("transport")

# Exit status of a child whose exec failed, same as a shell's "command not found"
EXEC_FAILURE_STATUS = 127

_POLL_INTERVAL = 0.01


@dataclass
class SpawnedServer:
    """A forked server process and the parent's ends of its pipes."""

    pid: int
    argv: list[str]
    stdin: ChannelEnd  # parent writes here (outgoing write end)
    stdout: ChannelEnd  # parent reads here (incoming read end)

    def close_pipes(self) -> None:
        """Close both near ends. Safe to call repeatedly."""
        self.stdin.close()
        self.stdout.close()


def spawn_server(
    server_path: str,
    args: Sequence[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
) -> SpawnedServer | None:
    """Fork and exec a server with stdio wired to a new PipePair.

    Args:
        server_path: Executable to run, looked up on PATH if not a path.
        args: Extra arguments after the program name. None means none.
        env: Full environment for the child. None inherits the parent's.
        cwd: Working directory for the child.

    Returns:
        SpawnedServer on successful fork, None if the pipes or the fork
        could not be created.
    """
    argv = [server_path, *(args or [])]

    try:
        pipes = PipePair.open()
    except OSError as e:
        log.error("Cannot allocate pipes for %s: %s", server_path, e)
        return None

    restore_signals = threading.current_thread() is threading.main_thread()

    try:
        pid = os.fork()
    except OSError as e:
        log.error("Cannot fork for %s: %s", server_path, e)
        pipes.close()
        return None

    if pid == 0:
        _exec_child(pipes, argv, env, cwd, restore_signals)

    pipes.close_far_ends()
    stdin, stdout = pipes.near_ends()
    log.info("Started %s (pid %d)", " ".join(argv), pid)
    return SpawnedServer(pid=pid, argv=argv, stdin=stdin, stdout=stdout)


def _exec_child(
    pipes: PipePair,
    argv: list[str],
    env: Mapping[str, str] | None,
    cwd: str | None,
    restore_signals: bool,
) -> NoReturn:
    # Runs in the forked child: no logging, no Python-level cleanup.
    try:
        stdin_fd = pipes.outgoing.read_end.fileno()
        stdout_fd = pipes.incoming.write_end.fileno()
        if stdout_fd == 0:
            # dup2 onto fd 0 below would clobber it
            stdout_fd = os.dup(stdout_fd)
        os.dup2(stdin_fd, 0)
        os.dup2(stdout_fd, 1)
        # dup2 onto itself is a no-op and leaves the close-on-exec flag set
        if stdin_fd == 0:
            os.set_inheritable(0, True)
        if stdout_fd == 1:
            os.set_inheritable(1, True)
        for end in pipes.ends():
            fd = end.fileno()
            if fd > 2:
                os.close(fd)

        if restore_signals:
            # Python ignores SIGPIPE; the server should get the default action
            for name in ("SIGPIPE", "SIGXFSZ"):
                signum = getattr(signal, name, None)
                if signum is not None:
                    signal.signal(signum, signal.SIG_DFL)

        if cwd is not None:
            os.chdir(cwd)
        if env is None:
            os.execvp(argv[0], argv)
        else:
            os.execvpe(argv[0], argv, dict(env))
    finally:
        os._exit(EXEC_FAILURE_STATUS)


def reap(
    pid: int,
    *,
    wait_timeout: float | None = None,
    terminate_timeout: float = 3.0,
) -> int | None:
    """Wait for a server process to exit and collect its status.

    With wait_timeout None this blocks until the process exits. Otherwise the
    process gets wait_timeout seconds, then SIGTERM and terminate_timeout
    more seconds, then SIGKILL.

    Returns:
        Exit code (negative signal number if killed by a signal), or None if
        the process was already reaped elsewhere.
    """
    if wait_timeout is None:
        return _wait(pid)

    done, code = _wait_until(pid, time.monotonic() + wait_timeout)
    if done:
        return code

    log.warning("Server pid %d still running after %.1fs, sending SIGTERM", pid, wait_timeout)
    _send_signal(pid, signal.SIGTERM)
    done, code = _wait_until(pid, time.monotonic() + terminate_timeout)
    if done:
        return code

    log.warning("Server pid %d ignored SIGTERM, sending SIGKILL", pid)
    _send_signal(pid, signal.SIGKILL)
    return _wait(pid)


def _wait(pid: int) -> int | None:
    try:
        _, status = os.waitpid(pid, 0)
    except ChildProcessError:
        return None
    return os.waitstatus_to_exitcode(status)


def _wait_until(pid: int, deadline: float) -> tuple[bool, int | None]:
    """Poll for exit until deadline. Returns (exited, exit_code)."""
    while True:
        try:
            reaped, status = os.waitpid(pid, os.WNOHANG)
        except ChildProcessError:
            return True, None
        if reaped:
            return True, os.waitstatus_to_exitcode(status)
        if time.monotonic() >= deadline:
            return False, None
        time.sleep(_POLL_INTERVAL)


def _send_signal(pid: int, signum: int) -> None:
    try:
        os.kill(pid, signum)
    except ProcessLookupError:
        pass  # Exited between the poll and the signal
