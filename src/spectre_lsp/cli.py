"""Command-line interface for spectre-lsp.

Modes:
    frame     Write Content-Length framed payloads to stdout
    exchange  Start a server, send framed payloads, print framed replies
"""

from __future__ import annotations

import argparse
import sys
import threading
import time
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from spectre_lsp import __version__
from spectre_lsp.config import Config, load_config
from spectre_lsp.logging import setup_logging
from spectre_lsp.transport.framing import LSPFramingError, MessageDecoder, frame_message
from spectre_lsp.transport.session import ServerSession

console = Console(stderr=True)

_SEND_POLL_INTERVAL = 0.05


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="spectre-lsp",
        description="Talk to a language server over stdio with Content-Length framing",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase verbosity (can be repeated, up to -vvvv)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Extra config file, applied after system/user/project config",
    )

    subparsers = parser.add_subparsers(dest="mode", help="Operating mode")

    frame_parser = subparsers.add_parser(
        "frame",
        help="Write framed payloads to stdout",
    )
    _add_payload_arguments(frame_parser)

    exchange_parser = subparsers.add_parser(
        "exchange",
        help="Send framed payloads to a server and print its replies",
    )
    exchange_parser.add_argument(
        "--server",
        help="Server executable (default: server.path from config)",
    )
    exchange_parser.add_argument(
        "--arg",
        dest="server_args",
        action="append",
        default=None,
        help="Argument passed to the server (repeatable)",
    )
    exchange_parser.add_argument(
        "--timeout",
        type=float,
        default=2.0,
        help="Seconds to wait for replies after the last send (default: 2)",
    )
    exchange_parser.add_argument(
        "--expect",
        type=int,
        default=None,
        help="Stop after this many replies",
    )
    exchange_parser.add_argument(
        "--raw",
        action="store_true",
        help="Write reply payloads to stdout instead of a summary",
    )
    _add_payload_arguments(exchange_parser)

    return parser


def _add_payload_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "payloads",
        nargs="*",
        help="Payloads to send, UTF-8 encoded",
    )
    parser.add_argument(
        "--file",
        dest="files",
        action="append",
        type=Path,
        default=[],
        help="Read a payload from a file, sent as-is (repeatable)",
    )


def _collect_payloads(parsed: argparse.Namespace) -> list[bytes]:
    payloads = [p.encode("utf-8") for p in parsed.payloads]
    payloads.extend(path.read_bytes() for path in parsed.files)
    return payloads


def run_frame(payloads: list[bytes]) -> int:
    out = sys.stdout.buffer
    for payload in payloads:
        out.write(frame_message(payload))
    out.flush()
    return 0


def run_exchange(
    config: Config,
    payloads: list[bytes],
    *,
    server: str | None = None,
    server_args: list[str] | None = None,
    timeout: float = 2.0,
    expect: int | None = None,
    raw: bool = False,
) -> int:
    """Start a server, send payloads and report replies. Returns exit status.

    Payloads are written from a separate thread while replies are read, so
    a server echoing more than a pipe buffer's worth cannot deadlock us.
    """
    with ServerSession(config) as session:
        if not session.start(server, server_args):
            console.print("[red]Failed to start language server[/red]")
            return 1
        console.print(f"[dim]started pid {session.pid}[/dim]")

        sender = _PayloadSender(session, payloads)
        sender.start()

        decoder = MessageDecoder(config.transport.max_message_size)
        received = 0
        deadline: float | None = None
        while expect is None or received < expect:
            if sender.is_alive():
                wait = _SEND_POLL_INTERVAL
            else:
                if not sender.ok:
                    console.print("[red]Send failed; server closed its input[/red]")
                    return 1
                if deadline is None:
                    deadline = time.monotonic() + timeout
                wait = deadline - time.monotonic()
                if wait <= 0:
                    break
            if not session.wait_readable(wait):
                continue
            result = session.recv()
            if not result.ok:
                console.print(f"[yellow]channel {result.status.value}[/yellow]")
                break
            try:
                messages = decoder.feed(result.data)
            except LSPFramingError as e:
                console.print(f"[red]Framing error:[/red] {escape(str(e))}")
                return 1
            for message in messages:
                received += 1
                _print_reply(message, raw)

    sender.join()
    if not sender.ok and (expect is None or received < expect):
        console.print("[red]Send failed; server closed its input[/red]")
        return 1
    console.print(f"[dim]{received} replies, server exit code {session.returncode}[/dim]")
    return 0


class _PayloadSender(threading.Thread):
    """Writes payloads to the session in order, stopping at the first failure."""

    def __init__(self, session: ServerSession, payloads: list[bytes]) -> None:
        super().__init__(name="spectre-lsp-sender", daemon=True)
        self._session = session
        self._payloads = payloads
        self.ok = True

    def run(self) -> None:
        for payload in self._payloads:
            if not self._session.send(payload):
                self.ok = False
                return
            console.print(f"[cyan]-->[/cyan] {len(payload)} bytes")


def _print_reply(message: bytes, raw: bool) -> None:
    if raw:
        sys.stdout.buffer.write(message + b"\n")
        sys.stdout.buffer.flush()
        return
    text = message.decode("utf-8", errors="replace")
    console.print(f"[green]<--[/green] {len(message)} bytes: {escape(text)}")


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.mode is None:
        parser.print_help()
        return 1

    config = load_config(project_root=Path.cwd(), config_file=parsed.config)
    if parsed.verbose is not None:
        # -v is info, -vvv and up is trace
        config.logging.verbose = min(parsed.verbose + 1, 4)
    setup_logging(config.logging)

    payloads = _collect_payloads(parsed)

    if parsed.mode == "frame":
        return run_frame(payloads)
    elif parsed.mode == "exchange":
        return run_exchange(
            config,
            payloads,
            server=parsed.server,
            server_args=parsed.server_args,
            timeout=parsed.timeout,
            expect=parsed.expect,
            raw=parsed.raw,
        )
    else:
        parser.print_help()
        return 1
