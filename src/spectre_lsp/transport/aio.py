"""asyncio integration: framed messages from a ServerSession.

The session stays synchronous. AsyncMessageReader registers the session's
incoming descriptor with the event loop, performs one recv() per readable
event and queues each payload the decoder completes.

Example:
    async with AsyncMessageReader(session) as reader:
        async for payload in reader:
            handle(json.loads(payload))
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from types import TracebackType

from spectre_lsp.logging import get_logger
from spectre_lsp.transport.framing import LSPFramingError, MessageDecoder
from spectre_lsp.transport.receive import RecvStatus
from spectre_lsp.transport.session import ServerSession

log = get_logger("transport.aio")


class AsyncMessageReader:
    """Deliver whole payloads from a running session to coroutines.

    Close the reader before stopping the session: the event loop must stop
    watching the descriptor before it is closed.
    """

    def __init__(self, session: ServerSession, *, max_message_size: int | None = None) -> None:
        if max_message_size is None:
            max_message_size = session.config.transport.max_message_size
        self._session = session
        self._decoder = MessageDecoder(max_message_size)
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._fd: int | None = None
        self._error: LSPFramingError | None = None
        self._finished = False

    def start(self) -> None:
        """Start watching the session. Must be called from a running loop."""
        if self._fd is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._fd = self._session.fileno()
        self._loop.add_reader(self._fd, self._on_readable)

    def close(self) -> None:
        """Stop watching the session. Idempotent."""
        if self._fd is not None and self._loop is not None:
            self._loop.remove_reader(self._fd)
        self._fd = None
        self._finish()

    async def read_message(self) -> bytes | None:
        """Next payload, or None once the server's output is closed.

        Raises:
            LSPFramingError: If the server sent a malformed frame or its
                output ended inside one.
        """
        message = await self._queue.get()
        if message is None:
            # Keep reporting end-of-stream to later callers
            self._queue.put_nowait(None)
            if self._error is not None:
                raise self._error
        return message

    def _on_readable(self) -> None:
        result = self._session.recv()
        if not result.ok:
            if result.status is RecvStatus.ERROR:
                log.warning("Stopping reader after read error: %s", result.error)
            else:
                try:
                    self._decoder.finish()
                except LSPFramingError as e:
                    log.error("Server output ended mid-message: %s", e)
                    self._error = e
            self.close()
            return

        try:
            messages = self._decoder.feed(result.data)
        except LSPFramingError as e:
            log.error("Framing error from server: %s", e)
            self._error = e
            self.close()
            return

        for message in messages:
            self._queue.put_nowait(message)

    def _finish(self) -> None:
        if not self._finished:
            self._finished = True
            self._queue.put_nowait(None)

    async def __aenter__(self) -> AsyncMessageReader:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[bytes]:
        while True:
            message = await self.read_message()
            if message is None:
                return
            yield message
