"""spectre-lsp: stdio transport between an editor and a language server."""

from spectre_lsp.transport import (
    AsyncMessageReader,
    LSPFramingError,
    MessageDecoder,
    RecvResult,
    RecvStatus,
    ServerSession,
    ServerState,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncMessageReader",
    "LSPFramingError",
    "MessageDecoder",
    "RecvResult",
    "RecvStatus",
    "ServerSession",
    "ServerState",
    "__version__",
]
