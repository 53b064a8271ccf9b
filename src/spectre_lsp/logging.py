"""Logging configuration for spectre-lsp.

Standard library logging under the "spectre_lsp" logger. Verbosity runs
error(0), warning(1), info(2), verbose(3), trace(4).

Raw wire traffic is logged at TRACE so it stays out of normal output.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from spectre_lsp.config.schema import LoggingConfig

# Custom log levels
TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

LOG_ENV_VAR = "SPECTRE_LSP_LOG"

logger = logging.getLogger("spectre_lsp")

_initialized = False

_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# --verbose=N to log level (0=errors only, 4=everything)
_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: VERBOSE,
    4: TRACE,
}


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def resolve_level(config: LoggingConfig | None) -> int:
    """Map a LoggingConfig to a numeric level.

    ``verbose`` takes precedence over ``level``; INFO when neither is set.
    """
    if config is None:
        return logging.INFO
    if config.verbose is not None:
        return _VERBOSITY_MAP.get(config.verbose, TRACE)
    if config.level:
        return _LEVEL_MAP.get(config.level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Attach one handler to the package logger. Later calls are no-ops.

    The handler is a log file (config.file, else $SPECTRE_LSP_LOG) or, with
    no file configured, stderr when it is a terminal. Piped runs stay quiet
    so framed output on stdout and the CLI's own stderr report are not mixed
    with log lines. A log file that cannot be opened falls back to stderr.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_level = resolve_level(config)
    logger.setLevel(log_level)

    log_path = config.file if config and config.file else os.environ.get(LOG_ENV_VAR)
    open_error: OSError | None = None

    handler: logging.Handler | None = None
    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        except OSError as e:
            open_error = e
            handler = logging.StreamHandler(sys.stderr)
    elif sys.stderr.isatty():
        handler = logging.StreamHandler(sys.stderr)

    if handler is None:
        return
    handler.setLevel(log_level)
    handler.setFormatter(
        _LowercaseLevelFormatter("%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(handler)

    if open_error is not None:
        logger.warning("Cannot open log file %s, logging to stderr: %s", log_path, open_error)


def get_logger(name: str | None = None) -> logging.Logger:
    """Child of the package logger, or the package logger itself for None."""
    if name:
        return logger.getChild(name)
    return logger
