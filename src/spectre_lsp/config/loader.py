"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Conversion from dict to typed Config dataclass
- Caching of the global (project-less) config
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from spectre_lsp.config.merge import merge_configs
from spectre_lsp.config.paths import get_config_paths
from spectre_lsp.config.schema import (
    DEFAULT_MAX_MESSAGE_SIZE,
    DEFAULT_READ_CHUNK_SIZE,
    Config,
    LoggingConfig,
    ServerConfig,
    ShutdownConfig,
    TransportConfig,
)
from spectre_lsp.logging import LOG_ENV_VAR

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("spectre_lsp.config")

SERVER_ENV_VAR = "SPECTRE_LSP_SERVER"

_KNOWN_SECTIONS = {"server", "transport", "shutdown", "logging"}

_cached_config: Config | None = None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables (highest priority)."""
    overrides: dict[str, Any] = {}

    server_path = os.environ.get(SERVER_ENV_VAR)
    if server_path:
        overrides["server"] = {"path": server_path}

    log_path = os.environ.get(LOG_ENV_VAR)
    if log_path:
        overrides["logging"] = {"file": log_path}

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    if isinstance(value, dict):
        return value
    if value is not None:
        _log.warning("Ignoring config section %r: expected a mapping, got %s", name, type(value).__name__)
    return {}


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        _log.warning("Ignoring invalid timeout value: %r", value)
        return None


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass."""
    server_data = _section(data, "server")
    args = server_data.get("args") or []
    env = server_data.get("env") or {}
    server = ServerConfig(
        path=server_data.get("path"),
        args=[str(a) for a in args] if isinstance(args, list) else [],
        env={str(k): str(v) for k, v in env.items()} if isinstance(env, dict) else {},
        cwd=server_data.get("cwd"),
    )

    transport_data = _section(data, "transport")
    transport = TransportConfig(
        read_chunk_size=int(transport_data.get("read_chunk_size", DEFAULT_READ_CHUNK_SIZE)),
        nonblocking_reads=bool(transport_data.get("nonblocking_reads", True)),
        max_message_size=int(transport_data.get("max_message_size", DEFAULT_MAX_MESSAGE_SIZE)),
    )

    shutdown_data = _section(data, "shutdown")
    terminate_timeout = _optional_float(shutdown_data.get("terminate_timeout"))
    shutdown = ShutdownConfig(
        wait_timeout=_optional_float(shutdown_data.get("wait_timeout")),
        terminate_timeout=3.0 if terminate_timeout is None else terminate_timeout,
    )

    log_data = _section(data, "logging")
    verbose = log_data.get("verbose")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=int(verbose) if verbose is not None else None,
        file=log_data.get("file"),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        server=server,
        transport=transport,
        shutdown=shutdown,
        logging=logging_config,
        extra=extra,
    )


def load_config(
    project_root: str | Path | None = None,
    config_file: str | Path | None = None,
    reload: bool = False,
) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Explicit config_file (e.g. from --config)
    3. Project config (<project_root>/.spectre/config.yaml)
    4. User config
    5. System config

    Only the plain global config (no project_root, no config_file) is cached.
    """
    global _cached_config

    is_global = project_root is None and config_file is None
    if is_global and _cached_config is not None and not reload:
        return _cached_config

    configs: list[dict[str, Any]] = []

    paths = get_config_paths(project_root)
    if config_file is not None:
        paths.append(Path(config_file).expanduser())

    for path in paths:
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    if is_global:
        _cached_config = config

    return config


def reset_config() -> None:
    """Reset cached config. Useful for testing or forcing a reload."""
    global _cached_config
    _cached_config = None
