"""Configuration management for spectre-lsp.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/spectre-lsp/)
- User-level config (~/.config/spectre-lsp/ or ~/.spectre/)
- Project-level config (<project_root>/.spectre/)
- Environment variable overrides (highest priority)

Example usage:
    from spectre_lsp.config import load_config

    config = load_config(project_root="/path/to/project")
    print(config.server.path)
"""

from spectre_lsp.config.loader import (
    load_config,
    reset_config,
)
from spectre_lsp.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from spectre_lsp.config.schema import (
    Config,
    LoggingConfig,
    ServerConfig,
    ShutdownConfig,
    TransportConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "reset_config",
    # Schema types
    "ServerConfig",
    "TransportConfig",
    "ShutdownConfig",
    "LoggingConfig",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
