"""Core module - Path policy, configuration and shared types."""

from sftpmirror.core.config import (
    ConfigError,
    RemoteConfig,
    config_from_dict,
    config_to_dict,
    create_config_template,
    get_config_path,
    load_config,
    save_config,
    validate_config,
)
from sftpmirror.core.paths import (
    DEFAULT_IGNORE_PATTERNS,
    escape_shell_arg,
    is_safe_command,
    is_valid_path,
    is_valid_remote_path,
    sanitize_path,
    validate_ignore_patterns,
    validate_remote_path_within,
)
from sftpmirror.core.types import SyncMode, SyncState

__all__ = [
    # Config
    "ConfigError",
    "RemoteConfig",
    "config_from_dict",
    "config_to_dict",
    "create_config_template",
    "get_config_path",
    "load_config",
    "save_config",
    "validate_config",
    # Paths
    "DEFAULT_IGNORE_PATTERNS",
    "escape_shell_arg",
    "is_safe_command",
    "is_valid_path",
    "is_valid_remote_path",
    "sanitize_path",
    "validate_ignore_patterns",
    "validate_remote_path_within",
    # Types
    "SyncMode",
    "SyncState",
]
