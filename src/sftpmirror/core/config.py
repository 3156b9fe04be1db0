"""Remote target configuration for sftpmirror.

This module provides:
- RemoteConfig: Validated description of the one remote target of a workspace
- config_from_dict / config_to_dict: JSON (camelCase) conversion with defaults
- load_config / save_config: Read and write the workspace config file
- create_config_template: Write a placeholder config for the user to edit
- validate_config: Human-readable list of configuration problems
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sftpmirror.core.paths import (
    is_valid_path,
    is_valid_remote_path,
    validate_ignore_patterns,
)
from sftpmirror.core.types import SyncMode

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".sftpmirror"
CONFIG_FILE_NAME = "config.json"

DEFAULT_PORT = 22
DEFAULT_HOST = "localhost"
DEFAULT_USER = "root"
DEFAULT_REMOTE_PATH = "/root"

TEMPLATE_IGNORE = [CONFIG_DIR_NAME, ".git", ".vscode", "node_modules", "out", "dist"]

_HOST_RE = re.compile(r"^[A-Za-z0-9._:%\[\]-]+$")


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or written."""


@dataclass
class RemoteConfig:
    """Configuration for one remote target.

    Attributes:
        host: SSH host name or address.
        port: SSH port, always within 1-65535.
        user: Remote user name.
        remote_path: Absolute POSIX path the workspace is mirrored to.
        ignore: Substring patterns excluded from synchronization.
        upload_on_save: Upload files as soon as they are saved.
        download_on_change: Pull files changed remotely (reserved).
        sync_mode: Configured direction of synchronization.
        private_key: Optional inline private key (PEM/OpenSSH text).
        password: Optional inline password, never written back to disk.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    user: str = DEFAULT_USER
    remote_path: str = DEFAULT_REMOTE_PATH
    ignore: list[str] = field(default_factory=list)
    upload_on_save: bool = True
    download_on_change: bool = False
    sync_mode: SyncMode = SyncMode.UPLOAD
    private_key: str | None = field(default=None, repr=False)
    password: str | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        """Coerce port and remote path into their invariants."""
        if not _is_valid_port(self.port):
            self.port = DEFAULT_PORT
        if not self.remote_path.startswith("/"):
            self.remote_path = "/" + self.remote_path

    @property
    def server_id(self) -> str:
        """Endpoint identity used for credential and session lookups."""
        return f"{self.user}@{self.host}:{self.port}"


def _is_valid_port(port: Any) -> bool:
    return isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return bool(value)


def config_from_dict(raw: dict[str, Any]) -> RemoteConfig:
    """Build a RemoteConfig from decoded JSON, defaulting field by field.

    Args:
        raw: Decoded JSON object using camelCase keys.

    Returns:
        A RemoteConfig satisfying the port and remote path invariants.
    """
    try:
        sync_mode = SyncMode(raw.get("syncMode") or SyncMode.UPLOAD.value)
    except ValueError:
        logger.warning("Unknown syncMode %r, using upload", raw.get("syncMode"))
        sync_mode = SyncMode.UPLOAD

    port = raw.get("port") or DEFAULT_PORT
    if not _is_valid_port(port):
        logger.warning("Port %r out of range, using %d", port, DEFAULT_PORT)
        port = DEFAULT_PORT

    return RemoteConfig(
        host=str(raw.get("host") or DEFAULT_HOST),
        port=port,
        user=str(raw.get("user") or DEFAULT_USER),
        remote_path=str(raw.get("remotePath") or DEFAULT_REMOTE_PATH),
        ignore=validate_ignore_patterns(raw.get("ignore", [])),
        upload_on_save=_as_bool(raw.get("uploadOnSave"), True),
        download_on_change=_as_bool(raw.get("downloadOnChange"), False),
        sync_mode=sync_mode,
        private_key=raw.get("privateKey") or None,
        password=raw.get("password") or None,
    )


def config_to_dict(config: RemoteConfig) -> dict[str, Any]:
    """Convert a RemoteConfig to its JSON representation (without password)."""
    data: dict[str, Any] = {
        "host": config.host,
        "port": config.port,
        "user": config.user,
        "remotePath": config.remote_path,
        "ignore": list(config.ignore),
        "uploadOnSave": config.upload_on_save,
        "downloadOnChange": config.download_on_change,
        "syncMode": config.sync_mode.value,
    }
    if config.private_key:
        data["privateKey"] = config.private_key
    return data


def get_config_path(workspace_root: Path) -> Path:
    """Get the conventional config file path for a workspace."""
    return Path(workspace_root) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def load_config(path: Path) -> RemoteConfig | None:
    """Load configuration from a JSON file.

    Args:
        path: Path to the config file.

    Returns:
        The validated configuration, or None if the file does not exist.

    Raises:
        ConfigError: If the file is unreadable or not a JSON object.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No configuration file found at %s", path)
        return None

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read configuration {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration {path} must contain a JSON object")

    return config_from_dict(raw)


def save_config(config: RemoteConfig, path: Path) -> None:
    """Save configuration as pretty-printed UTF-8 JSON.

    Raises:
        ConfigError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(config_to_dict(config), indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write configuration {path}: {e}") from e
    logger.info("Configuration saved to %s", path)


def default_template() -> RemoteConfig:
    """Placeholder configuration written by 'sftpmirror init'."""
    return RemoteConfig(
        host="your-server.com",
        port=DEFAULT_PORT,
        user="username",
        remote_path="/remote/path",
        ignore=list(TEMPLATE_IGNORE),
        upload_on_save=True,
        download_on_change=False,
        sync_mode=SyncMode.UPLOAD,
    )


def create_config_template(path: Path, config: RemoteConfig | None = None) -> RemoteConfig:
    """Write a config template, refusing to overwrite an existing file.

    Args:
        path: Destination config file.
        config: Prefilled configuration (defaults to default_template()).

    Returns:
        The configuration that was written.

    Raises:
        ConfigError: If the file already exists or cannot be written.
    """
    path = Path(path)
    if path.exists():
        raise ConfigError(f"Configuration already exists at {path}")

    config = config or default_template()
    save_config(config, path)
    return config


def validate_config(config: RemoteConfig) -> list[str]:
    """List problems with a configuration.

    Returns:
        Human-readable error messages; empty if the configuration is usable.
    """
    errors: list[str] = []

    if not config.host:
        errors.append("Host is required")
    elif not _HOST_RE.match(config.host):
        errors.append("Invalid host format")

    if not config.user:
        errors.append("User is required")
    elif not is_valid_path(config.user) or "/" in config.user or " " in config.user:
        errors.append("Invalid user format")

    if not config.remote_path:
        errors.append("Remote path is required")
    elif not is_valid_remote_path(config.remote_path):
        errors.append("Invalid remote path format")

    if not _is_valid_port(config.port):
        errors.append("Port must be between 1 and 65535")

    if validate_ignore_patterns(config.ignore) != list(config.ignore):
        errors.append("Some ignore patterns are invalid")

    return errors
