"""Sync operations between a workspace and its remote directory.

Architecture:
    FileWatcher / CLI → SyncEngine → ConnectionPool → SSHTransport

Components:
- **SyncEngine**: Save, delete and full-tree triggers behind one in-progress guard
- **ConnectionPool**: Cached SSH sessions per user@host:port with idle sweep
- **SSHTransport**: paramiko session running commands and SFTP transfers
- **PathFilter**: Substring (default) or glob ignore matching
- **FileWatcher**: Watch the workspace for saves and deletions
"""

from sftpmirror.client.sync.connections import (
    CONNECTION_TIMEOUT,
    MAX_IDLE_TIME,
    SWEEP_INTERVAL,
    ConnectionPool,
    PooledConnection,
)
from sftpmirror.client.sync.engine import SyncEngine
from sftpmirror.client.sync.ignore import GlobPathFilter, PathFilter, SubstringPathFilter
from sftpmirror.client.sync.ssh import SSHTransport, Transport, TransportFactory
from sftpmirror.client.sync.types import (
    AuthenticationFailed,
    CommandFailed,
    ConfigurationMissing,
    ConnectionInfo,
    ConnectionTimeout,
    FileFailure,
    InvalidPath,
    NoAuthenticationMethod,
    Operation,
    Password,
    PrivateKey,
    ProgressCallback,
    SyncError,
    SyncProgress,
    SyncReport,
    TransferCode,
    TransferFailed,
    TransferResult,
)
from sftpmirror.client.sync.watcher import FileWatcher

__all__ = [
    # Connections
    "CONNECTION_TIMEOUT",
    "MAX_IDLE_TIME",
    "SWEEP_INTERVAL",
    "ConnectionPool",
    "PooledConnection",
    "SSHTransport",
    "Transport",
    "TransportFactory",
    # Engine
    "SyncEngine",
    "FileWatcher",
    # Ignore
    "GlobPathFilter",
    "PathFilter",
    "SubstringPathFilter",
    # Types
    "AuthenticationFailed",
    "CommandFailed",
    "ConfigurationMissing",
    "ConnectionInfo",
    "ConnectionTimeout",
    "FileFailure",
    "InvalidPath",
    "NoAuthenticationMethod",
    "Operation",
    "Password",
    "PrivateKey",
    "ProgressCallback",
    "SyncError",
    "SyncProgress",
    "SyncReport",
    "TransferCode",
    "TransferFailed",
    "TransferResult",
]
