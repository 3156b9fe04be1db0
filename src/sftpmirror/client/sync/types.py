"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError and subclasses: Error taxonomy for connection and transfer failures
- TransferCode, TransferResult: Closed result type returned by transfers
- Operation, SyncProgress: Progress events emitted during syncs
- FileFailure, SyncReport: Outcome of a full-tree sync
- Password, PrivateKey, ConnectionInfo: Resolved connection parameters
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum, IntEnum


class SyncError(Exception):
    """Base exception for sync errors."""


class ConfigurationMissing(SyncError):
    """No configuration is loaded for the workspace."""


class InvalidPath(SyncError):
    """A path was rejected by the path policy."""


class ConnectionTimeout(SyncError):
    """Establishing the SSH session took longer than the connect timeout."""


class AuthenticationFailed(SyncError):
    """The remote host rejected the supplied credential."""


class TransferFailed(SyncError):
    """An upload or download failed."""


class CommandFailed(SyncError):
    """A remote command exited with a non-zero status.

    Attributes:
        exit_code: Exit status reported by the remote shell.
        stderr: Accumulated standard error output.
    """

    def __init__(self, exit_code: int, stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(stderr.strip() or f"Command failed with code {exit_code}")


class NoAuthenticationMethod(SyncError):
    """No password or private key could be resolved."""


class TransferCode(IntEnum):
    """Result codes for transfer operations."""

    NO_CONFIGURATION = 0
    GENERIC_FAILURE = 1
    TRANSFER_FAILED = 2
    INVALID_PATH = 3
    SUCCESS = 200


@dataclass(frozen=True)
class TransferResult:
    """Result of a transfer operation.

    Transfer operations return this instead of raising.
    """

    success: bool
    code: TransferCode
    error_message: str | None = None

    @classmethod
    def ok(cls) -> TransferResult:
        """Create a successful result."""
        return cls(success=True, code=TransferCode.SUCCESS)

    @classmethod
    def failure(cls, code: TransferCode, message: str) -> TransferResult:
        """Create a failed result."""
        return cls(success=False, code=code, error_message=message)


class Operation(str, Enum):
    """Kind of operation reported in progress events."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE = "delete"


@dataclass(frozen=True)
class SyncProgress:
    """Progress information for sync operations."""

    file_name: str
    bytes_transferred: int
    total_bytes: int
    percentage: int
    operation: Operation


# Type alias for progress callback
ProgressCallback = Callable[[SyncProgress], None]


@dataclass(frozen=True)
class FileFailure:
    """A file that could not be synchronized."""

    path: str
    error: str


@dataclass
class SyncReport:
    """Result of a full-tree sync.

    Attributes:
        total_attempted: Number of files the walk produced.
        succeeded: Relative paths uploaded successfully.
        failed: Files whose upload failed.
        skipped: Files not processed because the sync was cancelled.
        error: Reason the run was aborted before any transfer, if any.
        already_running: True if the run was refused by the in-progress guard.
        cancelled: True if cancel() stopped the run between files.
    """

    total_attempted: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[FileFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    error: str | None = None
    already_running: bool = False
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """True if the run completed, even if some files failed."""
        return self.error is None and not self.already_running

    @property
    def all_succeeded(self) -> bool:
        """True if the run completed and every file was uploaded."""
        return self.success and not self.failed and not self.skipped

    def __bool__(self) -> bool:
        return self.success


@dataclass(frozen=True)
class Password:
    """Password credential."""

    value: str = field(repr=False)


@dataclass(frozen=True)
class PrivateKey:
    """Private key credential (PEM or OpenSSH encoded)."""

    data: bytes = field(repr=False)

    @property
    def text(self) -> str:
        """Key material decoded as text."""
        return self.data.decode("utf-8", errors="replace")


Credential = Password | PrivateKey


@dataclass(frozen=True)
class ConnectionInfo:
    """Everything needed to open an authenticated session.

    Built fresh per sync attempt and never persisted.
    """

    host: str
    port: int
    user: str
    credential: Credential

    @property
    def key(self) -> str:
        """Endpoint identity shared by sessions to the same user@host:port."""
        return f"{self.user}@{self.host}:{self.port}"
