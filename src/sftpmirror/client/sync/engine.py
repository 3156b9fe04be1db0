"""Sync engine mirroring a workspace onto a remote directory.

This module provides:
- SyncEngine: Uploads saved files, mirrors deletions, pushes the whole tree
  and downloads individual files through a ConnectionPool

All triggered operations share one in-progress guard. A trigger arriving
while another one runs is dropped (save/delete) or refused (full sync); it
is never queued.
"""

from __future__ import annotations

import contextlib
import logging
import os
import posixpath
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from sftpmirror.client.sync.ignore import SubstringPathFilter, relative_posix
from sftpmirror.client.sync.types import (
    ConfigurationMissing,
    FileFailure,
    InvalidPath,
    Operation,
    ProgressCallback,
    SyncError,
    SyncProgress,
    SyncReport,
    TransferCode,
    TransferResult,
)
from sftpmirror.core.paths import is_valid_remote_path, validate_remote_path_within
from sftpmirror.core.types import SyncState

if TYPE_CHECKING:
    from sftpmirror.client.credentials import CredentialResolver
    from sftpmirror.client.sync.connections import ConnectionPool
    from sftpmirror.client.sync.ignore import PathFilter
    from sftpmirror.client.sync.types import ConnectionInfo
    from sftpmirror.core.config import RemoteConfig

logger = logging.getLogger(__name__)

NO_CONFIGURATION = "No configuration found"


class SyncEngine:
    """Coordinates synchronization between the workspace and the remote path.

    Usage:
        engine = SyncEngine(workspace, pool, resolver, config=config)
        engine.on_progress(print)

        report = engine.sync_all_files()
        if not report.all_succeeded:
            ...
    """

    def __init__(
        self,
        workspace_root: Path,
        pool: ConnectionPool,
        resolver: CredentialResolver,
        filter_factory: Callable[[list[str]], PathFilter] = SubstringPathFilter,
        config: RemoteConfig | None = None,
    ) -> None:
        """Initialize the sync engine.

        Args:
            workspace_root: Local directory mirrored to the remote path.
            pool: Connection pool used for every remote operation.
            resolver: Produces connection parameters from the configuration.
            filter_factory: Builds the ignore filter from configured patterns.
            config: Initial configuration (None until one is loaded).
        """
        self._workspace_root = Path(workspace_root).resolve()
        self._pool = pool
        self._resolver = resolver
        self._filter_factory = filter_factory

        self._config: RemoteConfig | None = None
        self._filter: PathFilter = filter_factory([])

        self._guard = threading.Lock()
        self._state = SyncState.IDLE
        self._cancel_event = threading.Event()
        self._progress_callbacks: list[ProgressCallback] = []

        self.set_configuration(config)

    @property
    def workspace_root(self) -> Path:
        return self._workspace_root

    @property
    def config(self) -> RemoteConfig | None:
        return self._config

    @property
    def path_filter(self) -> PathFilter:
        return self._filter

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_sync_in_progress(self) -> bool:
        """Check if a triggered operation is currently running."""
        return self._guard.locked()

    def set_configuration(self, config: RemoteConfig | None) -> None:
        """Replace the active configuration (None disables all triggers)."""
        self._config = config
        self._filter = self._filter_factory(list(config.ignore) if config else [])
        if config is not None:
            logger.info("Configuration updated for %s:%d", config.host, config.port)

    def on_progress(self, callback: ProgressCallback) -> None:
        """Register a progress listener. Listeners are called in registration order."""
        self._progress_callbacks.append(callback)

    def cancel(self) -> None:
        """Ask a running full sync to stop before its next file."""
        self._cancel_event.set()

    # -----------------------------------------------------------------
    # Guard and helpers
    # -----------------------------------------------------------------

    @contextlib.contextmanager
    def _sync_guard(self) -> Iterator[bool]:
        """Enter the in-progress section.

        Yields False without waiting if another operation holds the guard.
        """
        if not self._guard.acquire(blocking=False):
            yield False
            return

        self._state = SyncState.SYNCING
        try:
            yield True
        finally:
            self._state = SyncState.IDLE
            self._guard.release()

    def _notify_progress(self, progress: SyncProgress) -> None:
        for callback in self._progress_callbacks:
            try:
                callback(progress)
            except Exception:
                logger.exception("Progress callback failed")

    def _relative(self, path: Path) -> str:
        path = Path(path).absolute()
        rel_str = relative_posix(path, self._workspace_root)
        if rel_str is None:
            # Workspace given through a symlinked parent
            rel_str = relative_posix(path.resolve(), self._workspace_root)
        if rel_str is None:
            raise InvalidPath(f"{path} is outside the workspace {self._workspace_root}")
        return rel_str

    def remote_path_for(self, local_path: Path) -> str:
        """Rebase a workspace file onto the configured remote path.

        Raises:
            ConfigurationMissing: If no configuration is loaded.
            InvalidPath: If local_path is outside the workspace.
        """
        config = self._config
        if config is None:
            raise ConfigurationMissing(NO_CONFIGURATION)
        return self._rebase(config, local_path)

    def _rebase(self, config: RemoteConfig, local_path: Path) -> str:
        rel_str = self._relative(local_path)
        if rel_str == ".":
            return config.remote_path
        return posixpath.join(config.remote_path, rel_str)

    def _check_remote_target(self, config: RemoteConfig, remote_path: str) -> TransferResult | None:
        """Refuse explicit remote paths outside the configured remote path."""
        if not is_valid_remote_path(remote_path):
            return TransferResult.failure(TransferCode.INVALID_PATH, "Invalid path")
        if not validate_remote_path_within(remote_path, config.remote_path):
            return TransferResult.failure(
                TransferCode.INVALID_PATH,
                f"{remote_path} is outside the remote path {config.remote_path}",
            )
        return None

    def _connection_info(self, config: RemoteConfig) -> ConnectionInfo:
        return self._resolver.resolve(config)

    def _upload(self, info: ConnectionInfo, local_path: Path, remote_path: str) -> TransferResult:
        """Ensure the remote parent directory exists, then upload."""
        remote_dir = posixpath.dirname(remote_path)
        if remote_dir and remote_dir != "/":
            self._pool.ensure_remote_directory(info, remote_dir)
        return self._pool.upload_file(info, str(local_path), remote_path)

    # -----------------------------------------------------------------
    # Filtering
    # -----------------------------------------------------------------

    def should_sync_file(self, path: Path) -> bool:
        """Check if a path takes part in synchronization.

        False when no configuration is loaded or when an ignore pattern
        matches the path.
        """
        if self._config is None:
            return False
        return not self._filter.should_ignore(Path(path).absolute(), self._workspace_root)

    def collect_files_to_sync(self, root: Path | None = None) -> list[Path]:
        """Walk root and list the files to push.

        Directories rejected by the filter are not descended into. Entries
        are visited in sorted order.
        """
        if self._config is None:
            return []
        root = Path(root) if root is not None else self._workspace_root
        return self._collect(root, self._filter)

    def _collect(self, root: Path, path_filter: PathFilter) -> list[Path]:
        def accepted(path: Path) -> bool:
            return not path_filter.should_ignore(path.absolute(), self._workspace_root)

        files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            dirnames[:] = sorted(d for d in dirnames if accepted(current / d))
            for filename in sorted(filenames):
                file_path = current / filename
                if accepted(file_path):
                    files.append(file_path)

        return files

    # -----------------------------------------------------------------
    # Triggers
    # -----------------------------------------------------------------

    def sync_file_on_save(self, saved_path: Path) -> TransferResult | None:
        """Upload a saved file if upload-on-save is enabled.

        Returns:
            The upload result, or None if the trigger was dropped (upload on
            save disabled, sync in progress, or path ignored).
        """
        config = self._config
        if config is None or not config.upload_on_save or self.is_sync_in_progress:
            return None

        saved_path = Path(saved_path)
        if not self.should_sync_file(saved_path):
            return None

        with self._sync_guard() as entered:
            if not entered:
                return None

            try:
                remote_path = self._rebase(config, saved_path)
                info = self._connection_info(config)
                result = self._upload(info, saved_path, remote_path)
            except InvalidPath as e:
                logger.error("Failed to sync file %s: %s", saved_path, e)
                return TransferResult.failure(TransferCode.INVALID_PATH, str(e))
            except SyncError as e:
                logger.error("Failed to sync file %s: %s", saved_path, e)
                return TransferResult.failure(TransferCode.GENERIC_FAILURE, str(e))

            if result.success:
                logger.info("Synced: %s", self._relative(saved_path))
                self._notify_progress(
                    SyncProgress(
                        file_name=saved_path.name,
                        bytes_transferred=0,
                        total_bytes=0,
                        percentage=100,
                        operation=Operation.UPLOAD,
                    )
                )
            else:
                logger.error("Sync failed: %s - %s", saved_path, result.error_message)
            return result

    def sync_files_on_delete(self, deleted_paths: Iterable[Path]) -> list[TransferResult]:
        """Delete the remote counterparts of locally deleted files.

        Best effort: a failure for one path does not stop the others.

        Returns:
            One result per path that passed the filter.
        """
        config = self._config
        if config is None:
            return []

        results: list[TransferResult] = []
        with self._sync_guard() as entered:
            if not entered:
                return results

            for path in deleted_paths:
                path = Path(path)
                if not self.should_sync_file(path):
                    continue
                results.append(self._delete_remote(config, path))

        return results

    def _delete_remote(self, config: RemoteConfig, local_path: Path) -> TransferResult:
        try:
            remote_path = self._rebase(config, local_path)
            info = self._connection_info(config)
        except InvalidPath as e:
            logger.error("Failed to delete remote file %s: %s", local_path, e)
            return TransferResult.failure(TransferCode.INVALID_PATH, str(e))
        except SyncError as e:
            logger.error("Failed to delete remote file %s: %s", local_path, e)
            return TransferResult.failure(TransferCode.GENERIC_FAILURE, str(e))

        result = self._pool.delete_remote_file(info, remote_path)
        if result.success:
            self._notify_progress(
                SyncProgress(
                    file_name=local_path.name,
                    bytes_transferred=0,
                    total_bytes=0,
                    percentage=100,
                    operation=Operation.DELETE,
                )
            )
        return result

    def sync_all_files(self) -> SyncReport:
        """Push every non-ignored workspace file to the remote path.

        Credentials are resolved once up front; failing that aborts the run.
        Individual upload failures are recorded in the report and do not
        stop the walk.

        Returns:
            SyncReport. It is truthy when the run completed, even if some
            files failed; use all_succeeded for the strict outcome.
        """
        config, path_filter = self._config, self._filter
        if config is None:
            logger.error(NO_CONFIGURATION)
            return SyncReport(error=NO_CONFIGURATION)

        with self._sync_guard() as entered:
            if not entered:
                logger.warning("Sync already in progress")
                return SyncReport(already_running=True)

            self._cancel_event.clear()
            return self._sync_all(config, path_filter)

    def _sync_all(self, config: RemoteConfig, path_filter: PathFilter) -> SyncReport:
        if not self._workspace_root.is_dir():
            message = f"Workspace folder not found: {self._workspace_root}"
            logger.error(message)
            return SyncReport(error=message)

        try:
            info = self._connection_info(config)
        except SyncError as e:
            logger.error("Failed to sync files: %s", e)
            return SyncReport(error=str(e))

        files = self._collect(self._workspace_root, path_filter)
        total = len(files)
        report = SyncReport(total_attempted=total)
        logger.info("Syncing %d files to %s", total, info.key)

        for index, file_path in enumerate(files):
            rel_str = self._relative(file_path)

            if self._cancel_event.is_set():
                report.cancelled = True
                report.skipped.extend(self._relative(f) for f in files[index:])
                logger.warning("Sync cancelled, %d files skipped", len(report.skipped))
                break

            try:
                result = self._upload(info, file_path, self._rebase(config, file_path))
            except SyncError as e:
                result = TransferResult.failure(TransferCode.GENERIC_FAILURE, str(e))

            if result.success:
                report.succeeded.append(rel_str)
            else:
                logger.error("Failed to upload %s: %s", rel_str, result.error_message)
                report.failed.append(FileFailure(path=rel_str, error=result.error_message or ""))

            processed = index + 1
            self._notify_progress(
                SyncProgress(
                    file_name=file_path.name,
                    bytes_transferred=0,
                    total_bytes=0,
                    percentage=processed * 100 // total,
                    operation=Operation.UPLOAD,
                )
            )

        logger.info(
            "Sync finished: %d uploaded, %d failed",
            len(report.succeeded),
            len(report.failed),
        )
        return report

    # -----------------------------------------------------------------
    # Manual operations
    # -----------------------------------------------------------------

    def upload_file(self, local_path: Path, remote_path: str | None = None) -> TransferResult:
        """Upload one file, by default to its rebased remote location.

        An explicit remote_path must lie under the configured remote path.
        """
        config = self._config
        if config is None:
            return TransferResult.failure(TransferCode.NO_CONFIGURATION, NO_CONFIGURATION)

        local_path = Path(local_path)
        if remote_path:
            refused = self._check_remote_target(config, remote_path)
            if refused is not None:
                logger.error("Refusing upload of %s: %s", local_path, refused.error_message)
                return refused

        try:
            target = remote_path or self._rebase(config, local_path)
            info = self._connection_info(config)
        except InvalidPath as e:
            return TransferResult.failure(TransferCode.INVALID_PATH, str(e))
        except SyncError as e:
            logger.error("Failed to upload file %s: %s", local_path, e)
            return TransferResult.failure(TransferCode.GENERIC_FAILURE, str(e))

        return self._upload(info, local_path, target)

    def download_file(self, remote_path: str, local_path: Path | None = None) -> TransferResult:
        """Download one remote file.

        Args:
            remote_path: Absolute remote path under the configured remote path.
            local_path: Destination, defaults to the workspace root plus the
                remote basename.
        """
        config = self._config
        if config is None:
            return TransferResult.failure(TransferCode.NO_CONFIGURATION, NO_CONFIGURATION)

        refused = self._check_remote_target(config, remote_path)
        if refused is not None:
            logger.error("Refusing download of %s: %s", remote_path, refused.error_message)
            return refused

        target = Path(local_path) if local_path else self._workspace_root / posixpath.basename(remote_path)
        try:
            info = self._connection_info(config)
        except SyncError as e:
            logger.error("Failed to download file %s: %s", remote_path, e)
            return TransferResult.failure(TransferCode.GENERIC_FAILURE, str(e))

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return TransferResult.failure(TransferCode.TRANSFER_FAILED, str(e))

        result = self._pool.download_file(info, remote_path, str(target))
        if result.success:
            self._notify_progress(
                SyncProgress(
                    file_name=target.name,
                    bytes_transferred=0,
                    total_bytes=0,
                    percentage=100,
                    operation=Operation.DOWNLOAD,
                )
            )
        return result

    def test_connection(self) -> bool:
        """Check that the configured host is reachable and accepts the credential."""
        config = self._config
        if config is None:
            return False

        try:
            info = self._connection_info(config)
        except SyncError as e:
            logger.error("Connection test failed: %s", e)
            return False
        return self._pool.test_connection(info)
