"""Pool of reusable authenticated SSH sessions.

This module provides:
- ConnectionPool: Hands out sessions keyed by user@host:port, runs remote
  commands and SFTP transfers, and evicts idle sessions in the background
- PooledConnection: Bookkeeping for one cached session

Concurrent requests for the same key share a single connection attempt:
the first caller establishes the transport, later callers wait on its
outcome. Different keys connect in parallel.
"""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sftpmirror.client.sync.ssh import SSHTransport
from sftpmirror.client.sync.types import (
    CommandFailed,
    InvalidPath,
    SyncError,
    TransferCode,
    TransferResult,
)
from sftpmirror.core.paths import escape_shell_arg, is_safe_command, is_valid_remote_path

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sftpmirror.client.sync.ssh import SFTPChannel, Transport, TransportFactory
    from sftpmirror.client.sync.types import ConnectionInfo

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT = 30.0  # seconds
MAX_IDLE_TIME = 300.0  # seconds
SWEEP_INTERVAL = 60.0  # seconds

TEST_COMMAND = "echo connection-test"


@dataclass
class PooledConnection:
    """A cached session.

    Attributes:
        key: Endpoint identity (user@host:port).
        transport: The live session.
        last_used: Clock value of the last hand-out or release.
        is_active: False once the session failed at transport level.
        in_use: Number of operations currently running on the session.
    """

    key: str
    transport: Transport
    last_used: float
    is_active: bool = True
    in_use: int = 0

    def usable(self) -> bool:
        """Check if the session can be handed out again."""
        return self.is_active and self.transport.is_active()


class ConnectionPool:
    """Pool of SSH sessions with idle cleanup.

    Usage:
        pool = ConnectionPool()
        pool.start()  # Background idle sweep

        pool.upload_file(info, "/local/a.txt", "/srv/app/a.txt")

        pool.close()  # Stop sweeping and close all sessions
    """

    def __init__(
        self,
        transport_factory: TransportFactory | None = None,
        connect_timeout: float = CONNECTION_TIMEOUT,
        idle_timeout: float = MAX_IDLE_TIME,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the pool.

        Args:
            transport_factory: Opens new sessions. Defaults to SSHTransport.connect.
            connect_timeout: Bound for establishing a session, in seconds.
            idle_timeout: Sessions unused for longer than this are evicted.
            sweep_interval: Seconds between idle sweeps.
            clock: Monotonic time source.
        """
        self._factory: TransportFactory = transport_factory or SSHTransport.connect
        self._connect_timeout = connect_timeout
        self._idle_timeout = idle_timeout
        self._sweep_interval = sweep_interval
        self._clock = clock

        self._lock = threading.Lock()
        self._connections: dict[str, PooledConnection] = {}
        # In-flight establishments by key
        self._pending: dict[str, Future[Transport]] = {}

        self._stop_event = threading.Event()
        self._sweeper: threading.Thread | None = None
        self._closed = False

    @property
    def connection_count(self) -> int:
        """Get number of cached sessions."""
        with self._lock:
            return len(self._connections)

    @property
    def idle_timeout(self) -> float:
        return self._idle_timeout

    def get_entry(self, key: str) -> PooledConnection | None:
        """Get the cached entry for a key, if any."""
        with self._lock:
            return self._connections.get(key)

    # -----------------------------------------------------------------
    # Session management
    # -----------------------------------------------------------------

    def get_connection(self, info: ConnectionInfo) -> Transport:
        """Get a ready-to-use session for info.key.

        Returns the cached session if it is still active, refreshing its
        last-used time; otherwise establishes a new one.

        Raises:
            ConnectionTimeout: If establishment exceeds the connect timeout.
            AuthenticationFailed: If the credential is rejected.
            SyncError: For other transport failures, or if the pool is closed.
        """
        return self._checkout(info, hold=False)

    @contextlib.contextmanager
    def lease(self, info: ConnectionInfo) -> Iterator[Transport]:
        """Hold a session for the duration of an operation.

        A leased session is never evicted by the idle sweep. Its last-used
        time is refreshed when the lease ends.
        """
        transport = self._checkout(info, hold=True)
        try:
            yield transport
        finally:
            self._release(info.key, transport)

    def _checkout(self, info: ConnectionInfo, hold: bool) -> Transport:
        key = info.key
        stale: PooledConnection | None = None

        with self._lock:
            if self._closed:
                raise SyncError("Connection pool is closed")

            entry = self._connections.get(key)
            if entry is not None and entry.usable():
                entry.last_used = self._clock()
                if hold:
                    entry.in_use += 1
                return entry.transport

            future = self._pending.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._pending[key] = future
                if entry is not None:
                    stale = self._connections.pop(key)

        if not owner:
            logger.debug("Waiting for in-flight connection to %s", key)
            transport = future.result()
            if hold:
                with self._lock:
                    entry = self._connections.get(key)
                    if entry is not None and entry.transport is transport:
                        entry.in_use += 1
            return transport

        if stale is not None:
            logger.info("Replacing inactive connection: %s", key)
            self._close_quietly(stale)

        try:
            transport = self._factory(info, self._connect_timeout)
        except BaseException as e:
            with self._lock:
                self._pending.pop(key, None)
            future.set_exception(e)
            logger.error("SSH connection error to %s: %s", key, e)
            raise

        with self._lock:
            self._pending.pop(key, None)
            closed = self._closed
            if not closed:
                self._connections[key] = PooledConnection(
                    key=key,
                    transport=transport,
                    last_used=self._clock(),
                    in_use=1 if hold else 0,
                )

        if closed:
            # Pool shut down while the session was being established
            with contextlib.suppress(Exception):
                transport.close()
            error = SyncError("Connection pool is closed")
            future.set_exception(error)
            raise error

        future.set_result(transport)
        logger.info("Connected to %s", key)
        return transport

    def _release(self, key: str, transport: Transport) -> None:
        with self._lock:
            entry = self._connections.get(key)
            if entry is not None and entry.transport is transport and entry.in_use > 0:
                entry.in_use -= 1
                entry.last_used = self._clock()

    def invalidate(self, key: str) -> bool:
        """Close and drop the session for key.

        Used when the credential for an endpoint changes.

        Returns:
            True if a session was cached for key.
        """
        with self._lock:
            entry = self._connections.pop(key, None)
        if entry is None:
            return False
        self._close_quietly(entry)
        logger.info("Invalidated connection: %s", key)
        return True

    def close_all_connections(self) -> None:
        """Close every cached session and clear the pool."""
        with self._lock:
            entries = list(self._connections.values())
            self._connections.clear()

        for entry in entries:
            self._close_quietly(entry)
            logger.info("Closed connection: %s", entry.key)

    def sweep_idle(self, now: float | None = None) -> list[str]:
        """Evict sessions idle for longer than the idle timeout.

        Inactive sessions are evicted as well. Sessions with an operation in
        progress are skipped.

        Args:
            now: Clock value to compare against (defaults to the pool clock).

        Returns:
            Keys that were evicted.
        """
        evicted: list[PooledConnection] = []
        with self._lock:
            if now is None:
                now = self._clock()
            for key, entry in list(self._connections.items()):
                if entry.in_use > 0:
                    continue
                if now - entry.last_used > self._idle_timeout or not entry.usable():
                    evicted.append(self._connections.pop(key))

        for entry in evicted:
            self._close_quietly(entry)
            logger.info("Cleaned up idle connection: %s", entry.key)

        return [entry.key for entry in evicted]

    def _mark_inactive(self, key: str, transport: Transport) -> None:
        with self._lock:
            entry = self._connections.get(key)
            if entry is not None and entry.transport is transport:
                entry.is_active = False

    def _close_quietly(self, entry: PooledConnection) -> None:
        entry.is_active = False
        try:
            entry.transport.close()
        except Exception:
            logger.debug("Error closing connection %s", entry.key, exc_info=True)

    # -----------------------------------------------------------------
    # Background sweep
    # -----------------------------------------------------------------

    def start(self) -> None:
        """Start the idle sweep thread."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return

        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._run_sweeper,
            name="ConnectionPoolSweeper",
            daemon=True,
        )
        self._sweeper.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the idle sweep thread."""
        self._stop_event.set()
        if self._sweeper is not None and self._sweeper.is_alive():
            self._sweeper.join(timeout=timeout)
        self._sweeper = None

    def close(self) -> None:
        """Stop sweeping and close all sessions.

        The pool cannot be used afterwards. A session whose establishment
        finishes after close() is closed instead of being cached.
        """
        with self._lock:
            self._closed = True
        self.stop()
        self.close_all_connections()

    def _run_sweeper(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            try:
                self.sweep_idle()
            except Exception:
                logger.exception("Idle sweep failed")

    def __enter__(self) -> ConnectionPool:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # -----------------------------------------------------------------
    # Remote operations
    # -----------------------------------------------------------------

    def execute_command(self, info: ConnectionInfo, command: str) -> str:
        """Run a command on the remote host.

        Args:
            info: Connection parameters.
            command: Full command line; rejected unless is_safe_command accepts it.

        Returns:
            Concatenated standard output.

        Raises:
            InvalidPath: If the command fails validation.
            CommandFailed: If the command exits with a non-zero status.
            SyncError: On connection or channel failure.
        """
        if not is_safe_command(command):
            raise InvalidPath("Invalid command detected")

        with self.lease(info) as transport:
            try:
                exit_code, stdout, stderr = transport.exec_command(command)
            except SyncError:
                self._mark_inactive(info.key, transport)
                raise

        if exit_code != 0:
            raise CommandFailed(exit_code, stderr)
        return stdout

    def _transfer(
        self,
        info: ConnectionInfo,
        operation: str,
        action: Callable[[SFTPChannel], object],
    ) -> TransferResult:
        """Run action on an SFTP channel of a leased session."""
        with contextlib.ExitStack() as stack:
            try:
                transport = stack.enter_context(self.lease(info))
            except Exception as e:
                return TransferResult.failure(TransferCode.GENERIC_FAILURE, str(e))

            try:
                sftp = transport.open_sftp()
            except Exception as e:
                logger.error("SFTP error: %s", e)
                self._mark_inactive(info.key, transport)
                return TransferResult.failure(TransferCode.GENERIC_FAILURE, str(e))

            try:
                action(sftp)
            except Exception as e:
                logger.error("%s failed: %s", operation, e)
                return TransferResult.failure(TransferCode.TRANSFER_FAILED, str(e))
            finally:
                with contextlib.suppress(Exception):
                    sftp.close()

        return TransferResult.ok()

    def upload_file(
        self, info: ConnectionInfo, local_path: str, remote_path: str
    ) -> TransferResult:
        """Copy a local file to the remote host. Never raises."""
        if not is_valid_remote_path(remote_path):
            return TransferResult.failure(TransferCode.INVALID_PATH, "Invalid path")

        result = self._transfer(info, "Upload", lambda sftp: sftp.put(str(local_path), remote_path))
        if result.success:
            logger.info("Successfully uploaded %s to %s", local_path, remote_path)
        return result

    def download_file(
        self, info: ConnectionInfo, remote_path: str, local_path: str
    ) -> TransferResult:
        """Copy a remote file to the local filesystem. Never raises."""
        if not is_valid_remote_path(remote_path):
            return TransferResult.failure(TransferCode.INVALID_PATH, "Invalid path")

        result = self._transfer(info, "Download", lambda sftp: sftp.get(remote_path, str(local_path)))
        if result.success:
            logger.info("Successfully downloaded %s to %s", remote_path, local_path)
        return result

    def delete_remote_file(self, info: ConnectionInfo, remote_path: str) -> TransferResult:
        """Delete a remote file with rm -f. Never raises."""
        if not is_valid_remote_path(remote_path):
            return TransferResult.failure(TransferCode.INVALID_PATH, "Invalid path")

        try:
            self.execute_command(info, f"rm -f {escape_shell_arg(remote_path)}")
        except InvalidPath as e:
            logger.error("Delete refused for %r: %s", remote_path, e)
            return TransferResult.failure(TransferCode.INVALID_PATH, str(e))
        except Exception as e:
            logger.error("Delete failed: %s", e)
            return TransferResult.failure(TransferCode.TRANSFER_FAILED, str(e))

        logger.info("Successfully deleted remote file: %s", remote_path)
        return TransferResult.ok()

    def ensure_remote_directory(self, info: ConnectionInfo, remote_path: str) -> bool:
        """Create a remote directory (and parents) with mkdir -p."""
        if not is_valid_remote_path(remote_path):
            return False

        try:
            self.execute_command(info, f"mkdir -p {escape_shell_arg(remote_path)}")
        except Exception as e:
            logger.error("Failed to create directory %s: %s", remote_path, e)
            return False
        return True

    def test_connection(self, info: ConnectionInfo) -> bool:
        """Run a no-op command to check connectivity. Never raises."""
        try:
            self.execute_command(info, TEST_COMMAND)
        except Exception as e:
            logger.error("Connection test failed: %s", e)
            return False
        return True
