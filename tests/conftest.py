"""Shared fixtures: in-memory SSH transports and credential storage."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from sftpmirror.client.sync.connections import ConnectionPool
from sftpmirror.client.sync.types import ConnectionInfo, Password, SyncError


class FakeSFTP:
    """SFTP channel recording transfers."""

    def __init__(self, fail_put: bool = False, fail_get: bool = False) -> None:
        self.fail_put = fail_put
        self.fail_get = fail_get
        self.put_calls: list[tuple[str, str]] = []
        self.get_calls: list[tuple[str, str]] = []
        self.closed = False

    def put(self, localpath: str, remotepath: str) -> None:
        if self.fail_put:
            raise OSError("Permission denied")
        self.put_calls.append((localpath, remotepath))

    def get(self, remotepath: str, localpath: str) -> None:
        if self.fail_get:
            raise OSError("No such file")
        Path(localpath).write_text(f"contents of {remotepath}", encoding="utf-8")
        self.get_calls.append((remotepath, localpath))

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    """Transport answering commands from a script."""

    def __init__(
        self,
        sftp_error: bool = False,
        fail_put: bool = False,
        fail_get: bool = False,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        command_error: bool = False,
    ) -> None:
        self.active = True
        self.closed = False
        self.sftp_error = sftp_error
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.command_error = command_error
        self.commands: list[str] = []
        self.sftp = FakeSFTP(fail_put=fail_put, fail_get=fail_get)

    def is_active(self) -> bool:
        return self.active

    def exec_command(self, command: str) -> tuple[int, str, str]:
        if self.command_error:
            raise SyncError("Command channel failed: EOF")
        self.commands.append(command)
        return self.exit_code, self.stdout, self.stderr

    def open_sftp(self) -> FakeSFTP:
        if self.sftp_error:
            raise SyncError("SFTP error: handshake failed")
        return self.sftp

    def close(self) -> None:
        self.active = False
        self.closed = True


class FakeFactory:
    """TransportFactory counting constructions.

    Attributes:
        options: Keyword arguments for each new FakeTransport.
        error: Raised instead of connecting when set.
        gate: When set, connecting blocks until the event is set.
    """

    def __init__(self) -> None:
        self.options: dict[str, Any] = {}
        self.error: BaseException | None = None
        self.gate: threading.Event | None = None
        self.calls = 0
        self.timeouts: list[float] = []
        self.transports: list[FakeTransport] = []
        self._lock = threading.Lock()

    def __call__(self, info: ConnectionInfo, timeout: float) -> FakeTransport:
        with self._lock:
            self.calls += 1
            self.timeouts.append(timeout)
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        if self.error is not None:
            raise self.error
        transport = FakeTransport(**self.options)
        with self._lock:
            self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]

    @property
    def commands(self) -> list[str]:
        return [command for transport in self.transports for command in transport.commands]


class MemoryStore:
    """CredentialStore replacement keeping secrets in a dict."""

    def __init__(self) -> None:
        self.passwords: dict[str, str] = {}
        self.keys: dict[tuple[str, str], str] = {}
        self.deleted: list[str] = []

    def store_password(self, server: str, password: str) -> None:
        self.passwords[server] = password

    def get_password(self, server: str) -> str | None:
        return self.passwords.get(server)

    def delete_password(self, server: str) -> None:
        self.passwords.pop(server, None)

    def store_private_key(self, server: str, key_id: str, private_key: str) -> None:
        self.keys[(server, key_id)] = private_key

    def get_private_key(self, server: str, key_id: str) -> str | None:
        return self.keys.get((server, key_id))

    def get_all_stored_keys(self, server: str) -> list[tuple[str, str]]:
        return sorted((key_id, content) for (s, key_id), content in self.keys.items() if s == server)

    def delete_all_credentials(self, server: str) -> None:
        self.deleted.append(server)
        self.passwords.pop(server, None)
        for key in [k for k in self.keys if k[0] == server]:
            del self.keys[key]


@pytest.fixture
def fake_factory() -> FakeFactory:
    """Create a transport factory producing in-memory transports."""
    return FakeFactory()


@pytest.fixture
def pool(fake_factory: FakeFactory) -> Iterator[ConnectionPool]:
    """Create a connection pool over the fake factory."""
    connection_pool = ConnectionPool(transport_factory=fake_factory)
    yield connection_pool
    connection_pool.close()


@pytest.fixture
def info() -> ConnectionInfo:
    """Connection parameters for deploy@example.com:22."""
    return ConnectionInfo(host="example.com", port=22, user="deploy", credential=Password("secret"))


@pytest.fixture
def memory_store() -> MemoryStore:
    """Create an in-memory credential store."""
    return MemoryStore()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create an empty workspace directory."""
    root = tmp_path / "workspace"
    root.mkdir()
    return root
