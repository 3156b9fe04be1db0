"""SSH transport built on paramiko.

This module provides:
- Transport / SFTPChannel / TransportFactory: What the connection pool needs
- SSHTransport: paramiko-backed implementation of Transport
- load_private_key: Parse PEM / OpenSSH key material into a paramiko key
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Any, Protocol

import paramiko

from sftpmirror.client.sync.types import (
    AuthenticationFailed,
    ConnectionTimeout,
    Password,
    PrivateKey,
    SyncError,
)

if TYPE_CHECKING:
    from sftpmirror.client.sync.types import ConnectionInfo

logger = logging.getLogger(__name__)

# Tried in order when the key type is not known up front
_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (
    paramiko.RSAKey,
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
)


class SFTPChannel(Protocol):
    """File-transfer sub-channel of a session."""

    def put(self, localpath: str, remotepath: str) -> Any: ...

    def get(self, remotepath: str, localpath: str) -> Any: ...

    def close(self) -> None: ...


class Transport(Protocol):
    """Authenticated session able to run commands and open SFTP channels."""

    def is_active(self) -> bool: ...

    def exec_command(self, command: str) -> tuple[int, str, str]:
        """Run a command and return (exit_code, stdout, stderr)."""
        ...

    def open_sftp(self) -> SFTPChannel: ...

    def close(self) -> None: ...


class TransportFactory(Protocol):
    """Opens and authenticates a new Transport."""

    def __call__(self, info: ConnectionInfo, timeout: float) -> Transport: ...


def load_private_key(data: bytes) -> paramiko.PKey:
    """Parse private key material.

    Args:
        data: PEM or OpenSSH encoded private key.

    Returns:
        A paramiko key object.

    Raises:
        AuthenticationFailed: If no supported key type can parse the data.
    """
    text = data.decode("utf-8", errors="replace")
    last_error: Exception | None = None
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(text))
        except paramiko.PasswordRequiredException as e:
            raise AuthenticationFailed("Private key is encrypted with a passphrase") from e
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise AuthenticationFailed(f"Unsupported private key format: {last_error}")


class SSHTransport:
    """paramiko SSHClient wrapper implementing the Transport protocol."""

    def __init__(self, client: paramiko.SSHClient) -> None:
        self._client = client

    @classmethod
    def connect(cls, info: ConnectionInfo, timeout: float) -> SSHTransport:
        """Open and authenticate a session.

        Args:
            info: Host, port, user and credential.
            timeout: Bound for TCP connect, banner and authentication.

        Raises:
            ConnectionTimeout: If the host does not answer in time.
            AuthenticationFailed: If the credential is rejected.
            SyncError: For any other SSH or socket failure.
        """
        logger.debug("Opening SSH session to %s", info.key)
        client = paramiko.SSHClient()
        # A host listed in known_hosts must present the recorded key
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs: dict[str, Any] = {
            "hostname": info.host,
            "port": info.port,
            "username": info.user,
            "timeout": timeout,
            "banner_timeout": timeout,
            "auth_timeout": timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        if isinstance(info.credential, Password):
            connect_kwargs["password"] = info.credential.value
        elif isinstance(info.credential, PrivateKey):
            connect_kwargs["pkey"] = load_private_key(info.credential.data)

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationFailed(f"Authentication failed for {info.key}: {e}") from e
        except TimeoutError as e:
            client.close()
            raise ConnectionTimeout(f"Connection timeout to {info.host}:{info.port}") from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise SyncError(f"SSH connection error to {info.host}: {e}") from e

        return cls(client)

    def is_active(self) -> bool:
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def exec_command(self, command: str) -> tuple[int, str, str]:
        try:
            _stdin, stdout, stderr = self._client.exec_command(command)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, EOFError, OSError) as e:
            raise SyncError(f"Command channel failed: {e}") from e
        return exit_code, out, err

    def open_sftp(self) -> SFTPChannel:
        try:
            return self._client.open_sftp()
        except (paramiko.SSHException, EOFError, OSError) as e:
            raise SyncError(f"SFTP error: {e}") from e

    def close(self) -> None:
        self._client.close()
