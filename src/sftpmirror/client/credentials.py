"""Credential storage and resolution for remote targets.

This module provides:
- CredentialStore: OS keyring storage for passwords and private keys
- Prompter / NullPrompter: Interactive collaborator used as a last resort
- CredentialResolver: Turns a RemoteConfig into a ConnectionInfo

Resolution order (first success wins):
1. Inline private key from the configuration
2. Local SSH keys (a remembered selection, a single detected key, or a
   key picked by the prompter among several)
3. Inline password from the configuration
4. Password previously stored in the keyring
5. Interactive password entry or key selection (password is stored)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import keyring
from keyring.errors import KeyringError

from sftpmirror.client.ssh_keys import (
    SSHKeyInfo,
    detect_available_keys,
    read_key_content,
    validate_key_content,
)
from sftpmirror.client.sync.ssh import load_private_key
from sftpmirror.client.sync.types import (
    AuthenticationFailed,
    ConnectionInfo,
    NoAuthenticationMethod,
    Password,
    PrivateKey,
)

if TYPE_CHECKING:
    from sftpmirror.core.config import RemoteConfig

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "sftpmirror"
CREDENTIAL_PREFIX = "sftpmirror-"
MAX_STORED_KEYS = 10

AUTH_PASSWORD = "password"
AUTH_KEY = "key"


def server_id(config: RemoteConfig) -> str:
    """Endpoint identity of a configuration (user@host:port)."""
    return config.server_id


def _usable_key(content: str | None, source: str) -> PrivateKey | None:
    """Wrap content as a PrivateKey if paramiko can load it.

    Passphrase-protected keys and unsupported types (such as DSA) give None
    so resolution moves on to the next method.
    """
    if not content or not validate_key_content(content):
        logger.warning("Ignoring %s: unrecognized format", source)
        return None

    data = content.encode("utf-8")
    try:
        load_private_key(data)
    except AuthenticationFailed as e:
        logger.warning("Ignoring %s: %s", source, e)
        return None
    return PrivateKey(data)


class CredentialStore:
    """Stores secrets in the OS keyring.

    Entries are named "{prefix}{server_id}-password" and
    "{prefix}{server_id}-key-{key_id}". Keyring failures are logged: reads
    behave as if nothing was stored, writes are dropped.
    """

    def __init__(self, service: str = KEYRING_SERVICE, prefix: str = CREDENTIAL_PREFIX) -> None:
        self._service = service
        self._prefix = prefix

    def _password_key(self, server: str) -> str:
        return f"{self._prefix}{server}-password"

    def _private_key_key(self, server: str, key_id: str) -> str:
        return f"{self._prefix}{server}-key-{key_id}"

    def _get(self, name: str) -> str | None:
        try:
            return keyring.get_password(self._service, name)
        except KeyringError as e:
            logger.warning("Keyring unavailable, cannot read %s: %s", name, e)
            return None

    def _set(self, name: str, secret: str) -> bool:
        try:
            keyring.set_password(self._service, name, secret)
        except KeyringError as e:
            logger.warning("Keyring unavailable, cannot store %s: %s", name, e)
            return False
        return True

    def _delete(self, name: str) -> None:
        try:
            keyring.delete_password(self._service, name)
        except KeyringError:
            # PasswordDeleteError when nothing was stored
            logger.debug("Nothing to delete for %s", name)

    def store_password(self, server: str, password: str) -> None:
        """Store the password for a server.

        Raises:
            ValueError: If server or password is empty.
        """
        if not server or not password:
            raise ValueError("Server ID and password are required")
        if self._set(self._password_key(server), password):
            logger.info("Password stored for server: %s", server)

    def get_password(self, server: str) -> str | None:
        """Get the stored password for a server."""
        if not server:
            return None
        return self._get(self._password_key(server))

    def delete_password(self, server: str) -> None:
        """Delete the stored password for a server."""
        if server:
            self._delete(self._password_key(server))

    def store_private_key(self, server: str, key_id: str, private_key: str) -> None:
        """Store private key material for a server under key_id.

        Raises:
            ValueError: If any argument is empty.
        """
        if not server or not key_id or not private_key:
            raise ValueError("Server ID, key ID, and private key are required")
        if self._set(self._private_key_key(server, key_id), private_key):
            logger.info("SSH key %s stored for server: %s", key_id, server)

    def get_private_key(self, server: str, key_id: str) -> str | None:
        """Get stored private key material."""
        if not server or not key_id:
            return None
        return self._get(self._private_key_key(server, key_id))

    def delete_private_key(self, server: str, key_id: str) -> None:
        """Delete stored private key material."""
        if server and key_id:
            self._delete(self._private_key_key(server, key_id))
            logger.info("SSH key %s deleted for server: %s", key_id, server)

    def get_all_stored_keys(self, server: str) -> list[tuple[str, str]]:
        """Get all stored keys for a server as (key_id, content) pairs."""
        keys = []
        for i in range(MAX_STORED_KEYS):
            key_id = f"key-{i}"
            content = self.get_private_key(server, key_id)
            if content:
                keys.append((key_id, content))
        return keys

    def delete_all_credentials(self, server: str) -> None:
        """Delete the password and every stored key for a server."""
        if not server:
            return
        self._delete(self._password_key(server))
        for i in range(MAX_STORED_KEYS):
            self._delete(self._private_key_key(server, f"key-{i}"))
        logger.info("All credentials deleted for server: %s", server)


class Prompter(Protocol):
    """Interactive collaborator asked when nothing else resolves."""

    def choose_auth_method(self, server: str) -> str | None:
        """Return AUTH_PASSWORD, AUTH_KEY or None to give up."""
        ...

    def ask_password(self, server: str) -> str | None: ...

    def choose_key(self, candidates: list[SSHKeyInfo]) -> Path | None:
        """Pick one of candidates, or browse for another file if empty."""
        ...


class NullPrompter:
    """Prompter for non-interactive use: declines every request."""

    def choose_auth_method(self, server: str) -> str | None:
        return None

    def ask_password(self, server: str) -> str | None:
        return None

    def choose_key(self, candidates: list[SSHKeyInfo]) -> Path | None:
        return None


class CredentialResolver:
    """Produces ConnectionInfo for a configuration."""

    def __init__(
        self,
        store: CredentialStore | None = None,
        prompter: Prompter | None = None,
        key_locator: Callable[[], list[SSHKeyInfo]] = detect_available_keys,
    ) -> None:
        """Initialize the resolver.

        Args:
            store: Secret storage (defaults to the OS keyring).
            prompter: Interactive collaborator (defaults to NullPrompter).
            key_locator: Returns candidate local private keys.
        """
        self._store = store or CredentialStore()
        self._prompter: Prompter = prompter or NullPrompter()
        self._key_locator = key_locator

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def prompter(self) -> Prompter:
        return self._prompter

    @prompter.setter
    def prompter(self, prompter: Prompter) -> None:
        self._prompter = prompter

    def resolve(self, config: RemoteConfig) -> ConnectionInfo:
        """Resolve connection parameters for config.

        Raises:
            NoAuthenticationMethod: If neither a key nor a password is found.
        """
        credential = (
            self._inline_key(config)
            or self._detect_key(config)
            or self._inline_password(config)
            or self._stored_password(config)
            or self._ask_user(config)
        )
        if credential is None:
            raise NoAuthenticationMethod(
                f"No authentication method available for {server_id(config)}"
            )

        return ConnectionInfo(
            host=config.host,
            port=config.port,
            user=config.user,
            credential=credential,
        )

    def forget(self, config: RemoteConfig) -> None:
        """Drop every stored credential for config's server."""
        self._store.delete_all_credentials(server_id(config))

    def _inline_key(self, config: RemoteConfig) -> PrivateKey | None:
        if not config.private_key:
            return None
        return _usable_key(config.private_key, "inline private key")

    def _detect_key(self, config: RemoteConfig) -> PrivateKey | None:
        server = server_id(config)

        for key_id, content in self._store.get_all_stored_keys(server):
            key = _usable_key(content, f"stored SSH key {key_id}")
            if key is not None:
                logger.debug("Using stored SSH key %s for %s", key_id, server)
                return key

        candidates = self._key_locator()
        if not candidates:
            return None

        if len(candidates) == 1:
            key = self._load_key(candidates[0].path)
            if key is not None:
                logger.info("Using detected SSH key: %s", candidates[0].type)
            return key

        selected = self._prompter.choose_key(candidates)
        if selected is None:
            return None
        key = self._load_key(selected)
        if key is not None:
            self._store.store_private_key(server, "key-0", key.text)
        return key

    def _load_key(self, path: Path) -> PrivateKey | None:
        return _usable_key(read_key_content(path), f"SSH key {path}")

    def _inline_password(self, config: RemoteConfig) -> Password | None:
        if config.password:
            return Password(config.password)
        return None

    def _stored_password(self, config: RemoteConfig) -> Password | None:
        stored = self._store.get_password(server_id(config))
        if stored:
            return Password(stored)
        return None

    def _ask_user(self, config: RemoteConfig) -> Password | PrivateKey | None:
        server = server_id(config)
        method = self._prompter.choose_auth_method(server)

        if method == AUTH_PASSWORD:
            password = self._prompter.ask_password(server)
            if password:
                self._store.store_password(server, password)
                return Password(password)
        elif method == AUTH_KEY:
            selected = self._prompter.choose_key([])
            if selected is not None:
                key = self._load_key(selected)
                if key is not None:
                    self._store.store_private_key(server, "key-0", key.text)
                return key

        return None
