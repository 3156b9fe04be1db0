"""Wiring of the sync components for one workspace.

Application is the single place where the connection pool, credential
resolver and sync engine are constructed. Nothing else holds process-wide
instances, so tests build their own Application with fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sftpmirror.client.credentials import CredentialResolver, CredentialStore
from sftpmirror.client.sync.connections import ConnectionPool
from sftpmirror.client.sync.engine import SyncEngine
from sftpmirror.client.sync.ignore import GlobPathFilter, SubstringPathFilter
from sftpmirror.core.config import get_config_path, load_config, save_config

if TYPE_CHECKING:
    from collections.abc import Callable

    from sftpmirror.client.credentials import Prompter
    from sftpmirror.client.ssh_keys import SSHKeyInfo
    from sftpmirror.client.sync.ssh import TransportFactory
    from sftpmirror.core.config import RemoteConfig

logger = logging.getLogger(__name__)


def _file_stamp(path: Path) -> int | None:
    """Modification time of path in nanoseconds, None if it is missing."""
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


@dataclass
class Application:
    """Sync components for one workspace."""

    workspace_root: Path
    config_path: Path
    pool: ConnectionPool
    resolver: CredentialResolver
    engine: SyncEngine
    config_stamp: int | None = field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        workspace_root: Path,
        prompter: Prompter | None = None,
        transport_factory: TransportFactory | None = None,
        glob_ignore: bool = False,
        store: CredentialStore | None = None,
        key_locator: Callable[[], list[SSHKeyInfo]] | None = None,
        start_sweeper: bool = True,
    ) -> Application:
        """Build and start the components for a workspace.

        Args:
            workspace_root: Directory mirrored to the remote path.
            prompter: Interactive collaborator for credential prompts.
            transport_factory: Opens SSH sessions (defaults to paramiko).
            glob_ignore: Use glob matching instead of substring matching.
            store: Credential storage (defaults to the OS keyring).
            key_locator: Lists candidate local private keys.
            start_sweeper: Start the idle connection sweep thread.

        Raises:
            ConfigError: If the config file exists but cannot be parsed.
        """
        workspace_root = Path(workspace_root).resolve()
        config_path = get_config_path(workspace_root)

        pool = ConnectionPool(transport_factory=transport_factory)
        resolver_kwargs = {"key_locator": key_locator} if key_locator else {}
        resolver = CredentialResolver(store=store, prompter=prompter, **resolver_kwargs)
        engine = SyncEngine(
            workspace_root,
            pool,
            resolver,
            filter_factory=GlobPathFilter if glob_ignore else SubstringPathFilter,
            config=load_config(config_path),
        )

        if start_sweeper:
            pool.start()

        return cls(
            workspace_root=workspace_root,
            config_path=config_path,
            pool=pool,
            resolver=resolver,
            engine=engine,
            config_stamp=_file_stamp(config_path),
        )

    @property
    def config(self) -> RemoteConfig | None:
        return self.engine.config

    def reload_config(self) -> RemoteConfig | None:
        """Re-read the config file and hand it to the engine.

        A changed endpoint or credential drops the cached session of the
        previous configuration.
        """
        previous = self.engine.config
        self.config_stamp = _file_stamp(self.config_path)
        config = load_config(self.config_path)
        if previous is not None and (
            config is None
            or previous.server_id != config.server_id
            or previous.private_key != config.private_key
            or previous.password != config.password
        ):
            self.pool.invalidate(previous.server_id)
        self.engine.set_configuration(config)
        return config

    def reload_if_changed(self) -> bool:
        """Reload the configuration if its file changed since the last load.

        Returns:
            True if the file was re-read.

        Raises:
            ConfigError: If the changed file cannot be parsed. The previous
                configuration stays active.
        """
        if _file_stamp(self.config_path) == self.config_stamp:
            return False
        self.reload_config()
        return True

    def update_config(self, config: RemoteConfig) -> None:
        """Persist config and make it the active configuration."""
        save_config(config, self.config_path)
        self.config_stamp = _file_stamp(self.config_path)
        self.engine.set_configuration(config)

    def forget_credentials(self) -> bool:
        """Delete stored credentials and drop the cached session.

        Returns:
            False if no configuration is loaded.
        """
        config = self.engine.config
        if config is None:
            return False
        self.resolver.forget(config)
        self.pool.invalidate(config.server_id)
        logger.info("Credentials forgotten for %s", config.server_id)
        return True

    def close(self) -> None:
        """Stop the sweep thread and close every session."""
        self.pool.close()

    def __enter__(self) -> Application:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
