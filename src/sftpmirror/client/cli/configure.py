"""Configuration commands for sftpmirror CLI.

Commands:
- init: Create the workspace configuration
- toggle-upload-on-save: Enable or disable upload on save
- status: Show the workspace configuration and state
- forget-password: Delete stored credentials for the configured server
"""

from __future__ import annotations

import dataclasses
import sys
from pathlib import Path

import click

from sftpmirror.client.cli.config import get_application, get_state, require_config
from sftpmirror.client.ssh_keys import lookup_ssh_host, read_key_content, validate_key_content
from sftpmirror.core.config import (
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    ConfigError,
    RemoteConfig,
    create_config_template,
    default_template,
    get_config_path,
    validate_config,
)


def _config_from_ssh_host(alias: str, remote_path: str | None) -> tuple[RemoteConfig, Path | None]:
    entry = lookup_ssh_host(alias)
    if entry is None:
        click.echo(f"Error: Host '{alias}' not found in ~/.ssh/config", err=True)
        sys.exit(1)

    template = default_template()
    config = RemoteConfig(
        host=entry.hostname or alias,
        port=entry.port or template.port,
        user=entry.user or template.user,
        remote_path=remote_path or template.remote_path,
        ignore=list(template.ignore),
    )
    key_file = Path(entry.key_file).expanduser() if entry.key_file else None
    return config, key_file


@click.command()
@click.option(
    "--from-ssh-config",
    "ssh_host",
    metavar="HOST",
    help="Prefill host, port and user from a Host entry in ~/.ssh/config.",
)
@click.option("--remote-path", help="Remote directory the workspace is mirrored to.")
@click.pass_context
def init(ctx: click.Context, ssh_host: str | None, remote_path: str | None) -> None:
    """Create the configuration for this workspace.

    Writes .sftpmirror/config.json with placeholder values to edit, or with
    values taken from ~/.ssh/config.
    """
    state = get_state(ctx)
    config_path = get_config_path(state.workspace)

    if config_path.exists():
        click.echo("Error: Workspace already configured.", err=True)
        click.echo(f"Configuration exists at: {config_path}", err=True)
        sys.exit(1)

    config: RemoteConfig | None = None
    key_file: Path | None = None
    if ssh_host:
        config, key_file = _config_from_ssh_host(ssh_host, remote_path)
    elif remote_path:
        config = dataclasses.replace(default_template(), remote_path=remote_path)

    try:
        config = create_config_template(config_path, config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Configuration template created in {CONFIG_DIR_NAME}/{CONFIG_FILE_NAME}")

    if key_file is not None:
        content = read_key_content(key_file)
        if validate_key_content(content):
            assert content is not None
            app = get_application(ctx)
            app.resolver.store.store_private_key(config.server_id, "key-0", content)
            click.echo(f"Using SSH key {key_file} for {config.server_id}")
        else:
            click.echo(f"Warning: Cannot use SSH key {key_file}", err=True)

    if not ssh_host:
        click.echo("\nEdit the file, then run:")
        click.echo("  sftpmirror test")


@click.command("toggle-upload-on-save")
@click.pass_context
def toggle_upload_on_save(ctx: click.Context) -> None:
    """Enable or disable upload on save."""
    app = get_application(ctx)
    config = require_config(app)

    updated = dataclasses.replace(config, upload_on_save=not config.upload_on_save)
    try:
        app.update_config(updated)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    status = "enabled" if updated.upload_on_save else "disabled"
    click.echo(f"Upload on save {status}")


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the workspace configuration."""
    app = get_application(ctx)
    config = app.config

    def show(value: object | None) -> str:
        return str(value) if value else "Not configured"

    click.echo("sftpmirror status:\n")
    click.echo(f"Workspace: {app.workspace_root}")
    click.echo(f"Sync in progress: {'Yes' if app.engine.is_sync_in_progress else 'No'}")
    click.echo(f"Server: {show(config and config.host)}")
    click.echo(f"Port: {show(config and config.port)}")
    click.echo(f"User: {show(config and config.user)}")
    click.echo(f"Remote path: {show(config and config.remote_path)}")

    if config is None:
        return

    click.echo(f"Upload on save: {'enabled' if config.upload_on_save else 'disabled'}")
    click.echo(f"Ignore: {', '.join(config.ignore) or '(none)'}")

    errors = validate_config(config)
    if errors:
        click.echo(click.style("\nConfiguration problems:", fg="yellow"))
        for error in errors:
            click.echo(f"  ! {error}")


@click.command("forget-password")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def forget_password(ctx: click.Context, yes: bool) -> None:
    """Delete stored credentials for the configured server."""
    app = get_application(ctx)
    config = require_config(app)

    if not yes and not click.confirm(f"Delete stored credentials for {config.server_id}?"):
        click.echo("Aborted.")
        return

    app.forget_credentials()
    click.echo(f"Credentials deleted for {config.server_id}")
