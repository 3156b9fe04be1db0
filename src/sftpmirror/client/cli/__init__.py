"""Command-line interface for sftpmirror.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Create the workspace configuration
- sync: Upload the whole workspace
- watch: Upload on save and mirror deletions
- upload: Upload one file
- download: Download one file
- test: Test the connection
- toggle-upload-on-save: Enable or disable upload on save
- status: Show the workspace configuration
- forget-password: Delete stored credentials
"""

from __future__ import annotations

from pathlib import Path

import click

from sftpmirror.client.cli.config import (
    CliState,
    get_application,
    get_state,
    require_config,
    setup_logging,
)
from sftpmirror.client.cli.configure import (
    forget_password,
    init,
    status,
    toggle_upload_on_save,
)
from sftpmirror.client.cli.prompts import ClickPrompter
from sftpmirror.client.cli.sync import (
    download,
    sync,
    test_connection,
    upload,
    watch,
)


@click.group()
@click.version_option(package_name="sftpmirror")
@click.option(
    "--workspace",
    "-C",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Workspace directory (defaults to the current directory).",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.option(
    "--glob-ignore",
    is_flag=True,
    help="Match ignore patterns as globs instead of substrings.",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write a debug log to this file.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    workspace: Path | None,
    verbose: bool,
    glob_ignore: bool,
    log_file: Path | None,
) -> None:
    """sftpmirror - Mirror a local workspace to a remote directory over SSH."""
    if not isinstance(ctx.obj, CliState):
        ctx.obj = CliState(workspace=Path.cwd())

    state: CliState = ctx.obj
    if workspace is not None:
        state.workspace = workspace.resolve()
    state.verbose = verbose
    state.glob_ignore = glob_ignore

    setup_logging(verbose, log_file)


# Configuration commands
cli.add_command(init)
cli.add_command(toggle_upload_on_save)
cli.add_command(status)
cli.add_command(forget_password)

# Transfer commands
cli.add_command(sync)
cli.add_command(watch)
cli.add_command(upload)
cli.add_command(download)
cli.add_command(test_connection)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Helpers
    "CliState",
    "ClickPrompter",
    "get_application",
    "get_state",
    "require_config",
    "setup_logging",
]
