"""Shared helpers for sftpmirror CLI commands.

This module provides workspace resolution, logging setup and access to the
Application for the current workspace.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

import click

from sftpmirror.client.app import Application
from sftpmirror.core.config import ConfigError, RemoteConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class CliState:
    """Options of the sftpmirror group, stored in the click context."""

    workspace: Path
    verbose: bool = False
    glob_ignore: bool = False
    app: Application | None = field(default=None, repr=False)


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the sftpmirror logger.

    Warnings and errors go to stderr (everything with verbose). An optional
    log file receives every record at DEBUG level.
    """
    package_logger = logging.getLogger("sftpmirror")
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
        handler.close()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stderr_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    package_logger.addHandler(stderr_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        package_logger.addHandler(file_handler)

    package_logger.setLevel(logging.DEBUG if verbose or log_file else logging.WARNING)
    package_logger.propagate = False


def get_state(ctx: click.Context) -> CliState:
    """Get the group options, defaulting to the current directory."""
    state = ctx.find_object(CliState)
    if state is None:
        state = CliState(workspace=Path.cwd())
        ctx.obj = state
    return state


def get_application(ctx: click.Context) -> Application:
    """Get (and lazily create) the Application for the workspace.

    The application is closed when the command finishes.
    """
    from sftpmirror.client.cli.prompts import ClickPrompter

    state = get_state(ctx)
    if state.app is None:
        try:
            state.app = Application.create(
                state.workspace,
                prompter=ClickPrompter(),
                glob_ignore=state.glob_ignore,
            )
        except ConfigError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        ctx.call_on_close(state.app.close)
    return state.app


def require_config(app: Application) -> RemoteConfig:
    """Get the loaded configuration or exit with an error."""
    config = app.config
    if config is None:
        click.echo("Error: No configuration found.", err=True)
        click.echo("\nTo create one, run:")
        click.echo("  sftpmirror init")
        sys.exit(1)
    return config
