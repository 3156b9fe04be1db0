"""Transfer commands for sftpmirror CLI.

Commands:
- sync: Upload the whole workspace
- watch: Upload on save and mirror deletions until interrupted
- upload: Upload one file
- download: Download one file
- test: Test the connection to the configured server
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import click

from sftpmirror.client.cli.config import get_application, require_config
from sftpmirror.client.sync.types import (
    Operation,
    SyncError,
    SyncProgress,
    SyncReport,
)
from sftpmirror.core.config import ConfigError, validate_config

if TYPE_CHECKING:
    from sftpmirror.client.app import Application

ARROWS = {
    Operation.UPLOAD: "↑",
    Operation.DOWNLOAD: "↓",
    Operation.DELETE: "✗",
}


class StatusLineAwareHandler(logging.Handler):
    """Logging handler that coordinates with the status line display.

    Clears the status line before printing log messages and restores it after.
    """

    def __init__(
        self,
        clear_func: Callable[[], None],
        update_func: Callable[[], None],
        lock: threading.Lock,
    ) -> None:
        super().__init__()
        self._clear_func = clear_func
        self._update_func = update_func
        self._lock = lock

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            with self._lock:
                self._clear_func()
                # Same stream as the status line
                sys.stdout.write(msg + "\n")
                sys.stdout.flush()
                self._update_func()
        except Exception:
            self.handleError(record)


class StatusLine:
    """Single-line progress display rewritten in place."""

    def __init__(self, width: int = 80) -> None:
        self.lock = threading.Lock()
        self._width = width
        self._text = ""
        self._last_len = 0

    def clear(self) -> None:
        """Clear the current status line."""
        if self._last_len > 0:
            sys.stdout.write("\r" + " " * self._last_len + "\r")
            sys.stdout.flush()
            self._last_len = 0

    def redraw(self) -> None:
        """Write the current status text."""
        if not self._text:
            return
        clear_part = " " * max(0, self._last_len - len(self._text))
        sys.stdout.write(f"\r{self._text}{clear_part}")
        sys.stdout.flush()
        self._last_len = len(self._text)

    def update(self, progress: SyncProgress) -> None:
        text = f"  Syncing: [{progress.percentage:3d}%] {progress.file_name}"
        if len(text) > self._width - 3:
            text = text[: self._width - 6] + "..."
        with self.lock:
            self._text = text
            self.redraw()

    def finish(self) -> None:
        with self.lock:
            self._text = ""
            self.clear()


def _install_status_handler(line: StatusLine) -> logging.Handler:
    """Route sftpmirror warnings through the status line."""
    handler = StatusLineAwareHandler(
        clear_func=line.clear,
        update_func=line.redraw,
        lock=line.lock,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(logging.WARNING)

    package_logger = logging.getLogger("sftpmirror")
    for existing in package_logger.handlers[:]:
        if isinstance(existing, logging.StreamHandler) and not isinstance(
            existing, logging.FileHandler
        ):
            package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    return handler


def _display_summary(report: SyncReport) -> None:
    if report.failed:
        click.echo(click.style("\nErrors:", fg="red"))
        for failure in report.failed:
            click.echo(f"  ✗ {failure.path}: {failure.error}")

    if report.cancelled:
        click.echo(click.style(f"\nCancelled: {len(report.skipped)} files skipped", fg="yellow"))

    if report.total_attempted == 0:
        click.echo("Nothing to sync.")
    else:
        click.echo(
            f"\nSync complete: {len(report.succeeded)} uploaded, "
            f"{len(report.failed)} failed"
        )


@click.command()
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
@click.pass_context
def sync(ctx: click.Context, no_progress: bool) -> None:
    """Upload every workspace file to the remote path.

    Ignored paths are skipped. Press Ctrl+C to stop after the current file.
    """
    app = get_application(ctx)
    config = require_config(app)

    errors = validate_config(config)
    if errors:
        click.echo("Error: Invalid configuration:", err=True)
        for error in errors:
            click.echo(f"  {error}", err=True)
        sys.exit(1)

    line = StatusLine()
    handler: logging.Handler | None = None
    if not no_progress:
        handler = _install_status_handler(line)
        app.engine.on_progress(line.update)

    click.echo(f"Syncing {app.workspace_root} to {config.server_id}:{config.remote_path}...")

    reports: list[SyncReport] = []
    worker = threading.Thread(
        target=lambda: reports.append(app.engine.sync_all_files()),
        name="SyncAll",
        daemon=True,
    )
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.1)
    except KeyboardInterrupt:
        click.echo("\nStopping after the current file...")
        app.engine.cancel()
        worker.join()
    finally:
        line.finish()
        if handler is not None:
            logging.getLogger("sftpmirror").removeHandler(handler)

    report = reports[0] if reports else SyncReport(error="Sync did not complete")

    if report.already_running:
        click.echo("Sync already in progress", err=True)
        sys.exit(1)
    if report.error:
        click.echo(f"Sync failed: {report.error}", err=True)
        sys.exit(1)

    _display_summary(report)
    if report.failed:
        sys.exit(1)



def _reload_if_changed(app: Application) -> None:
    try:
        if not app.reload_if_changed():
            return
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Keeping the previous configuration.", err=True)
        return

    if app.config is None:
        click.echo("Configuration removed; nothing is synced until it is restored.")
    else:
        click.echo(f"Configuration reloaded for {app.config.server_id}:{app.config.remote_path}")


@click.command()
@click.option(
    "--debounce",
    default=0.25,
    show_default=True,
    type=click.FloatRange(min=0),
    help="Seconds a file must stay unchanged before it is uploaded.",
)
@click.pass_context
def watch(ctx: click.Context, debounce: float) -> None:
    """Upload saved files and mirror deletions until Ctrl+C.

    Edits to .sftpmirror/config.json are picked up while watching.
    """
    from sftpmirror.client.sync.watcher import FileWatcher

    app = get_application(ctx)
    config = require_config(app)

    if not config.upload_on_save:
        click.echo("Upload on save is disabled; only deletions are mirrored.")
        click.echo("  sftpmirror toggle-upload-on-save")

    def on_progress(progress: SyncProgress) -> None:
        click.echo(f"  {ARROWS[progress.operation]} {progress.file_name}")

    app.engine.on_progress(on_progress)

    watcher = FileWatcher(app.engine, debounce_s=debounce)
    stop_event = threading.Event()

    click.echo(f"Watching {app.workspace_root}... (Ctrl+C to stop)\n")
    try:
        watcher.start()
        while not stop_event.wait(timeout=1.0):
            _reload_if_changed(app)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        watcher.stop()


@click.command()
@click.argument("local", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--remote", "remote_path", help="Destination path (defaults to the mirrored location).")
@click.pass_context
def upload(ctx: click.Context, local: Path, remote_path: str | None) -> None:
    """Upload a single file."""
    app = get_application(ctx)
    require_config(app)

    if remote_path is None:
        try:
            remote_path = app.engine.remote_path_for(local)
        except SyncError as e:
            click.echo(f"Error: {e}", err=True)
            click.echo("Use --remote to choose a destination.", err=True)
            sys.exit(1)

    result = app.engine.upload_file(local, remote_path)
    if not result.success:
        click.echo(f"Upload failed: {result.error_message}", err=True)
        sys.exit(1)
    click.echo(f"Uploaded to {remote_path}")


@click.command()
@click.argument("remote")
@click.option(
    "--local",
    "local_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Destination file (defaults to the workspace root).",
)
@click.pass_context
def download(ctx: click.Context, remote: str, local_path: Path | None) -> None:
    """Download a single remote file."""
    app = get_application(ctx)
    require_config(app)

    result = app.engine.download_file(remote, local_path)
    if not result.success:
        click.echo(f"Download failed: {result.error_message}", err=True)
        sys.exit(1)
    click.echo(f"Downloaded {remote}")


@click.command("test")
@click.pass_context
def test_connection(ctx: click.Context) -> None:
    """Test the connection to the configured server."""
    app = get_application(ctx)
    config = require_config(app)

    click.echo(f"Connecting to {config.server_id}...")
    if not app.engine.test_connection():
        click.echo("Connection failed", err=True)
        sys.exit(1)
    click.echo("Connection successful")
