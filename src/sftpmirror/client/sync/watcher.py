"""File system watcher feeding save and delete triggers to the sync engine.

This module provides:
- SaveDeleteHandler: watchdog handler that debounces saves per path
- FileWatcher: Watches the workspace and drives SyncEngine
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

    from sftpmirror.client.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _event_path(raw: str | bytes) -> Path:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return Path(raw)


class SaveDeleteHandler(FileSystemEventHandler):
    """Event handler translating file events into engine triggers.

    Created and modified events are coalesced per path: the save trigger
    fires once the path has been quiet for the debounce window. Deletions
    are delivered immediately.
    """

    def __init__(self, engine: SyncEngine, debounce_s: float = 0.25) -> None:
        super().__init__()
        self._engine = engine
        self._debounce_s = debounce_s

        # Pending save timers keyed by path
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def _schedule_save(self, path: Path) -> None:
        key = str(path)
        with self._lock:
            timer = self._timers.pop(key, None)
            if timer:
                timer.cancel()

            timer = threading.Timer(self._debounce_s, self._flush_save, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _flush_save(self, key: str) -> None:
        with self._lock:
            self._timers.pop(key, None)

        path = Path(key)
        if not path.is_file():
            return

        try:
            self._engine.sync_file_on_save(path)
        except Exception:
            logger.exception("Upload on save failed for %s", path)

    def _deliver_delete(self, path: Path) -> None:
        key = str(path)
        with self._lock:
            timer = self._timers.pop(key, None)
            if timer:
                timer.cancel()

        try:
            self._engine.sync_files_on_delete([path])
        except Exception:
            logger.exception("Remote delete failed for %s", path)

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle created event."""
        if not event.is_directory:
            self._schedule_save(_event_path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle modified event."""
        if not event.is_directory:
            self._schedule_save(_event_path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deleted event."""
        if not event.is_directory:
            self._deliver_delete(_event_path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event: a delete of the source and a save of the destination."""
        if event.is_directory:
            return
        self._deliver_delete(_event_path(event.src_path))
        self._schedule_save(_event_path(event.dest_path))

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def stop(self) -> None:
        """Cancel pending save timers."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


class FileWatcher:
    """Watches the engine's workspace for saves and deletions.

    Usage:
        with FileWatcher(engine):
            ...  # saves upload, deletions are mirrored
    """

    def __init__(self, engine: SyncEngine, debounce_s: float = 0.25) -> None:
        """Initialize the file watcher.

        Args:
            engine: Engine receiving save and delete triggers.
            debounce_s: Quiet period before a saved file is uploaded.

        Raises:
            ValueError: If the workspace root is not a directory.
        """
        self._watch_path = engine.workspace_root
        if not self._watch_path.is_dir():
            raise ValueError(f"Watch path must be a directory: {self._watch_path}")

        self._handler = SaveDeleteHandler(engine, debounce_s=debounce_s)
        self._observer: BaseObserver = Observer()
        self._running = False

    @property
    def watch_path(self) -> Path:
        """Get the watched directory path."""
        return self._watch_path

    @property
    def handler(self) -> SaveDeleteHandler:
        return self._handler

    @property
    def is_running(self) -> bool:
        """Check if the watcher is running."""
        return self._running

    def start(self) -> None:
        """Start watching for changes."""
        if self._running:
            return

        self._observer.schedule(self._handler, str(self._watch_path), recursive=True)
        self._observer.start()
        self._running = True
        logger.info("Watching %s", self._watch_path)

    def stop(self) -> None:
        """Stop watching for changes."""
        if not self._running:
            return

        self._handler.stop()
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._running = False

    def __enter__(self) -> FileWatcher:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
