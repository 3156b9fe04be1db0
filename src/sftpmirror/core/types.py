"""Shared types for sftpmirror.

This module defines enums used by both the configuration layer and the
sync engine.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """State of the sync engine guard.

    Entry to SYNCING is refused while a sync is already running.
    """

    IDLE = "idle"
    SYNCING = "syncing"


class SyncMode(str, Enum):
    """Direction of synchronization configured for a remote target."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    BIDIRECTIONAL = "bidirectional"
