"""Ignore patterns for file synchronization.

This module provides:
- PathFilter: Interface used by the sync engine to exclude paths
- SubstringPathFilter: Default matcher, a pattern matches if it occurs anywhere
- GlobPathFilter: Stricter gitignore-style matcher
"""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Protocol


def relative_posix(path: Path, base_path: Path) -> str | None:
    """Path relative to base_path with forward slashes, or None if outside."""
    try:
        rel_path = Path(path).relative_to(base_path)
    except ValueError:
        return None
    return str(rel_path).replace("\\", "/")


class PathFilter(Protocol):
    """Decides whether a path is excluded from synchronization."""

    @property
    def patterns(self) -> list[str]:
        """Configured patterns."""
        ...

    def should_ignore(self, path: Path, base_path: Path) -> bool:
        """Check if a path should be ignored.

        Args:
            path: Absolute path to check.
            base_path: Workspace root.
        """
        ...


class SubstringPathFilter:
    """Handles coarse substring matching.

    A path is ignored when any pattern occurs in its workspace-relative path
    or in its absolute path. The pattern "git" therefore also ignores
    "digit.txt".
    """

    def __init__(self, patterns: list[str] | None = None) -> None:
        self._patterns = list(patterns or [])

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def should_ignore(self, path: Path, base_path: Path) -> bool:
        absolute = str(path).replace("\\", "/")
        rel_str = relative_posix(path, base_path)
        if rel_str is None:
            rel_str = absolute

        return any(
            pattern in rel_str or pattern in absolute for pattern in self._patterns
        )


class GlobPathFilter:
    """Handles gitignore-style pattern matching for file paths."""

    def __init__(self, patterns: list[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: List of gitignore-style patterns.
        """
        self._patterns = list(patterns or [])

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """Add an ignore pattern."""
        self._patterns.append(pattern)

    def should_ignore(self, path: Path, base_path: Path) -> bool:
        rel_str = relative_posix(path, base_path)
        if rel_str is None:
            return False

        parts = rel_str.split("/")

        for pattern in self._patterns:
            # Directory-only patterns (ending with /)
            if pattern.endswith("/"):
                pattern = pattern[:-1]
                if Path(path).is_dir() and fnmatch.fnmatch(rel_str, pattern):
                    return True
                if any(fnmatch.fnmatch(part, pattern) for part in parts[:-1]):
                    return True
            elif "**" in pattern or "/" in pattern:
                if fnmatch.fnmatch(rel_str, pattern):
                    return True
            # Bare names match any path component
            elif any(fnmatch.fnmatch(part, pattern) for part in parts):
                return True

        return False
