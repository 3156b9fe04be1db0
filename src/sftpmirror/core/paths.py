"""Path and command policy for values that reach the remote host.

This module provides:
- is_valid_path: Rejects traversal, absolute, reserved and oversized paths
- is_valid_remote_path: Same rules for absolute POSIX paths on the remote side
- sanitize_path: Best-effort cleanup for display purposes
- validate_ignore_patterns: Filters user-supplied ignore patterns
- escape_shell_arg: POSIX single-quote escaping for remote shell commands
- is_safe_command: Gate applied to every command line before execution

Every remote path that ends up in a shell command must pass
is_valid_remote_path (or is_valid_path) first and escape_shell_arg second.
"""

from __future__ import annotations

import posixpath
import re
from typing import Any

MAX_PATH_BYTES = 4096
MAX_PATTERN_LENGTH = 256

DEFAULT_IGNORE_PATTERNS = [".git", ".vscode", "node_modules"]

_FORBIDDEN_CHARS = re.compile(r'[<>:"|?*]')

_DANGEROUS_PATTERNS = [
    re.compile(r"\.\.[/\\]"),
    re.compile(r"[/\\]\.\."),
    re.compile(r"^[/\\]"),
    _FORBIDDEN_CHARS,
    re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\..*)?$", re.IGNORECASE),
]

# Characters with special meaning to a POSIX shell outside single quotes
_SHELL_METACHARS = frozenset(";&|`$(){}[]<>\\")


def is_valid_path(path: Any) -> bool:
    """Check whether a relative path is safe to use.

    Args:
        path: Candidate path (anything that is not a non-empty str is rejected).

    Returns:
        True if the path contains no traversal segment, no leading slash,
        no forbidden character, is not a reserved device name and fits in
        MAX_PATH_BYTES.
    """
    if not path or not isinstance(path, str):
        return False

    normalized = path.replace("\\", "/")

    for pattern in _DANGEROUS_PATTERNS:
        if pattern.search(normalized):
            return False

    return len(normalized.encode("utf-8")) <= MAX_PATH_BYTES


def is_valid_remote_path(path: Any) -> bool:
    """Check whether an absolute remote path is safe to use.

    The path must start with "/"; everything after the leading slashes is
    held to the is_valid_path rules.
    """
    if not path or not isinstance(path, str):
        return False
    if not path.startswith("/"):
        return False

    remainder = path.lstrip("/")
    if not remainder:
        return True
    return is_valid_path(remainder)


def validate_remote_path_within(remote_path: str, base_path: str) -> bool:
    """Check that a remote path is valid and lies under base_path."""
    if not is_valid_remote_path(remote_path):
        return False

    remote = posixpath.normpath(remote_path)
    base = posixpath.normpath(base_path or "/")
    if base == "/":
        return True
    return remote == base or remote.startswith(base + "/")


def sanitize_path(path: str | None) -> str:
    """Return a cleaned-up version of path for display.

    This is not a substitute for is_valid_path.
    """
    if not path:
        return ""

    cleaned = _FORBIDDEN_CHARS.sub("_", path)
    cleaned = re.sub(r"\.\.[/\\]", "", cleaned)
    cleaned = re.sub(r"[/\\]\.\.", "", cleaned)
    return cleaned.strip()


def validate_ignore_patterns(patterns: Any) -> list[str]:
    """Filter ignore patterns down to usable entries.

    Args:
        patterns: List of patterns from the configuration.

    Returns:
        Patterns that are non-empty strings shorter than MAX_PATTERN_LENGTH
        and contain no "..". If patterns is not a list at all, the default
        patterns are returned.
    """
    if not isinstance(patterns, list | tuple):
        return list(DEFAULT_IGNORE_PATTERNS)

    return [
        pattern
        for pattern in patterns
        if isinstance(pattern, str)
        and 0 < len(pattern) < MAX_PATTERN_LENGTH
        and ".." not in pattern
    ]


def escape_shell_arg(arg: str | None) -> str:
    """Quote arg for safe interpolation into a POSIX shell command line.

    Embedded single quotes become '"'"' so the shell reads them back
    literally. Empty input yields ''.
    """
    if not arg:
        return "''"
    return "'" + arg.replace("'", "'\"'\"'") + "'"


def is_safe_command(command: Any) -> bool:
    """Check that a command line has no shell operators outside single quotes.

    Args:
        command: Full command line about to be executed remotely.

    Returns:
        False for empty input, control characters, an unterminated quote, or
        any shell metacharacter outside a single-quoted segment.
    """
    if not command or not isinstance(command, str):
        return False
    if "\x00" in command or "\n" in command or "\r" in command:
        return False

    in_single = False
    in_double = False
    for char in command:
        if in_single:
            if char == "'":
                in_single = False
            continue
        if char == "'" and not in_double:
            in_single = True
            continue
        if char == '"':
            in_double = not in_double
            continue
        if char in _SHELL_METACHARS:
            return False

    return not in_single and not in_double
