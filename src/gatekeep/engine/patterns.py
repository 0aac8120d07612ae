"""
Pattern matching utilities shared by the policy and permission layers.

Glob patterns are translated to anchored regular expressions and cached.
Nothing in this module raises on a malformed pattern: an unparseable
glob or regex simply never matches.
"""

from __future__ import annotations

import logging
import posixpath
import re
from functools import lru_cache

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Convert separators to `/` and collapse `.`/`..` segments."""
    if not path:
        return path
    return posixpath.normpath(path.replace("\\", "/"))


@lru_cache(maxsize=1024)
def glob_to_regex(pattern: str) -> re.Pattern[str] | None:
    """
    Translate a path glob into a compiled, anchored regex.

    Supports `**/` (zero or more directories), `**` (anything),
    `*` (anything except `/`) and `?` (one character except `/`).

    Returns:
        The compiled pattern, or None if it cannot be compiled.
    """
    normalized = pattern.replace("\\", "/")
    parts: list[str] = []
    i = 0
    while i < len(normalized):
        char = normalized[i]
        if normalized.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif normalized.startswith("**", i):
            parts.append(".*")
            i += 2
        elif char == "*":
            parts.append("[^/]*")
            i += 1
        elif char == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(char))
            i += 1

    try:
        return re.compile("^" + "".join(parts) + "$")
    except re.error:
        logger.debug("Ignoring unparseable glob %r", pattern)
        return None


def match_glob(path: str, pattern: str) -> bool:
    """Case-sensitive, separator-independent glob match."""
    compiled = glob_to_regex(pattern)
    if compiled is None:
        return False
    return compiled.match(normalize_path(path)) is not None


def match_any_glob(path: str, patterns: list[str]) -> bool:
    """True if `path` matches at least one of `patterns`."""
    return any(match_glob(path, pattern) for pattern in patterns)


@lru_cache(maxsize=1024)
def _command_regex(pattern: str) -> re.Pattern[str] | None:
    escaped = "".join(".*" if char == "*" else re.escape(char) for char in pattern)
    try:
        return re.compile("^" + escaped + "$", re.DOTALL)
    except re.error:
        return None


def match_command(command: str, pattern: str) -> bool:
    """
    Match a shell command against a command glob.

    Only `*` is special and it matches any run of characters, including
    spaces and `/`. The match is anchored at both ends.
    """
    compiled = _command_regex(pattern.strip())
    if compiled is None:
        return False
    return compiled.match(command.strip()) is not None


@lru_cache(maxsize=512)
def compile_regex(pattern: str, flags: int = re.IGNORECASE) -> re.Pattern[str] | None:
    """Compile a user-supplied regex, returning None instead of raising."""
    try:
        return re.compile(pattern, flags)
    except re.error:
        logger.debug("Ignoring unparseable regex %r", pattern)
        return None


def search_regex(pattern: str, text: str) -> bool:
    """Case-insensitive regex search that treats bad patterns as non-matching."""
    compiled = compile_regex(pattern)
    return compiled is not None and compiled.search(text) is not None
