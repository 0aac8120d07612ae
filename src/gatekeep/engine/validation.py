"""
Pre-spawn command screening.

A command is rejected when it matches one of the dangerous patterns
below or mentions a blocked path. Screening runs in every sandbox mode,
including no isolation at all.
"""

from __future__ import annotations

import re
from typing import Iterable

from gatekeep.domain.sandbox import CommandValidation

# (compiled pattern, label shown in the rejection reason)
DANGEROUS_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"rm\s+(?:-\w*[rR]\w*\s+|--recursive\s+)(?:-[\w-]+\s+)*[/~]", re.IGNORECASE),
        "recursive delete of / or ~",
    ),
    (re.compile(r"dd\s+.*of=/dev", re.IGNORECASE), "raw write to a device"),
    (re.compile(r"mkfs", re.IGNORECASE), "filesystem formatting"),
    (re.compile(r":\(\)\s*\{\s*:\|:&\s*\};:"), "fork bomb"),
    (re.compile(r"chmod\s+-R\s+777\s+/", re.IGNORECASE), "recursive chmod 777 on /"),
    (re.compile(r">\s*/dev/sd[a-z]", re.IGNORECASE), "redirect to a block device"),
    (re.compile(r"wget.*\|\s*(ba)?sh", re.IGNORECASE), "piping a download into a shell"),
    (re.compile(r"curl.*\|\s*(ba)?sh", re.IGNORECASE), "piping a download into a shell"),
    (re.compile(r"eval\s+\$\(", re.IGNORECASE), "eval of command substitution"),
)


def validate_command(command: str, blocked_paths: Iterable[str] = ()) -> CommandValidation:
    """
    Screen `command` before it is spawned.

    Args:
        command: Raw shell command string.
        blocked_paths: Paths that may not appear anywhere in the command.

    Returns:
        CommandValidation with `valid=False` and a reason on rejection.
    """
    for pattern, label in DANGEROUS_PATTERNS:
        if pattern.search(command):
            return CommandValidation(
                valid=False,
                reason=f"Blocked dangerous pattern: {pattern.pattern} ({label})",
            )

    for blocked in blocked_paths:
        if blocked and blocked in command:
            return CommandValidation(valid=False, reason=f"Access to blocked path: {blocked}")

    return CommandValidation(valid=True)
