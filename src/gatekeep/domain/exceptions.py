"""
Exception hierarchy for Gatekeep.

All exceptions inherit from GatekeepError for easy catching.

Denials are not exceptions: policy and permission checks return
structured results, and sandboxed executions always resolve to a
SandboxExecResult. These exceptions are reserved for misuse of the
management APIs.
"""

from __future__ import annotations


class GatekeepError(Exception):
    """Base exception for all Gatekeep errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(GatekeepError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, config_key: str | None = None) -> None:
        super().__init__(message, {"config_key": config_key})
        self.config_key = config_key


class PolicyError(GatekeepError):
    """Raised when a policy rule or document is invalid."""

    def __init__(self, message: str, policy_path: str | None = None) -> None:
        super().__init__(message, {"policy_path": policy_path})
        self.policy_path = policy_path


class UnknownProfileError(PolicyError):
    """Raised when switching to a profile that does not exist."""

    def __init__(self, profile: str, available: list[str]) -> None:
        super().__init__(
            f"Invalid profile: {profile}. Available: {', '.join(available)}"
        )
        self.details = {"profile": profile, "available": available}
        self.profile = profile
        self.available = available


class SandboxError(GatekeepError):
    """Raised when the sandbox executor is misused."""


class SessionNotFoundError(SandboxError):
    """Raised when a sandbox session id is unknown."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", {"session_id": session_id})
        self.session_id = session_id
