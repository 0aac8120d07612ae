"""
Domain layer for Gatekeep.

Contains all core data structures with zero external dependencies
beyond Pydantic.
"""

from gatekeep.domain.events import AuditEvent
from gatekeep.domain.exceptions import (
    ConfigError,
    GatekeepError,
    PolicyError,
    SandboxError,
    SessionNotFoundError,
    UnknownProfileError,
)
from gatekeep.domain.permissions import PermissionCheckResult, PermissionConfig
from gatekeep.domain.policy import (
    ConditionType,
    DecisionSource,
    PolicyAction,
    PolicyCondition,
    PolicyConfig,
    PolicyContext,
    PolicyDecision,
    PolicyRule,
    ProfileDefinition,
)
from gatekeep.domain.sandbox import (
    CommandValidation,
    SandboxExecResult,
    SandboxMethod,
    SandboxSession,
    SandboxTerminalConfig,
)

__all__ = [
    # Events
    "AuditEvent",
    # Policy
    "ConditionType",
    "DecisionSource",
    "PolicyAction",
    "PolicyCondition",
    "PolicyConfig",
    "PolicyContext",
    "PolicyDecision",
    "PolicyRule",
    "ProfileDefinition",
    # Permissions
    "PermissionCheckResult",
    "PermissionConfig",
    # Sandbox
    "CommandValidation",
    "SandboxExecResult",
    "SandboxMethod",
    "SandboxSession",
    "SandboxTerminalConfig",
    # Exceptions
    "GatekeepError",
    "ConfigError",
    "PolicyError",
    "UnknownProfileError",
    "SandboxError",
    "SessionNotFoundError",
]
