"""
Audit event names.

Emitted on the EventBus for an external audit/logging collaborator.
"""

from __future__ import annotations

from enum import Enum


class AuditEvent(str, Enum):
    """Outbound events raised by the policy, permission and sandbox layers."""

    DECISION = "policy:decision"
    DENIED = "policy:denied"
    PROFILE_CHANGED = "policy:profile-changed"
    RULE_ADDED = "policy:rule-added"
    RULE_REMOVED = "policy:rule-removed"
    POLICY_ERROR = "policy:error"

    CONFIG_SAVED = "config:saved"
    CONFIG_UPDATED = "config:updated"
    CONFIG_ERROR = "config:error"
    OPERATION_RECORDED = "operation:recorded"
    SANDBOX_ENABLED = "sandbox:enabled"
    DRY_RUN_ENABLED = "dryrun:enabled"

    METHODS_DETECTED = "sandbox:methods-detected"
    SESSION_CREATED = "session:created"
    SESSION_CLOSED = "session:closed"
    EXEC_START = "exec:start"
    EXEC_COMPLETE = "exec:complete"
