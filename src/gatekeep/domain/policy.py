"""
Policy domain models.

Defines rules, profiles, resolution context and decisions for the
tool policy resolver, plus the persisted policy document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PolicyAction(str, Enum):
    """Outcome of a policy resolution."""

    ALLOW = "allow"
    DENY = "deny"
    CONFIRM = "confirm"  # Caller must obtain user confirmation first


class ConditionType(str, Enum):
    """Kinds of conditions that can be attached to a rule."""

    PATH = "path"  # Glob against a path-like argument
    COMMAND = "command"  # Substring of a command-like argument
    PATTERN = "pattern"  # Case-insensitive regex against any string argument
    TIME = "time"  # Coarse time bucket: business-hours, weekend, night
    CUSTOM = "custom"  # Extension point, always true


class DecisionSource(str, Enum):
    """Which precedence level produced a decision."""

    SESSION = "session"
    GLOBAL = "global"
    PROVIDER = "provider"
    AGENT = "agent"
    PROFILE = "profile"
    DEFAULT = "default"


class PolicyCondition(BaseModel):
    """A single typed condition on a policy rule."""

    model_config = ConfigDict(frozen=True)

    type: ConditionType = Field(..., description="Condition kind")
    value: str = Field(..., description="Glob, substring, regex or time bucket")
    negate: bool = Field(default=False, description="Invert this condition's result")


class PolicyRule(BaseModel):
    """
    A rule mapping a tool group (or literal tool name) to an action.

    Rules are immutable once loaded. A rule matches a tool when one of the
    tool's groups descends from `group` and every condition holds.
    """

    model_config = ConfigDict(frozen=True)

    group: str = Field(..., min_length=1, description="Tool group or literal tool name")
    action: PolicyAction = Field(..., description="Action when the rule matches")
    conditions: list[PolicyCondition] = Field(
        default_factory=list, description="All must hold (AND)"
    )
    priority: int = Field(default=0, description="Higher is evaluated first")
    reason: str = Field(default="", description="Human-readable justification")


class ProfileDefinition(BaseModel):
    """A named, ordered bundle of rules representing a permission posture."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    rules: list[PolicyRule] = Field(default_factory=list)
    inherits: str | None = Field(default=None, description="Parent profile (single level)")
    customizable: bool = Field(default=True)


class PolicyConfig(BaseModel):
    """
    Persisted policy document.

    Serialized with camelCase keys (activeProfile, globalRules, ...) so the
    file stays compatible with hand-edited JSON.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    version: str = Field(default="1.0.0")
    active_profile: str = Field(default="coding")
    global_rules: list[PolicyRule] = Field(default_factory=list)
    agent_rules: dict[str, list[PolicyRule]] = Field(default_factory=dict)
    provider_rules: dict[str, list[PolicyRule]] = Field(default_factory=dict)
    default_action: PolicyAction = Field(default=PolicyAction.CONFIRM)
    audit_log: bool = Field(default=False)
    profiles: dict[str, ProfileDefinition] = Field(
        default_factory=dict, description="Custom or overriding profile definitions"
    )


class PolicyContext(BaseModel):
    """Ephemeral per-call resolution context. Never persisted."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    groups: frozenset[str] = Field(default_factory=frozenset)
    agent_id: str | None = Field(
        default=None, validation_alias=AliasChoices("agent_id", "agentId")
    )
    provider: str | None = None
    args: dict[str, Any] = Field(default_factory=dict)
    session_overrides: dict[str, PolicyAction] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("session_overrides", "sessionOverrides"),
    )
    global_overrides: dict[str, PolicyAction] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("global_overrides", "globalOverrides"),
    )


class PolicyDecision(BaseModel):
    """Result of resolving a tool name against the policy. One per call."""

    model_config = ConfigDict(frozen=True)

    action: PolicyAction
    reason: str
    source: DecisionSource
    tool_name: str = ""
    matched_rule: PolicyRule | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def allowed(self) -> bool:
        return self.action == PolicyAction.ALLOW

    @property
    def denied(self) -> bool:
        return self.action == PolicyAction.DENY

    @property
    def requires_confirmation(self) -> bool:
        return self.action == PolicyAction.CONFIRM
