"""
Policy manager — owns the policy document and the resolver.

Coordinates resolution with in-memory overrides, persistence of the
policy document, profile switching, rule management and audit events.
One instance is constructed per process and passed to its consumers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from gatekeep.adapters.fs import ConfigStore
from gatekeep.domain.events import AuditEvent
from gatekeep.domain.exceptions import ConfigError, PolicyError
from gatekeep.domain.policy import (
    PolicyAction,
    PolicyConfig,
    PolicyContext,
    PolicyDecision,
    PolicyRule,
    ProfileDefinition,
)
from gatekeep.engine.events import EventBus
from gatekeep.engine.policy_resolver import PolicyResolver
from gatekeep.engine.tool_groups import ToolGroupRegistry

logger = logging.getLogger(__name__)

MAX_AUDIT_ENTRIES = 1000


def _camel_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    """Rename snake_case field names to their document aliases."""
    return {
        to_camel(key) if key in PolicyConfig.model_fields else key: value
        for key, value in data.items()
    }


def _mapping_or_empty(value: Any) -> Mapping[str, Any]:
    if value is None or isinstance(value, Mapping):
        return value or {}
    logger.warning("Ignoring non-mapping override map %r", value)
    return {}


@dataclass(frozen=True)
class AuditEntry:
    """One recorded decision."""

    timestamp: datetime
    decision: PolicyDecision
    context: PolicyContext


def merge_policy_config(loaded: Mapping[str, Any]) -> PolicyConfig:
    """
    Merge a loaded policy document over the defaults, key by key.

    A key whose value fails validation keeps its default and is logged;
    the rest of the document still applies.
    """
    merged: dict[str, Any] = PolicyConfig().model_dump(by_alias=True)
    for key, value in _camel_keys(loaded).items():
        candidate = {**merged, key: value}
        try:
            PolicyConfig.model_validate(candidate)
        except ValidationError as e:
            logger.warning("Ignoring invalid policy field %r: %s", key, e.errors()[0]["msg"])
            continue
        merged = candidate
    return PolicyConfig.model_validate(merged)


class PolicyManager:
    """
    Central manager for tool policies.

    Usage:
        manager = PolicyManager(config_path="~/.gatekeep/tool-policy.json")
        decision = manager.check_tool("bash", {"command": "npm install"})
        if decision.allowed:
            ...
        elif decision.requires_confirmation:
            ...
    """

    def __init__(
        self,
        config_path: Path | str | None = None,
        store: ConfigStore | None = None,
        events: EventBus | None = None,
        registry: ToolGroupRegistry | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the policy manager.

        Args:
            config_path: Policy document location. None keeps the policy in memory only.
            store: Config file adapter.
            events: Bus receiving audit events.
            registry: Tool group registry shared with other consumers.
            clock: Local-time source for `time` conditions.
        """
        self.config_path = config_path
        self.store = store or ConfigStore()
        self.events = events or EventBus()
        self._session_overrides: dict[str, PolicyAction] = {}
        self._global_overrides: dict[str, PolicyAction] = {}
        self._audit_log: list[AuditEntry] = []

        self.resolver = PolicyResolver(
            self._load_config(),
            registry=registry,
            on_decision=self._record_decision,
            clock=clock,
        )

    # --- Core API ---

    def resolve(
        self,
        tool_name: str,
        context: PolicyContext | Mapping[str, Any] | None = None,
    ) -> PolicyDecision:
        """
        Resolve `tool_name` with the manager's overrides applied.

        Overrides passed in `context` take precedence over the ones held
        by the manager.
        """
        if isinstance(context, PolicyContext):
            data = context.model_dump(exclude={"tool_name", "groups"})
        elif isinstance(context, Mapping):
            data = dict(context)
        else:
            data = {}

        data["session_overrides"] = {
            **self._session_overrides,
            **_mapping_or_empty(
                data.pop("sessionOverrides", None) or data.get("session_overrides")
            ),
        }
        data["global_overrides"] = {
            **self._global_overrides,
            **_mapping_or_empty(
                data.pop("globalOverrides", None) or data.get("global_overrides")
            ),
        }
        return self.resolver.resolve(tool_name, data)

    def check_tool(
        self,
        tool_name: str,
        args: dict[str, Any] | None = None,
        agent_id: str | None = None,
        provider: str | None = None,
    ) -> PolicyDecision:
        """Resolve a tool call given its arguments."""
        return self.resolve(
            tool_name, {"args": args or {}, "agent_id": agent_id, "provider": provider}
        )

    def is_allowed(self, tool_name: str, args: dict[str, Any] | None = None) -> bool:
        return self.check_tool(tool_name, args).allowed

    def requires_confirmation(self, tool_name: str, args: dict[str, Any] | None = None) -> bool:
        return self.check_tool(tool_name, args).requires_confirmation

    def is_denied(self, tool_name: str, args: dict[str, Any] | None = None) -> bool:
        return self.check_tool(tool_name, args).denied

    # --- Profiles ---

    @property
    def config(self) -> PolicyConfig:
        return self.resolver.config

    def get_profile(self) -> str:
        return self.config.active_profile

    def set_profile(self, profile: str) -> None:
        """
        Switch the active profile.

        Raises:
            UnknownProfileError: If `profile` is not defined.
        """
        self.resolver.catalog.get(profile)
        previous = self.config.active_profile
        self._apply(self.config.model_copy(update={"active_profile": profile}))
        logger.info("Policy profile changed from %s to %s", previous, profile)
        self.events.emit(AuditEvent.PROFILE_CHANGED, {"from": previous, "to": profile})

    def profile_info(self, profile: str | None = None) -> ProfileDefinition:
        return self.resolver.catalog.get(profile or self.config.active_profile)

    def available_profiles(self) -> list[str]:
        return self.resolver.catalog.names()

    # --- Overrides ---

    def set_session_override(self, tool_name: str, action: PolicyAction | str) -> None:
        self._session_overrides[tool_name] = PolicyAction(action)

    def clear_session_override(self, tool_name: str) -> None:
        self._session_overrides.pop(tool_name, None)

    def clear_all_session_overrides(self) -> None:
        self._session_overrides.clear()

    @property
    def session_overrides(self) -> dict[str, PolicyAction]:
        return dict(self._session_overrides)

    def set_global_override(self, tool_name: str, action: PolicyAction | str) -> None:
        self._global_overrides[tool_name] = PolicyAction(action)

    def clear_global_override(self, tool_name: str) -> None:
        self._global_overrides.pop(tool_name, None)

    @property
    def global_overrides(self) -> dict[str, PolicyAction]:
        return dict(self._global_overrides)

    # --- Rules ---

    def add_global_rule(self, rule: PolicyRule | Mapping[str, Any]) -> PolicyRule:
        rule = self._coerce_rule(rule)
        self._apply(self.config.model_copy(update={"global_rules": [*self.config.global_rules, rule]}))
        self.events.emit(AuditEvent.RULE_ADDED, {"rule": rule.model_dump(mode="json"), "source": "global"})
        return rule

    def add_agent_rule(self, agent_id: str, rule: PolicyRule | Mapping[str, Any]) -> PolicyRule:
        rule = self._coerce_rule(rule)
        agent_rules = dict(self.config.agent_rules)
        agent_rules[agent_id] = [*agent_rules.get(agent_id, []), rule]
        self._apply(self.config.model_copy(update={"agent_rules": agent_rules}))
        self.events.emit(
            AuditEvent.RULE_ADDED,
            {"rule": rule.model_dump(mode="json"), "source": "agent", "agent_id": agent_id},
        )
        return rule

    def add_provider_rule(
        self, provider_id: str, rule: PolicyRule | Mapping[str, Any]
    ) -> PolicyRule:
        rule = self._coerce_rule(rule)
        provider_rules = dict(self.config.provider_rules)
        provider_rules[provider_id] = [*provider_rules.get(provider_id, []), rule]
        self._apply(self.config.model_copy(update={"provider_rules": provider_rules}))
        self.events.emit(
            AuditEvent.RULE_ADDED,
            {"rule": rule.model_dump(mode="json"), "source": "provider", "provider": provider_id},
        )
        return rule

    def remove_global_rule(self, group: str) -> bool:
        """Remove the first global rule on `group`. Returns False if none exists."""
        rules = list(self.config.global_rules)
        for index, rule in enumerate(rules):
            if rule.group == group:
                del rules[index]
                self._apply(self.config.model_copy(update={"global_rules": rules}))
                self.events.emit(AuditEvent.RULE_REMOVED, {"group": group, "source": "global"})
                return True
        return False

    @property
    def global_rules(self) -> list[PolicyRule]:
        return list(self.config.global_rules)

    # --- Tool registration ---

    def register_tool(self, tool_name: str, groups: Iterable[str]) -> None:
        self.resolver.registry.register_tool(tool_name, groups)

    def tool_groups(self, tool_name: str) -> frozenset[str]:
        return self.resolver.registry.groups_of(tool_name)

    # --- Configuration ---

    def update_config(self, updates: Mapping[str, Any]) -> None:
        """
        Apply partial updates (snake_case or camelCase keys) and persist.

        Raises:
            PolicyError: If the updated document is invalid.
        """
        data = {**self.config.model_dump(by_alias=True), **_camel_keys(updates)}
        try:
            config = PolicyConfig.model_validate(data)
        except ValidationError as e:
            raise PolicyError(f"Invalid policy update: {e}") from e
        self._apply(config)

    def reset_config(self) -> None:
        self._apply(PolicyConfig())

    def set_audit_log(self, enabled: bool) -> None:
        self._apply(self.config.model_copy(update={"audit_log": enabled}))

    def get_audit_log(self) -> list[AuditEntry]:
        return list(self._audit_log)

    def clear_audit_log(self) -> None:
        self._audit_log.clear()

    def status(self) -> dict[str, Any]:
        """Summary used by the status renderer."""
        profile = self.profile_info()
        return {
            "profile": profile.name,
            "description": profile.description,
            "global_rules": len(self.config.global_rules),
            "agent_rules": len(self.config.agent_rules),
            "provider_rules": len(self.config.provider_rules),
            "session_overrides": len(self._session_overrides),
            "global_overrides": len(self._global_overrides),
            "audit_log": self.config.audit_log,
            "default_action": self.config.default_action.value,
        }

    # --- Internals ---

    def _apply(self, config: PolicyConfig) -> None:
        self.resolver.update_config(config)
        self._save_config()

    def _record_decision(self, decision: PolicyDecision, context: PolicyContext) -> None:
        payload = {
            "tool_name": decision.tool_name,
            "action": decision.action.value,
            "source": decision.source.value,
            "reason": decision.reason,
            "groups": sorted(context.groups),
            "agent_id": context.agent_id,
            "provider": context.provider,
        }

        if self.config.audit_log:
            self._audit_log.append(
                AuditEntry(timestamp=decision.timestamp, decision=decision, context=context)
            )
            del self._audit_log[:-MAX_AUDIT_ENTRIES]

        self.events.emit(AuditEvent.DECISION, payload)
        if decision.denied:
            self.events.emit(AuditEvent.DENIED, payload)

    @staticmethod
    def _coerce_rule(rule: PolicyRule | Mapping[str, Any]) -> PolicyRule:
        if isinstance(rule, PolicyRule):
            return rule
        try:
            return PolicyRule.model_validate(rule)
        except ValidationError as e:
            raise PolicyError(f"Invalid policy rule: {e}") from e

    def _load_config(self) -> PolicyConfig:
        if self.config_path is None:
            return PolicyConfig()

        try:
            loaded = self.store.read_document(self.config_path)
        except ConfigError as e:
            logger.warning("Falling back to default policy: %s", e.message)
            self.events.emit(AuditEvent.POLICY_ERROR, {"error": e.message})
            return PolicyConfig()

        if loaded is None:
            return PolicyConfig()
        return merge_policy_config(loaded)

    def _save_config(self) -> None:
        if self.config_path is None:
            return

        try:
            path = self.store.write_document(
                self.config_path, self.config.model_dump(mode="json", by_alias=True)
            )
        except OSError as e:
            logger.warning("Could not save policy config to %s: %s", self.config_path, e)
            self.events.emit(AuditEvent.POLICY_ERROR, {"error": str(e)})
            return

        logger.debug("Saved policy config to %s", path)
        self.events.emit(AuditEvent.CONFIG_SAVED, {"path": str(path), "document": "policy"})
