"""
Policy resolver — turns a tool name and context into one decision.

Sources are consulted in a fixed precedence order, highest first; the
first source that produces a match decides:

1. Session override for the exact tool name
2. Global override for the exact tool name
3. Global rule whose group is the literal tool name
4. Provider-scoped rules (when a provider is given)
5. Agent-scoped rules (when an agent id is given)
6. Global rules matched by group descendance
7. Active profile rules (inheritance flattened)
8. Default action

Within a rule list, rules are tried by descending priority and the first
match wins. Ties keep list order.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from gatekeep.domain.exceptions import UnknownProfileError
from gatekeep.domain.policy import (
    ConditionType,
    DecisionSource,
    PolicyAction,
    PolicyCondition,
    PolicyConfig,
    PolicyContext,
    PolicyDecision,
    PolicyRule,
)
from gatekeep.engine.patterns import match_glob, search_regex
from gatekeep.engine.profiles import ProfileCatalog
from gatekeep.engine.tool_groups import ToolGroupRegistry, is_descendant

logger = logging.getLogger(__name__)

PATH_ARG_KEYS = ("path", "file", "target")
COMMAND_ARG_KEYS = ("command", "cmd")

DecisionCallback = Callable[[PolicyDecision, PolicyContext], None]


class PolicyResolver:
    """
    Resolves tool invocations against a PolicyConfig.

    The resolver is pure apart from the optional decision callback: it
    never mutates configuration and never raises from `resolve()`.
    """

    def __init__(
        self,
        config: PolicyConfig | None = None,
        registry: ToolGroupRegistry | None = None,
        on_decision: DecisionCallback | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            config: Policy document to resolve against.
            registry: Tool group registry used to tag tool names.
            on_decision: Audit callback invoked with every decision.
            clock: Local-time source for `time` conditions.
        """
        self.registry = registry or ToolGroupRegistry()
        self.on_decision = on_decision
        self._clock = clock
        self.update_config(config or PolicyConfig())

    @property
    def config(self) -> PolicyConfig:
        return self._config

    def update_config(self, config: PolicyConfig) -> None:
        """Swap in a new policy document."""
        self._config = config
        self._catalog = ProfileCatalog(config.profiles)

    @property
    def catalog(self) -> ProfileCatalog:
        return self._catalog

    def resolve(
        self,
        tool_name: str,
        context: PolicyContext | Mapping[str, Any] | None = None,
    ) -> PolicyDecision:
        """
        Resolve a tool invocation to allow, deny or confirm.

        Args:
            tool_name: Concrete tool name, e.g. "bash".
            context: Agent id, provider, args and overrides for this call.

        Returns:
            The decision with its reason and source.
        """
        ctx = self._build_context(tool_name, context)
        decision = self._resolve(ctx)

        if self.on_decision is not None:
            try:
                self.on_decision(decision, ctx)
            except Exception:
                logger.exception("Decision callback failed for tool %s", tool_name)

        return decision

    def _build_context(
        self, tool_name: str, context: PolicyContext | Mapping[str, Any] | None
    ) -> PolicyContext:
        groups = self.registry.groups_of(tool_name)

        if isinstance(context, PolicyContext):
            return context.model_copy(update={"tool_name": tool_name, "groups": groups})

        if not isinstance(context, Mapping):
            if context is not None:
                logger.warning("Ignoring non-mapping policy context for %s", tool_name)
            context = {}

        # Validated field by field; a malformed field is dropped alone
        kept: dict[str, Any] = {}
        for key, value in context.items():
            if key in ("tool_name", "groups") or not isinstance(key, str):
                continue
            if key in _OVERRIDE_KEYS:
                value = _valid_overrides(tool_name, key, value)
            candidate = {**kept, key: value}
            try:
                PolicyContext(tool_name=tool_name, groups=groups, **candidate)
            except ValidationError as e:
                logger.warning(
                    "Ignoring malformed policy context field %s for %s: %s",
                    key,
                    tool_name,
                    e.errors()[0]["msg"],
                )
                continue
            kept = candidate

        return PolicyContext(tool_name=tool_name, groups=groups, **kept)

    def _resolve(self, ctx: PolicyContext) -> PolicyDecision:
        tool = ctx.tool_name

        if tool in ctx.session_overrides:
            return self._override(ctx, ctx.session_overrides[tool], DecisionSource.SESSION)

        if tool in ctx.global_overrides:
            return self._override(ctx, ctx.global_overrides[tool], DecisionSource.GLOBAL)

        literal = [rule for rule in self._config.global_rules if rule.group == tool]
        rule = self._first_match(literal, ctx, literal_match=True)
        if rule:
            return self._from_rule(ctx, rule, DecisionSource.GLOBAL)

        if ctx.provider:
            rule = self._first_match(self._config.provider_rules.get(ctx.provider, []), ctx)
            if rule:
                return self._from_rule(ctx, rule, DecisionSource.PROVIDER)

        if ctx.agent_id:
            rule = self._first_match(self._config.agent_rules.get(ctx.agent_id, []), ctx)
            if rule:
                return self._from_rule(ctx, rule, DecisionSource.AGENT)

        rule = self._first_match(self._config.global_rules, ctx)
        if rule:
            return self._from_rule(ctx, rule, DecisionSource.GLOBAL)

        try:
            profile_rules = self._catalog.rules(self._config.active_profile)
        except UnknownProfileError:
            logger.warning("Active profile %r is unknown", self._config.active_profile)
            profile_rules = []

        rule = self._first_match(profile_rules, ctx)
        if rule:
            return self._from_rule(ctx, rule, DecisionSource.PROFILE)

        return PolicyDecision(
            action=self._config.default_action,
            reason="No matching policy rule, using default action",
            source=DecisionSource.DEFAULT,
            tool_name=tool,
        )

    def _first_match(
        self,
        rules: Iterable[PolicyRule],
        ctx: PolicyContext,
        literal_match: bool = False,
    ) -> PolicyRule | None:
        # sorted() is stable, so equal priorities keep list order
        for rule in sorted(rules, key=lambda r: r.priority, reverse=True):
            if not literal_match and not any(
                is_descendant(group, rule.group) for group in ctx.groups
            ):
                continue
            if all(self._condition_holds(cond, ctx) for cond in rule.conditions):
                return rule
        return None

    def _condition_holds(self, condition: PolicyCondition, ctx: PolicyContext) -> bool:
        try:
            result = self._evaluate(condition, ctx.args)
        except Exception:
            logger.debug("Condition %r failed to evaluate", condition, exc_info=True)
            result = False
        return not result if condition.negate else result

    def _evaluate(self, condition: PolicyCondition, args: dict[str, Any]) -> bool:
        match condition.type:
            case ConditionType.PATH:
                path = _first_string(args, PATH_ARG_KEYS)
                return path is not None and match_glob(path, condition.value)

            case ConditionType.COMMAND:
                command = _first_string(args, COMMAND_ARG_KEYS)
                return command is not None and condition.value in command

            case ConditionType.PATTERN:
                return any(
                    search_regex(condition.value, value)
                    for value in args.values()
                    if isinstance(value, str)
                )

            case ConditionType.TIME:
                return _in_time_bucket(condition.value, self._clock())

            case ConditionType.CUSTOM:
                return True

        return False

    @staticmethod
    def _override(
        ctx: PolicyContext, action: PolicyAction, source: DecisionSource
    ) -> PolicyDecision:
        return PolicyDecision(
            action=action,
            reason=f"{source.value.capitalize()} override for {ctx.tool_name}",
            source=source,
            tool_name=ctx.tool_name,
        )

    @staticmethod
    def _from_rule(
        ctx: PolicyContext, rule: PolicyRule, source: DecisionSource
    ) -> PolicyDecision:
        return PolicyDecision(
            action=rule.action,
            reason=rule.reason or f"Matched {source.value} rule for {rule.group}",
            source=source,
            tool_name=ctx.tool_name,
            matched_rule=rule,
        )


_OVERRIDE_KEYS = frozenset(
    {"session_overrides", "sessionOverrides", "global_overrides", "globalOverrides"}
)


def _valid_overrides(tool_name: str, key: str, value: Any) -> dict[str, PolicyAction]:
    """Keep the well-formed entries of an override map, dropping the rest."""
    if not isinstance(value, Mapping):
        logger.warning("Ignoring non-mapping %s for %s", key, tool_name)
        return {}

    overrides: dict[str, PolicyAction] = {}
    for name, action in value.items():
        try:
            overrides[str(name)] = PolicyAction(action)
        except ValueError:
            logger.warning("Ignoring invalid %s entry %r=%r", key, name, action)
    return overrides


def _first_string(args: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = args.get(key)
        if isinstance(value, str):
            return value
    return None


def _in_time_bucket(bucket: str, now: datetime) -> bool:
    """Evaluate a coarse time bucket against local time."""
    match bucket.strip().lower():
        case "business-hours" | "business_hours":
            return now.weekday() < 5 and 9 <= now.hour < 17
        case "weekend":
            return now.weekday() >= 5
        case "night":
            return now.hour < 6 or now.hour >= 22
    return False
