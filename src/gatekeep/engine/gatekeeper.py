"""
Gatekeeper — the registry object wiring the policy, permission and sandbox layers.

Constructed once at process start and passed to consumers. `run_shell()`
implements the shell control flow: resolve the tool, check the command
string, then execute it. Each stage can veto; none can override another's
denial.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from gatekeep.adapters.fs import ConfigStore
from gatekeep.adapters.otel import OtelAuditSink
from gatekeep.domain.permissions import PermissionCheckResult
from gatekeep.domain.policy import PolicyDecision
from gatekeep.domain.sandbox import SandboxExecResult, SandboxTerminalConfig
from gatekeep.domain.settings import GatekeepSettings
from gatekeep.engine.backends import MethodDetector
from gatekeep.engine.events import EventBus
from gatekeep.engine.executor import SandboxedExecutor
from gatekeep.engine.permission_manager import PermissionManager
from gatekeep.engine.policy_manager import PolicyManager
from gatekeep.engine.tool_groups import ToolGroupRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShellOutcome:
    """Result of running a shell command through every gate."""

    decision: PolicyDecision
    permission: PermissionCheckResult | None = None
    result: SandboxExecResult | None = None
    needs_confirmation: bool = False

    @property
    def executed(self) -> bool:
        return self.result is not None

    @property
    def reason(self) -> str | None:
        """Why the command did not run, if it did not."""
        if self.executed:
            return None
        if self.permission is not None and self.permission.reason:
            return self.permission.reason
        return self.decision.reason


class Gatekeeper:
    """
    Holds the shared event bus and the three authority layers.

    Usage:
        gatekeeper = Gatekeeper.from_settings(store.load_settings())
        outcome = await gatekeeper.run_shell("npm test", confirmed=True)
    """

    def __init__(
        self,
        policy: PolicyManager,
        permissions: PermissionManager,
        executor: SandboxedExecutor,
        events: EventBus,
        settings: GatekeepSettings | None = None,
    ) -> None:
        self.policy = policy
        self.permissions = permissions
        self.executor = executor
        self.events = events
        self.settings = settings or GatekeepSettings()

    @classmethod
    def from_settings(
        cls,
        settings: GatekeepSettings | None = None,
        store: ConfigStore | None = None,
        detector: MethodDetector | None = None,
        registry: ToolGroupRegistry | None = None,
    ) -> Gatekeeper:
        """
        Build a fully wired instance.

        Args:
            settings: Process settings, usually from `.gatekeep.toml`.
            store: Config file adapter shared by both managers.
            detector: Sandbox mechanism probe.
            registry: Tool group registry.
        """
        settings = settings or GatekeepSettings()
        store = store or ConfigStore()
        events = EventBus()

        if settings.telemetry_enabled:
            OtelAuditSink(service_name=settings.service_name).attach(events)

        policy = PolicyManager(
            config_path=settings.policy_file, store=store, events=events, registry=registry
        )
        permissions = PermissionManager(
            config_path=settings.permissions_file, store=store, events=events
        )
        sandbox_config = SandboxTerminalConfig().merged(settings.sandbox.as_overrides())
        executor = SandboxedExecutor(
            sandbox_config,
            detector=detector or MethodDetector(events=events),
            events=events,
        )
        return cls(policy, permissions, executor, events, settings)

    async def run_shell(
        self,
        command: str,
        tool_name: str = "bash",
        context: Mapping[str, Any] | None = None,
        confirmed: bool = False,
    ) -> ShellOutcome:
        """
        Resolve, check and execute a shell command.

        Args:
            command: Shell command string.
            tool_name: Tool issuing the command.
            context: Policy context (agent_id, provider, args, overrides).
            confirmed: The user already approved this call.

        Returns:
            The outcome; `result` is None when any gate stopped the command.
        """
        context = dict(context or {})
        args = context.get("args")
        context["args"] = {**(args if isinstance(args, Mapping) else {}), "command": command}

        decision = self.policy.resolve(tool_name, context)
        if decision.denied:
            logger.info("Policy denied %s: %s", tool_name, decision.reason)
            return ShellOutcome(decision=decision)
        if decision.requires_confirmation and not confirmed:
            return ShellOutcome(decision=decision, needs_confirmation=True)

        permission = self.permissions.check_command_permission(command)
        if not permission.allowed:
            logger.info("Permission denied for %r: %s", command, permission.reason)
            return ShellOutcome(decision=decision, permission=permission)
        if permission.requires_confirmation and not confirmed:
            return ShellOutcome(decision=decision, permission=permission, needs_confirmation=True)

        overrides = {"dry_run": True} if self.permissions.is_dry_run() else None
        result = await self.executor.execute(command, overrides)
        return ShellOutcome(decision=decision, permission=permission, result=result)

    def close(self) -> None:
        self.executor.close_all_sessions()
