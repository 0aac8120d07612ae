"""
Gatekeep — authorization and isolation for autonomous coding agents.

Decides whether a tool call or shell command may run, and runs permitted
shell commands inside the strongest available OS sandbox.

Usage:
    # CLI
    $ gatekeep check bash --arg command="npm test"
    $ gatekeep run "npm test" --yes

    # Python API
    from gatekeep import Gatekeeper

    gatekeeper = Gatekeeper.from_settings()
    decision = gatekeeper.policy.resolve("bash", {"agent_id": "coder"})
    outcome = await gatekeeper.run_shell("npm test", confirmed=True)
"""

from gatekeep.domain.permissions import PermissionCheckResult, PermissionConfig
from gatekeep.domain.policy import PolicyAction, PolicyDecision, PolicyRule
from gatekeep.domain.sandbox import SandboxExecResult, SandboxMethod, SandboxTerminalConfig
from gatekeep.domain.settings import GatekeepSettings
from gatekeep.engine.executor import SandboxedExecutor
from gatekeep.engine.gatekeeper import Gatekeeper, ShellOutcome
from gatekeep.engine.permission_manager import PermissionManager
from gatekeep.engine.policy_manager import PolicyManager
from gatekeep.engine.policy_resolver import PolicyResolver
from gatekeep.engine.tool_groups import ToolGroup

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Policy
    "PolicyAction",
    "PolicyDecision",
    "PolicyRule",
    "PolicyResolver",
    "PolicyManager",
    "ToolGroup",
    # Permissions
    "PermissionCheckResult",
    "PermissionConfig",
    "PermissionManager",
    # Sandbox
    "SandboxExecResult",
    "SandboxMethod",
    "SandboxTerminalConfig",
    "SandboxedExecutor",
    # Wiring
    "Gatekeeper",
    "GatekeepSettings",
    "ShellOutcome",
]
