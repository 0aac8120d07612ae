"""
Engine layer for Gatekeep.

Contains the policy resolver, permission checks, sandboxed executor and
the Gatekeeper registry that wires them together.
"""

from gatekeep.engine.events import EventBus
from gatekeep.engine.executor import SandboxedExecutor
from gatekeep.engine.gatekeeper import Gatekeeper, ShellOutcome
from gatekeep.engine.permission_manager import PermissionManager
from gatekeep.engine.policy_manager import PolicyManager
from gatekeep.engine.policy_resolver import PolicyResolver
from gatekeep.engine.tool_groups import ToolGroup, ToolGroupRegistry, groups_of, is_descendant

__all__ = [
    "EventBus",
    "Gatekeeper",
    "PermissionManager",
    "PolicyManager",
    "PolicyResolver",
    "SandboxedExecutor",
    "ShellOutcome",
    "ToolGroup",
    "ToolGroupRegistry",
    "groups_of",
    "is_descendant",
]
