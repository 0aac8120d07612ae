"""
Built-in policy profiles.

- minimal: Most restrictive, read-only operations
- coding: Standard development workflow
- messaging: Communication and web-focused
- full: Full access with confirmation for dangerous ops

`group:dangerous` rules carry priority 100 so they win over the
broader group rules in every profile.
"""

from __future__ import annotations

from gatekeep.domain.exceptions import UnknownProfileError
from gatekeep.domain.policy import PolicyAction, PolicyRule, ProfileDefinition
from gatekeep.engine.tool_groups import ToolGroup, is_descendant

ALLOW = PolicyAction.ALLOW
DENY = PolicyAction.DENY
CONFIRM = PolicyAction.CONFIRM


def _rule(group: ToolGroup, action: PolicyAction, reason: str, priority: int = 10) -> PolicyRule:
    return PolicyRule(group=group.value, action=action, reason=reason, priority=priority)


MINIMAL_PROFILE = ProfileDefinition(
    name="minimal",
    description="Read-only mode. No file modifications or command execution.",
    rules=[
        _rule(ToolGroup.FS_READ, ALLOW, "Read operations are safe"),
        _rule(ToolGroup.FS_WRITE, DENY, "Write operations not allowed in minimal mode"),
        _rule(ToolGroup.FS_DELETE, DENY, "Delete operations not allowed in minimal mode"),
        _rule(ToolGroup.RUNTIME, DENY, "Runtime operations not allowed in minimal mode"),
        _rule(ToolGroup.WEB_SEARCH, ALLOW, "Web search is read-only"),
        _rule(ToolGroup.WEB_FETCH, DENY, "Web fetch not allowed in minimal mode"),
        _rule(ToolGroup.GIT_READ, ALLOW, "Git read operations are safe"),
        _rule(ToolGroup.GIT_WRITE, DENY, "Git write operations not allowed in minimal mode"),
        _rule(
            ToolGroup.DANGEROUS,
            DENY,
            "Dangerous operations not allowed in minimal mode",
            priority=100,
        ),
        _rule(ToolGroup.SYSTEM_INFO, ALLOW, "System info is read-only"),
        _rule(ToolGroup.SYSTEM_MODIFY, DENY, "System modifications not allowed in minimal mode"),
        _rule(ToolGroup.DOCKER, DENY, "Docker operations not allowed in minimal mode"),
        _rule(ToolGroup.KUBERNETES, DENY, "Kubernetes operations not allowed in minimal mode"),
        _rule(ToolGroup.MCP, CONFIRM, "MCP tools require explicit confirmation in minimal mode"),
        _rule(
            ToolGroup.PLUGIN, CONFIRM, "Plugin tools require explicit confirmation in minimal mode"
        ),
    ],
)

# Shell commands are allowed here because they still pass the command
# permission check and run inside the sandbox.
CODING_PROFILE = ProfileDefinition(
    name="coding",
    description="Standard development. File edits and sandboxed shell allowed.",
    rules=[
        _rule(ToolGroup.FS_READ, ALLOW, "Read operations needed for development"),
        _rule(ToolGroup.FS_WRITE, ALLOW, "File edits allowed for coding workflow"),
        _rule(ToolGroup.FS_DELETE, CONFIRM, "File deletion requires confirmation"),
        _rule(ToolGroup.RUNTIME_SHELL, ALLOW, "Sandboxed shell commands allowed for development"),
        _rule(ToolGroup.RUNTIME_CODE, CONFIRM, "Code execution requires confirmation"),
        _rule(ToolGroup.RUNTIME_PROCESS, CONFIRM, "Process management requires confirmation"),
        _rule(ToolGroup.WEB_SEARCH, ALLOW, "Web search useful for development"),
        _rule(ToolGroup.WEB_FETCH, ALLOW, "Web fetch useful for documentation"),
        _rule(ToolGroup.GIT_READ, ALLOW, "Git read operations needed for development"),
        _rule(ToolGroup.GIT_WRITE, CONFIRM, "Git write operations require confirmation"),
        _rule(ToolGroup.SYSTEM_INFO, ALLOW, "System info useful for development"),
        _rule(ToolGroup.SYSTEM_MODIFY, CONFIRM, "System modifications require confirmation"),
        _rule(ToolGroup.DOCKER, CONFIRM, "Docker operations require confirmation"),
        _rule(ToolGroup.KUBERNETES, CONFIRM, "Kubernetes operations require confirmation"),
        _rule(
            ToolGroup.DANGEROUS,
            CONFIRM,
            "Dangerous operations always require confirmation",
            priority=100,
        ),
        _rule(ToolGroup.MCP, CONFIRM, "MCP tools require confirmation"),
        _rule(ToolGroup.PLUGIN, CONFIRM, "Plugin tools require confirmation"),
    ],
)

MESSAGING_PROFILE = ProfileDefinition(
    name="messaging",
    description="Communication focus. Web access allowed, limited file operations.",
    rules=[
        _rule(ToolGroup.FS_READ, ALLOW, "Read operations allowed for context gathering"),
        _rule(ToolGroup.FS_WRITE, CONFIRM, "File writes require confirmation in messaging mode"),
        _rule(ToolGroup.FS_DELETE, DENY, "File deletion not needed for messaging"),
        _rule(ToolGroup.RUNTIME_SHELL, CONFIRM, "Shell commands require confirmation"),
        _rule(ToolGroup.RUNTIME_CODE, DENY, "Code execution not needed for messaging"),
        _rule(ToolGroup.RUNTIME_PROCESS, DENY, "Process management not needed for messaging"),
        _rule(ToolGroup.WEB, ALLOW, "Web operations are core to messaging"),
        _rule(ToolGroup.GIT_READ, ALLOW, "Git read useful for context"),
        _rule(ToolGroup.GIT_WRITE, DENY, "Git write not needed for messaging"),
        _rule(ToolGroup.SYSTEM_INFO, ALLOW, "System info useful for context"),
        _rule(ToolGroup.SYSTEM_MODIFY, DENY, "System modifications not needed for messaging"),
        _rule(ToolGroup.DOCKER, DENY, "Docker not needed for messaging"),
        _rule(ToolGroup.KUBERNETES, DENY, "Kubernetes not needed for messaging"),
        _rule(
            ToolGroup.DANGEROUS,
            DENY,
            "Dangerous operations not allowed in messaging mode",
            priority=100,
        ),
        _rule(ToolGroup.MCP, CONFIRM, "MCP tools require confirmation"),
        _rule(ToolGroup.PLUGIN, CONFIRM, "Plugin tools require confirmation"),
    ],
)

FULL_PROFILE = ProfileDefinition(
    name="full",
    description="Full access. All operations allowed, dangerous ones require confirmation.",
    rules=[
        _rule(ToolGroup.FS, ALLOW, "Full filesystem access granted"),
        _rule(ToolGroup.RUNTIME, ALLOW, "Full runtime access granted"),
        _rule(ToolGroup.WEB, ALLOW, "Full web access granted"),
        _rule(ToolGroup.GIT, ALLOW, "Full git access granted"),
        _rule(ToolGroup.SYSTEM, ALLOW, "Full system access granted"),
        _rule(ToolGroup.DOCKER, ALLOW, "Docker access granted"),
        _rule(ToolGroup.KUBERNETES, ALLOW, "Kubernetes access granted"),
        _rule(
            ToolGroup.DANGEROUS,
            CONFIRM,
            "Dangerous operations always require confirmation for safety",
            priority=100,
        ),
        _rule(ToolGroup.MCP, ALLOW, "MCP tools allowed in full mode"),
        _rule(ToolGroup.PLUGIN, ALLOW, "Plugin tools allowed in full mode"),
    ],
)

BUILTIN_PROFILES: dict[str, ProfileDefinition] = {
    profile.name: profile
    for profile in (MINIMAL_PROFILE, CODING_PROFILE, MESSAGING_PROFILE, FULL_PROFILE)
}

# Groups shown in the profile comparison matrix.
COMPARISON_GROUPS: tuple[ToolGroup, ...] = (
    ToolGroup.FS_READ,
    ToolGroup.FS_WRITE,
    ToolGroup.FS_DELETE,
    ToolGroup.RUNTIME_SHELL,
    ToolGroup.WEB,
    ToolGroup.GIT_READ,
    ToolGroup.GIT_WRITE,
    ToolGroup.DANGEROUS,
)


class ProfileCatalog:
    """
    Lookup over built-in profiles plus any custom definitions.

    Custom definitions with a built-in name replace that profile.
    """

    def __init__(self, custom: dict[str, ProfileDefinition] | None = None) -> None:
        self._profiles = {**BUILTIN_PROFILES, **(custom or {})}

    def names(self) -> list[str]:
        return list(self._profiles)

    def get(self, name: str) -> ProfileDefinition:
        try:
            return self._profiles[name]
        except KeyError:
            raise UnknownProfileError(name, self.names()) from None

    def rules(self, name: str) -> list[PolicyRule]:
        """
        Rules for `name` with inheritance flattened.

        Parent rules whose group the child does not already cover are
        appended with their priority lowered by one. Inheritance is a
        single level: the parent's own `inherits` is not followed.
        """
        profile = self.get(name)
        rules = list(profile.rules)

        if profile.inherits and profile.inherits != name:
            child_groups = {rule.group for rule in rules}
            for rule in self.get(profile.inherits).rules:
                if rule.group not in child_groups:
                    rules.append(rule.model_copy(update={"priority": rule.priority - 1}))

        return rules

    def comparison(
        self, groups: tuple[str, ...] = COMPARISON_GROUPS
    ) -> dict[str, dict[str, PolicyAction]]:
        """
        Matrix of group -> profile -> action.

        Uses the first rule in each profile whose group covers the row
        group; groups with no covering rule show as CONFIRM.
        """
        matrix: dict[str, dict[str, PolicyAction]] = {}
        for group in groups:
            key = group.value if isinstance(group, ToolGroup) else group
            row: dict[str, PolicyAction] = {}
            for name in self.names():
                match = next(
                    (rule for rule in self.rules(name) if is_descendant(key, rule.group)),
                    None,
                )
                row[name] = match.action if match else PolicyAction.CONFIRM
            matrix[key] = row
        return matrix
