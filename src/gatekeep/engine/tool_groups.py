"""
Tool group taxonomy.

A fixed, colon-hierarchical set of capability groups and the mapping
from concrete tool names to the groups they belong to. Externally
sourced tools (MCP servers, plugins) are tagged by their name prefix.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class ToolGroup(str, Enum):
    """Closed set of capability groups. A rule on a group covers its descendants."""

    FS = "group:fs"
    FS_READ = "group:fs:read"
    FS_WRITE = "group:fs:write"
    FS_DELETE = "group:fs:delete"

    RUNTIME = "group:runtime"
    RUNTIME_SHELL = "group:runtime:shell"
    RUNTIME_PROCESS = "group:runtime:process"
    RUNTIME_CODE = "group:runtime:code"

    WEB = "group:web"
    WEB_SEARCH = "group:web:search"
    WEB_FETCH = "group:web:fetch"

    GIT = "group:git"
    GIT_READ = "group:git:read"
    GIT_WRITE = "group:git:write"

    SYSTEM = "group:system"
    SYSTEM_INFO = "group:system:info"
    SYSTEM_MODIFY = "group:system:modify"

    DOCKER = "group:docker"
    KUBERNETES = "group:kubernetes"
    DANGEROUS = "group:dangerous"
    MCP = "group:mcp"
    PLUGIN = "group:plugin"


def is_descendant(child: str, parent: str) -> bool:
    """True iff `child` equals `parent` or sits below it in the hierarchy."""
    child, parent = _value(child), _value(parent)
    return child == parent or child.startswith(parent + ":")


def _value(group: str) -> str:
    return group.value if isinstance(group, ToolGroup) else group


_DEFAULT_TOOL_GROUPS: dict[str, tuple[ToolGroup, ...]] = {
    # Filesystem
    "read_file": (ToolGroup.FS_READ,),
    "view_file": (ToolGroup.FS_READ,),
    "list_files": (ToolGroup.FS_READ,),
    "list_directory": (ToolGroup.FS_READ,),
    "search": (ToolGroup.FS_READ,),
    "grep": (ToolGroup.FS_READ,),
    "glob": (ToolGroup.FS_READ,),
    "find_files": (ToolGroup.FS_READ,),
    "write_file": (ToolGroup.FS_WRITE,),
    "create_file": (ToolGroup.FS_WRITE,),
    "edit_file": (ToolGroup.FS_WRITE,),
    "multi_edit": (ToolGroup.FS_WRITE,),
    "str_replace_editor": (ToolGroup.FS_WRITE,),
    "apply_patch": (ToolGroup.FS_WRITE,),
    "delete_file": (ToolGroup.FS_DELETE,),
    "move_file": (ToolGroup.FS_WRITE, ToolGroup.FS_DELETE),
    "delete_directory": (ToolGroup.FS_DELETE, ToolGroup.DANGEROUS),
    # Runtime
    "bash": (ToolGroup.RUNTIME_SHELL,),
    "shell": (ToolGroup.RUNTIME_SHELL,),
    "terminal": (ToolGroup.RUNTIME_SHELL,),
    "run_command": (ToolGroup.RUNTIME_SHELL,),
    "execute_command": (ToolGroup.RUNTIME_SHELL,),
    "spawn_process": (ToolGroup.RUNTIME_PROCESS,),
    "kill_process": (ToolGroup.RUNTIME_PROCESS,),
    "background_task": (ToolGroup.RUNTIME_PROCESS,),
    "execute_code": (ToolGroup.RUNTIME_CODE,),
    "code_interpreter": (ToolGroup.RUNTIME_CODE,),
    "run_python": (ToolGroup.RUNTIME_CODE,),
    # Web
    "web_search": (ToolGroup.WEB_SEARCH,),
    "web_fetch": (ToolGroup.WEB_FETCH,),
    "fetch_url": (ToolGroup.WEB_FETCH,),
    "browser": (ToolGroup.WEB_FETCH,),
    # Git
    "git_status": (ToolGroup.GIT_READ,),
    "git_diff": (ToolGroup.GIT_READ,),
    "git_log": (ToolGroup.GIT_READ,),
    "git_blame": (ToolGroup.GIT_READ,),
    "git_commit": (ToolGroup.GIT_WRITE,),
    "git_checkout": (ToolGroup.GIT_WRITE,),
    "git_push": (ToolGroup.GIT_WRITE,),
    "git_reset": (ToolGroup.GIT_WRITE, ToolGroup.DANGEROUS),
    # System
    "system_info": (ToolGroup.SYSTEM_INFO,),
    "env_info": (ToolGroup.SYSTEM_INFO,),
    "install_package": (ToolGroup.SYSTEM_MODIFY,),
    "set_env": (ToolGroup.SYSTEM_MODIFY,),
    # Containers
    "docker": (ToolGroup.DOCKER,),
    "docker_run": (ToolGroup.DOCKER,),
    "kubectl": (ToolGroup.KUBERNETES,),
    "kubernetes": (ToolGroup.KUBERNETES,),
}

_DEFAULT_PREFIXES: dict[str, ToolGroup] = {
    "mcp__": ToolGroup.MCP,
    "mcp:": ToolGroup.MCP,
    "plugin__": ToolGroup.PLUGIN,
    "plugin:": ToolGroup.PLUGIN,
}


class ToolGroupRegistry:
    """
    Static tool-to-group map with a registration interface.

    Built once at startup; plugins register their tools and prefixes
    before the first resolution instead of being looked up lazily.
    """

    def __init__(
        self,
        tools: dict[str, Iterable[str]] | None = None,
        prefixes: dict[str, str] | None = None,
    ) -> None:
        self._tools: dict[str, frozenset[str]] = {
            name: frozenset(_value(g) for g in groups)
            for name, groups in (tools if tools is not None else _DEFAULT_TOOL_GROUPS).items()
        }
        self._prefixes: dict[str, str] = {
            prefix: _value(group)
            for prefix, group in (prefixes if prefixes is not None else _DEFAULT_PREFIXES).items()
        }

    def register_tool(self, tool_name: str, groups: Iterable[str]) -> None:
        """Tag `tool_name` with `groups`, adding to any existing tags."""
        existing = self._tools.get(tool_name, frozenset())
        self._tools[tool_name] = existing | {_value(g) for g in groups}

    def register_prefix(self, prefix: str, group: str) -> None:
        """Tag every tool whose name starts with `prefix` with `group`."""
        self._prefixes[prefix] = _value(group)

    def groups_of(self, tool_name: str) -> frozenset[str]:
        """
        Return the groups `tool_name` belongs to.

        Unknown tools yield an empty set, which falls through to the
        default policy action.
        """
        groups = set(self._tools.get(tool_name, ()))
        for prefix, group in self._prefixes.items():
            if tool_name.startswith(prefix):
                groups.add(group)
        return frozenset(groups)

    @property
    def tools(self) -> dict[str, frozenset[str]]:
        return dict(self._tools)


_default_registry = ToolGroupRegistry()


def groups_of(tool_name: str) -> frozenset[str]:
    """Groups for `tool_name` using the built-in map and prefix conventions."""
    return _default_registry.groups_of(tool_name)


ALL_GROUPS: tuple[str, ...] = tuple(group.value for group in ToolGroup)
