"""
Permission configuration models.

The permission document is persisted as JSON with camelCase keys. Each
section is merged field by field over the defaults below, so a partial
file on disk is always valid. Unknown fields are kept and written back.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_SECTION_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
    extra="allow",
)


class FileSystemPermissions(BaseModel):
    """Path globs and file operation flags."""

    model_config = _SECTION_CONFIG

    allowed_read_paths: list[str] = Field(default_factory=lambda: ["**/*"])
    allowed_write_paths: list[str] = Field(default_factory=lambda: ["**/*"])
    blocked_paths: list[str] = Field(
        default_factory=lambda: [
            "**/node_modules/**",
            "**/.git/objects/**",
            "**/.env",
            "**/*.pem",
            "**/*.key",
            "**/secrets/**",
            "**/credentials/**",
        ]
    )
    max_file_size: int = Field(default=10 * 1024 * 1024, ge=0, description="Bytes")
    allow_create: bool = True
    allow_delete: bool = True


class CommandPermissions(BaseModel):
    """Shell command globs and execution flags."""

    model_config = _SECTION_CONFIG

    allowed_commands: list[str] = Field(
        default_factory=lambda: [
            "git *",
            "npm *",
            "npx *",
            "yarn *",
            "pnpm *",
            "node *",
            "python *",
            "pip *",
            "cargo *",
            "go *",
            "make *",
            "ls *",
            "cat *",
            "grep *",
            "find *",
            "head *",
            "tail *",
            "wc *",
            "sort *",
            "uniq *",
            "diff *",
            "curl *",
            "wget *",
        ]
    )
    blocked_commands: list[str] = Field(
        default_factory=lambda: [
            "rm -rf /",
            "rm -rf ~",
            "rm -rf /*",
            ":(){:|:&};:",  # Fork bomb
            "> /dev/sda",
            "dd if=/dev/zero*",
            "mkfs.*",
            "chmod 777 *",
            "curl * | bash",
            "wget * | bash",
        ]
    )
    allow_arbitrary_commands: bool = False
    max_execution_time: int = Field(default=300_000, ge=0, description="Milliseconds")
    allow_sudo: bool = False


class NetworkPermissions(BaseModel):
    """Outgoing host allow/block lists."""

    model_config = _SECTION_CONFIG

    allow_outgoing: bool = True
    allowed_hosts: list[str] = Field(default_factory=lambda: ["*"])
    blocked_hosts: list[str] = Field(default_factory=list)
    allow_localhost: bool = True


class ToolPermissions(BaseModel):
    """Per-tool approval lists."""

    model_config = _SECTION_CONFIG

    require_confirmation: list[str] = Field(
        default_factory=lambda: ["bash", "str_replace_editor", "create_file", "delete_file"]
    )
    disabled: list[str] = Field(default_factory=list)
    auto_approved: list[str] = Field(
        default_factory=lambda: ["view_file", "search", "list_files"]
    )


class SafetySettings(BaseModel):
    """Global safety switches."""

    model_config = _SECTION_CONFIG

    sandbox_mode: bool = False
    confirm_destructive: bool = True
    dry_run_mode: bool = False
    max_operations_per_session: int = Field(default=1000, ge=0)


class PermissionConfig(BaseModel):
    """Complete permission document."""

    model_config = _SECTION_CONFIG

    version: str = "1.0.0"
    file_system: FileSystemPermissions = Field(default_factory=FileSystemPermissions)
    commands: CommandPermissions = Field(default_factory=CommandPermissions)
    network: NetworkPermissions = Field(default_factory=NetworkPermissions)
    tools: ToolPermissions = Field(default_factory=ToolPermissions)
    safety: SafetySettings = Field(default_factory=SafetySettings)


class PermissionCheckResult(BaseModel):
    """Outcome of a single permission check."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None
    requires_confirmation: bool = False

    @classmethod
    def deny(cls, reason: str) -> PermissionCheckResult:
        return cls(allowed=False, reason=reason)

    @classmethod
    def allow(cls, requires_confirmation: bool = False) -> PermissionCheckResult:
        return cls(allowed=True, requires_confirmation=requires_confirmation)
