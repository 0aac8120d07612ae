"""
Sandbox domain models.

Configuration and result types for the sandboxed executor. Results are
always returned, never raised: validation rejections, spawn failures and
timeouts are all encoded in SandboxExecResult.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from anyio.abc import Process


class SandboxMethod(str, Enum):
    """OS isolation mechanisms the executor knows how to drive."""

    NONE = "none"
    NAMESPACE = "namespace"  # unshare(1)
    FIREJAIL = "firejail"
    BUBBLEWRAP = "bubblewrap"  # bwrap(1)
    DOCKER = "docker"


# Strongest isolation first; used when the requested method is unavailable.
METHOD_PRIORITY: tuple[SandboxMethod, ...] = (
    SandboxMethod.BUBBLEWRAP,
    SandboxMethod.FIREJAIL,
    SandboxMethod.NAMESPACE,
    SandboxMethod.DOCKER,
    SandboxMethod.NONE,
)


def _default_shell() -> str:
    return "/bin/bash" if os.path.exists("/bin/bash") else "/bin/sh"


def _default_blocked_paths() -> list[str]:
    home = Path.home()
    sensitive = [".ssh", ".gnupg", ".aws", ".config/gcloud", ".kube", ".docker"]
    return (
        [str(home / name) for name in sensitive]
        + [f"~/{name}" for name in sensitive]
        + ["/etc/passwd", "/etc/shadow"]
    )


class SandboxTerminalConfig(BaseModel):
    """Isolation preference, filesystem layout and resource ceilings."""

    model_config = ConfigDict(frozen=True)

    method: SandboxMethod = Field(default=SandboxMethod.NAMESPACE)
    network_enabled: bool = Field(default=False)
    allowed_domains: list[str] = Field(default_factory=list)

    workspace_root: str = Field(default_factory=os.getcwd)
    read_only_paths: list[str] = Field(
        default_factory=lambda: ["/usr", "/bin", "/lib", "/lib64", "/etc"]
    )
    allowed_write_paths: list[str] = Field(default_factory=list)
    blocked_paths: list[str] = Field(default_factory=_default_blocked_paths)

    max_memory_mb: int = Field(default=512, gt=0)
    max_cpu_percent: int = Field(default=50, gt=0, le=100 * 64)
    max_processes: int = Field(default=10, gt=0)
    timeout_ms: int = Field(default=30_000, gt=0)
    max_output_size: int = Field(default=1024 * 1024, ge=0, description="Bytes per stream")

    shell: str = Field(default_factory=_default_shell)
    env: dict[str, str] = Field(default_factory=dict)
    docker_image: str = Field(default="alpine:latest")
    dry_run: bool = Field(default=False, description="Report the invocation, do not spawn")

    def merged(self, overrides: dict[str, Any] | None) -> SandboxTerminalConfig:
        """Return a validated copy with `overrides` applied."""
        if not overrides:
            return self
        return SandboxTerminalConfig.model_validate({**self.model_dump(), **overrides})


class CommandValidation(BaseModel):
    """Result of screening a command before it is spawned."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    reason: str | None = None


class SandboxExecResult(BaseModel):
    """Structured outcome of one execution. Always returned, even on failure."""

    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    timed_out: bool = False
    killed: bool = False
    sandboxed: bool = False
    method: str = SandboxMethod.NONE.value
    duration: float = Field(default=0.0, ge=0, description="Milliseconds")

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass
class SandboxSession:
    """
    A long-lived logical terminal.

    `cwd` always stays inside `config.workspace_root`; the executor's `cd`
    handling rejects any move that would escape it without touching state.
    """

    id: str
    config: SandboxTerminalConfig
    cwd: str
    start_time: float = field(default_factory=time.time)
    command_history: list[str] = field(default_factory=list)
    processes: list[Process] = field(default_factory=list, repr=False)
