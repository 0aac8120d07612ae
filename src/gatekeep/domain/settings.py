"""
Process-level settings for wiring a Gatekeeper.

Read from `.gatekeep.toml`; every key is optional.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gatekeep.domain.sandbox import SandboxMethod


class SandboxSettings(BaseModel):
    """Defaults applied on top of SandboxTerminalConfig."""

    model_config = ConfigDict(frozen=True)

    method: SandboxMethod = SandboxMethod.NAMESPACE
    network_enabled: bool = False
    timeout_ms: int = Field(default=30_000, gt=0)
    max_output_size: int = Field(default=1024 * 1024, ge=0)
    workspace_root: str | None = None

    def as_overrides(self) -> dict[str, Any]:
        overrides = self.model_dump(exclude={"workspace_root"})
        if self.workspace_root:
            overrides["workspace_root"] = os.path.abspath(os.path.expanduser(self.workspace_root))
        return overrides


class GatekeepSettings(BaseModel):
    """Top-level settings."""

    model_config = ConfigDict(frozen=True)

    permissions_file: str | None = ".gatekeep/permissions.json"
    policy_file: str | None = "~/.gatekeep/tool-policy.json"
    sandbox: SandboxSettings = Field(default_factory=SandboxSettings)
    log_level: str = "WARNING"
    telemetry_enabled: bool = False
    service_name: str = "gatekeep"

    @classmethod
    def from_toml(cls, data: dict[str, Any]) -> GatekeepSettings:
        """
        Build settings from the sectioned TOML layout.

        Raises:
            ValueError: A section is not a table, or a value fails validation.
        """
        values: dict[str, Any] = {}

        permissions = _table(data, "permissions")
        if "file" in permissions:
            values["permissions_file"] = permissions["file"]
        policy = _table(data, "policy")
        if "file" in policy:
            values["policy_file"] = policy["file"]
        if "sandbox" in data:
            values["sandbox"] = SandboxSettings(**_table(data, "sandbox"))
        logging_section = _table(data, "logging")
        if "level" in logging_section:
            values["log_level"] = str(logging_section["level"]).upper()

        telemetry = _table(data, "telemetry")
        if "enabled" in telemetry:
            values["telemetry_enabled"] = bool(telemetry["enabled"])
        if "service_name" in telemetry:
            values["service_name"] = telemetry["service_name"]

        return cls(**values)


def _table(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{name}] must be a table, got {type(section).__name__}")
    return section
