"""
Permission manager — file-driven checks for paths, commands, tools and hosts.

Each checker returns a PermissionCheckResult; none of them raise. The
manager also keeps the per-session operation counter consulted by write
checks.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from gatekeep.adapters.fs import ConfigStore
from gatekeep.domain.events import AuditEvent
from gatekeep.domain.exceptions import ConfigError
from gatekeep.domain.permissions import (
    CommandPermissions,
    FileSystemPermissions,
    NetworkPermissions,
    PermissionCheckResult,
    PermissionConfig,
    SafetySettings,
    ToolPermissions,
)
from gatekeep.engine.events import EventBus
from gatekeep.engine.patterns import match_any_glob, match_command

logger = logging.getLogger(__name__)

LOCALHOST_NAMES = frozenset({"localhost", "127.0.0.1", "::1"})

# Section key in the document -> model
_SECTIONS: dict[str, type[BaseModel]] = {
    "fileSystem": FileSystemPermissions,
    "commands": CommandPermissions,
    "network": NetworkPermissions,
    "tools": ToolPermissions,
    "safety": SafetySettings,
}


def _merge_section(
    name: str, model: type[BaseModel], base: BaseModel, loaded: Any
) -> BaseModel:
    if loaded is None:
        return base
    if not isinstance(loaded, Mapping):
        logger.warning("Permission section %r is not a mapping, using defaults", name)
        return base

    merged = base.model_dump(by_alias=True)
    for key, value in loaded.items():
        if key in model.model_fields:
            key = to_camel(key)
        candidate = {**merged, key: value}
        try:
            model.model_validate(candidate)
        except ValidationError as e:
            logger.warning(
                "Ignoring invalid permission field %s.%s: %s", name, key, e.errors()[0]["msg"]
            )
            continue
        merged = candidate
    return model.model_validate(merged)


def merge_permission_config(
    loaded: Mapping[str, Any], base: PermissionConfig | None = None
) -> PermissionConfig:
    """
    Merge a (partial) permission document over `base`, field by field.

    Accepts camelCase or snake_case section keys. Invalid fields keep the
    value from `base`; unknown fields are preserved.
    """
    base = base or PermissionConfig()
    sections: dict[str, Any] = {}

    for alias, model in _SECTIONS.items():
        field_name = "file_system" if alias == "fileSystem" else alias
        current = getattr(base, field_name)
        value = loaded.get(alias, loaded.get(field_name))
        sections[field_name] = _merge_section(alias, model, current, value)

    extras = dict(base.model_extra or {})
    extras.update(
        (key, value)
        for key, value in loaded.items()
        if key not in _SECTIONS and key not in {"file_system", "version"}
    )
    version = loaded.get("version", base.version)
    if not isinstance(version, str):
        version = base.version

    return PermissionConfig(version=version, **sections, **extras)


def _normalize_host(host: str) -> str:
    host = host.strip().lower()
    if host.startswith("["):
        # [::1]:8080
        return host[1:].split("]", 1)[0]
    if host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host


def _host_matches(host: str, entry: str) -> bool:
    entry = _normalize_host(entry)
    if entry == "*" or host == entry:
        return True
    if host.endswith("." + entry):
        return True
    return fnmatch.fnmatchcase(host, entry)


class PermissionManager:
    """
    Configuration-driven permission checks.

    Usage:
        permissions = PermissionManager(config_path=".gatekeep/permissions.json")
        result = permissions.check_command_permission("npm install")
        if not result.allowed:
            print(result.reason)
    """

    def __init__(
        self,
        config_path: Path | str | None = None,
        store: ConfigStore | None = None,
        events: EventBus | None = None,
        config: PermissionConfig | None = None,
    ) -> None:
        """
        Initialize the permission manager.

        Args:
            config_path: Permission document location. None keeps config in memory only.
            store: Config file adapter.
            events: Bus receiving audit events.
            config: Explicit starting config; skips loading from disk.
        """
        self.config_path = config_path
        self.store = store or ConfigStore()
        self.events = events or EventBus()
        self.operation_count = 0
        self._config = config if config is not None else self._load_config()

    # --- Filesystem ---

    def check_read_permission(self, path: str) -> PermissionCheckResult:
        fs = self._config.file_system

        if match_any_glob(path, fs.blocked_paths):
            return PermissionCheckResult.deny(f"Path is blocked: {path}")

        if not match_any_glob(path, fs.allowed_read_paths):
            return PermissionCheckResult.deny(f"Path not in allowed read paths: {path}")

        return PermissionCheckResult.allow()

    def check_write_permission(
        self, path: str, is_create: bool = False, size: int | None = None
    ) -> PermissionCheckResult:
        """
        Check a write to `path`.

        Args:
            path: Target path.
            is_create: True when the file does not exist yet.
            size: Size of the content to write, in bytes, if known.
        """
        fs = self._config.file_system
        safety = self._config.safety

        if self.operation_count >= safety.max_operations_per_session:
            return PermissionCheckResult.deny(
                f"Maximum operations per session reached ({safety.max_operations_per_session})"
            )

        if match_any_glob(path, fs.blocked_paths):
            return PermissionCheckResult.deny(f"Path is blocked: {path}")

        if not match_any_glob(path, fs.allowed_write_paths):
            return PermissionCheckResult.deny(f"Path not in allowed write paths: {path}")

        if is_create and not fs.allow_create:
            return PermissionCheckResult.deny("File creation is disabled")

        if size is not None and size > fs.max_file_size:
            return PermissionCheckResult.deny(
                f"File size {size} exceeds limit of {fs.max_file_size} bytes"
            )

        return PermissionCheckResult.allow(requires_confirmation=safety.confirm_destructive)

    def check_delete_permission(self, path: str) -> PermissionCheckResult:
        fs = self._config.file_system

        if not fs.allow_delete:
            return PermissionCheckResult.deny("File deletion is disabled")

        if match_any_glob(path, fs.blocked_paths):
            return PermissionCheckResult.deny(f"Path is blocked: {path}")

        if not match_any_glob(path, fs.allowed_write_paths):
            return PermissionCheckResult.deny(f"Path not in allowed write paths: {path}")

        return PermissionCheckResult.allow(
            requires_confirmation=self._config.safety.confirm_destructive
        )

    # --- Commands ---

    def check_command_permission(self, command: str) -> PermissionCheckResult:
        """
        Check a shell command string.

        Blocked patterns always win; `sudo` needs `allowSudo`; with
        `allowArbitraryCommands` anything else passes, otherwise the
        command must match an allowed pattern.
        """
        commands = self._config.commands
        command = command.strip()

        for pattern in commands.blocked_commands:
            if match_command(command, pattern):
                return PermissionCheckResult.deny(f"Command matches blocked pattern: {pattern}")

        if (command == "sudo" or command.startswith("sudo ")) and not commands.allow_sudo:
            return PermissionCheckResult.deny("sudo commands are not allowed")

        confirm = self._config.safety.confirm_destructive

        if commands.allow_arbitrary_commands:
            return PermissionCheckResult.allow(requires_confirmation=confirm)

        if any(match_command(command, pattern) for pattern in commands.allowed_commands):
            return PermissionCheckResult.allow(requires_confirmation=confirm)

        return PermissionCheckResult.deny("Command not in allowed list")

    # --- Tools ---

    def check_tool_permission(self, tool_name: str) -> PermissionCheckResult:
        tools = self._config.tools

        if tool_name in tools.disabled:
            return PermissionCheckResult.deny(f"Tool is disabled: {tool_name}")

        if tool_name in tools.auto_approved:
            return PermissionCheckResult.allow()

        return PermissionCheckResult.allow(
            requires_confirmation=tool_name in tools.require_confirmation
        )

    # --- Network ---

    def check_network_permission(self, host: str) -> PermissionCheckResult:
        network = self._config.network
        normalized = _normalize_host(host)

        if not network.allow_outgoing:
            return PermissionCheckResult.deny("Outgoing network access is disabled")

        if normalized in LOCALHOST_NAMES:
            if network.allow_localhost:
                return PermissionCheckResult.allow()
            return PermissionCheckResult.deny("Localhost access is disabled")

        if any(_host_matches(normalized, entry) for entry in network.blocked_hosts):
            return PermissionCheckResult.deny(f"Host is blocked: {host}")

        if any(_host_matches(normalized, entry) for entry in network.allowed_hosts):
            return PermissionCheckResult.allow()

        return PermissionCheckResult.deny(f"Host not in allowed list: {host}")

    # --- Operation counter ---

    def record_operation(self) -> int:
        """Increment the session operation counter and return the new value."""
        self.operation_count += 1
        self.events.emit(AuditEvent.OPERATION_RECORDED, {"count": self.operation_count})
        return self.operation_count

    def reset_operation_count(self) -> None:
        self.operation_count = 0

    # --- Safety modes ---

    def enable_sandbox(self) -> None:
        """Turn on sandbox mode: no arbitrary commands, no sudo, no deletes."""
        config = self._config
        self._config = config.model_copy(
            update={
                "safety": config.safety.model_copy(
                    update={"sandbox_mode": True, "confirm_destructive": True}
                ),
                "commands": config.commands.model_copy(
                    update={"allow_arbitrary_commands": False, "allow_sudo": False}
                ),
                "file_system": config.file_system.model_copy(update={"allow_delete": False}),
            }
        )
        logger.info("Sandbox mode enabled")
        self.events.emit(AuditEvent.SANDBOX_ENABLED, {})

    def enable_dry_run(self) -> None:
        config = self._config
        self._config = config.model_copy(
            update={"safety": config.safety.model_copy(update={"dry_run_mode": True})}
        )
        logger.info("Dry-run mode enabled")
        self.events.emit(AuditEvent.DRY_RUN_ENABLED, {})

    def is_sandboxed(self) -> bool:
        return self._config.safety.sandbox_mode

    def is_dry_run(self) -> bool:
        return self._config.safety.dry_run_mode

    # --- Configuration ---

    def get_config(self) -> PermissionConfig:
        return self._config

    def update_config(self, updates: Mapping[str, Any]) -> PermissionConfig:
        """Merge `updates` over the current config and persist."""
        self._config = merge_permission_config(updates, base=self._config)
        self.events.emit(AuditEvent.CONFIG_UPDATED, {"sections": sorted(updates)})
        self.save_config()
        return self._config

    def save_config(self) -> bool:
        """
        Persist the current config.

        Returns:
            True if written. Failures are logged and reported as False.
        """
        if self.config_path is None:
            return False

        try:
            path = self.store.write_document(
                self.config_path, self._config.model_dump(mode="json", by_alias=True)
            )
        except OSError as e:
            logger.warning("Could not save permissions to %s: %s", self.config_path, e)
            self.events.emit(AuditEvent.CONFIG_ERROR, {"error": str(e)})
            return False

        logger.debug("Saved permissions to %s", path)
        self.events.emit(AuditEvent.CONFIG_SAVED, {"path": str(path), "document": "permissions"})
        return True

    def _load_config(self) -> PermissionConfig:
        if self.config_path is None:
            return PermissionConfig()

        try:
            loaded = self.store.read_document(self.config_path)
        except ConfigError as e:
            logger.warning("Falling back to default permissions: %s", e.message)
            self.events.emit(AuditEvent.CONFIG_ERROR, {"error": e.message})
            return PermissionConfig()

        if loaded is None:
            return PermissionConfig()
        return merge_permission_config(loaded)
