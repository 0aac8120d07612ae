"""
Unit tests for the permission manager.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from gatekeep.adapters.fs import ConfigStore
from gatekeep.domain.events import AuditEvent
from gatekeep.domain.permissions import PermissionConfig, SafetySettings
from gatekeep.engine.events import EventBus
from gatekeep.engine.permission_manager import PermissionManager, merge_permission_config


def with_safety(**kwargs: Any) -> PermissionManager:
    return PermissionManager(config=PermissionConfig(safety=SafetySettings(**kwargs)))


class TestFilesystemChecks:
    """Tests for read, write and delete checks."""

    def test_read_allowed_by_default(self, permission_manager: PermissionManager) -> None:
        result = permission_manager.check_read_permission("src/app.py")

        assert result.allowed
        assert not result.requires_confirmation

    @pytest.mark.parametrize(
        "path",
        [".env", "config/.env", "certs/server.pem", "deploy/secrets/token", "a/node_modules/x/y.js"],
    )
    def test_blocked_paths(self, permission_manager: PermissionManager, path: str) -> None:
        assert not permission_manager.check_read_permission(path).allowed
        assert not permission_manager.check_write_permission(path).allowed

    def test_blocked_paths_are_separator_independent(
        self, permission_manager: PermissionManager
    ) -> None:
        assert not permission_manager.check_read_permission("deploy\\secrets\\token").allowed

    def test_path_outside_allowed_read_paths(self) -> None:
        manager = PermissionManager(
            config=merge_permission_config({"fileSystem": {"allowedReadPaths": ["src/**"]}})
        )

        assert manager.check_read_permission("src/a/b.py").allowed
        result = manager.check_read_permission("docs/readme.md")
        assert not result.allowed
        assert "allowed read paths" in (result.reason or "")

    def test_write_requires_confirmation_when_destructive(
        self, permission_manager: PermissionManager
    ) -> None:
        result = permission_manager.check_write_permission("src/app.py")

        assert result.allowed
        assert result.requires_confirmation

    def test_create_disabled(self) -> None:
        manager = PermissionManager(
            config=merge_permission_config({"fileSystem": {"allowCreate": False}})
        )

        assert not manager.check_write_permission("src/new.py", is_create=True).allowed
        assert manager.check_write_permission("src/old.py").allowed

    def test_file_size_limit(self, permission_manager: PermissionManager) -> None:
        limit = permission_manager.get_config().file_system.max_file_size

        assert permission_manager.check_write_permission("a.bin", size=limit).allowed
        assert not permission_manager.check_write_permission("a.bin", size=limit + 1).allowed

    def test_delete(self, permission_manager: PermissionManager) -> None:
        assert permission_manager.check_delete_permission("src/old.py").allowed
        assert not permission_manager.check_delete_permission(".env").allowed


class TestOperationCounter:
    """Tests for the per-session operation limit."""

    def test_write_denied_at_limit_and_restored_by_reset(self) -> None:
        manager = with_safety(max_operations_per_session=2)

        manager.record_operation()
        assert manager.check_write_permission("src/a.py").allowed

        manager.record_operation()
        result = manager.check_write_permission("src/a.py")
        assert not result.allowed
        assert "Maximum operations" in (result.reason or "")

        manager.reset_operation_count()
        assert manager.check_write_permission("src/a.py").allowed

    def test_reads_are_not_limited(self) -> None:
        manager = with_safety(max_operations_per_session=0)

        assert manager.check_read_permission("src/a.py").allowed
        assert not manager.check_write_permission("src/a.py").allowed

    def test_record_operation_emits(
        self,
        permission_manager: PermissionManager,
        recorded: list[tuple[AuditEvent, dict[str, Any]]],
    ) -> None:
        assert permission_manager.record_operation() == 1
        assert recorded == [(AuditEvent.OPERATION_RECORDED, {"count": 1})]


class TestCommandChecks:
    """Tests for shell command checks."""

    def test_allowed_command(self, permission_manager: PermissionManager) -> None:
        result = permission_manager.check_command_permission("git status")

        assert result.allowed
        assert result.requires_confirmation

    @pytest.mark.parametrize("command", ["rm -rf /", "rm -rf ~", ":(){:|:&};:", "mkfs.ext4 /dev/sda1"])
    def test_blocked_command(self, permission_manager: PermissionManager, command: str) -> None:
        result = permission_manager.check_command_permission(command)

        assert not result.allowed
        assert "blocked pattern" in (result.reason or "")

    def test_blocked_wins_over_arbitrary(self) -> None:
        manager = PermissionManager(
            config=merge_permission_config({"commands": {"allowArbitraryCommands": True}})
        )

        assert not manager.check_command_permission("rm -rf /").allowed
        assert manager.check_command_permission("rm -rf build").allowed

    def test_unlisted_command_denied(self, permission_manager: PermissionManager) -> None:
        result = permission_manager.check_command_permission("rm -rf build")

        assert not result.allowed
        assert result.reason == "Command not in allowed list"

    def test_sudo_requires_flag(self, permission_manager: PermissionManager) -> None:
        assert not permission_manager.check_command_permission("sudo git pull").allowed

        permission_manager.update_config({"commands": {"allow_sudo": True, "allowedCommands": ["sudo *"]}})
        assert permission_manager.check_command_permission("sudo git pull").allowed


class TestToolChecks:
    """Tests for tool name checks."""

    def test_auto_approved(self, permission_manager: PermissionManager) -> None:
        result = permission_manager.check_tool_permission("view_file")
        assert result.allowed and not result.requires_confirmation

    def test_requires_confirmation(self, permission_manager: PermissionManager) -> None:
        result = permission_manager.check_tool_permission("bash")
        assert result.allowed and result.requires_confirmation

    def test_unlisted_tool_allowed(self, permission_manager: PermissionManager) -> None:
        result = permission_manager.check_tool_permission("web_search")
        assert result.allowed and not result.requires_confirmation

    def test_disabled_wins(self) -> None:
        manager = PermissionManager(
            config=merge_permission_config(
                {"tools": {"disabled": ["view_file"], "autoApproved": ["view_file"]}}
            )
        )
        assert not manager.check_tool_permission("view_file").allowed


class TestNetworkChecks:
    """Tests for host checks."""

    def test_wildcard_allows_everything(self, permission_manager: PermissionManager) -> None:
        assert permission_manager.check_network_permission("pypi.org").allowed

    def test_outgoing_disabled(self) -> None:
        manager = PermissionManager(
            config=merge_permission_config({"network": {"allowOutgoing": False}})
        )
        assert not manager.check_network_permission("localhost").allowed

    @pytest.mark.parametrize("host", ["localhost", "127.0.0.1", "localhost:3000", "[::1]:8080"])
    def test_localhost_flag(self, host: str) -> None:
        allowed = PermissionManager()
        denied = PermissionManager(
            config=merge_permission_config(
                {"network": {"allowLocalhost": False, "allowedHosts": ["*"]}}
            )
        )

        assert allowed.check_network_permission(host).allowed
        assert not denied.check_network_permission(host).allowed

    def test_blocklist_wins_and_covers_subdomains(self) -> None:
        manager = PermissionManager(
            config=merge_permission_config({"network": {"blockedHosts": ["evil.com"]}})
        )

        assert not manager.check_network_permission("evil.com").allowed
        assert not manager.check_network_permission("API.Evil.com:443").allowed
        assert manager.check_network_permission("notevil.com").allowed

    def test_allowlist(self) -> None:
        manager = PermissionManager(
            config=merge_permission_config(
                {"network": {"allowedHosts": ["github.com", "*.npmjs.org"]}}
            )
        )

        assert manager.check_network_permission("api.github.com").allowed
        assert manager.check_network_permission("registry.npmjs.org").allowed
        assert not manager.check_network_permission("example.com").allowed


class TestSafetyModes:
    """Tests for sandbox and dry-run switches."""

    def test_enable_sandbox(
        self,
        recorded: list[tuple[AuditEvent, dict[str, Any]]],
        events: EventBus,
    ) -> None:
        manager = PermissionManager(
            events=events,
            config=merge_permission_config(
                {"commands": {"allowArbitraryCommands": True, "allowSudo": True}}
            ),
        )

        manager.enable_sandbox()

        config = manager.get_config()
        assert manager.is_sandboxed()
        assert not config.commands.allow_arbitrary_commands
        assert not config.commands.allow_sudo
        assert not config.file_system.allow_delete
        assert not manager.check_delete_permission("src/a.py").allowed
        assert recorded[-1][0] == AuditEvent.SANDBOX_ENABLED

    def test_enable_dry_run(self, permission_manager: PermissionManager) -> None:
        assert not permission_manager.is_dry_run()
        permission_manager.enable_dry_run()
        assert permission_manager.is_dry_run()


class TestPermissionPersistence:
    """Tests for loading, merging and saving the permission document."""

    def test_partial_document_is_merged_field_by_field(
        self, tmp_path: Path, store: ConfigStore
    ) -> None:
        (tmp_path / "permissions.json").write_text(
            json.dumps(
                {
                    "safety": {"maxOperationsPerSession": "lots", "dryRunMode": True},
                    "network": [1, 2],
                    "commands": {"allowSudo": True},
                    "team": {"owner": "infra"},
                }
            ),
            encoding="utf-8",
        )

        manager = PermissionManager(config_path="permissions.json", store=store)
        config = manager.get_config()

        assert config.safety.max_operations_per_session == 1000
        assert config.safety.dry_run_mode
        assert config.network.allowed_hosts == ["*"]
        assert config.commands.allow_sudo
        assert "git *" in config.commands.allowed_commands

    def test_unknown_fields_survive_a_save(self, tmp_path: Path, store: ConfigStore) -> None:
        (tmp_path / "permissions.json").write_text(
            json.dumps({"team": {"owner": "infra"}, "tools": {"notes": "keep me"}}),
            encoding="utf-8",
        )
        manager = PermissionManager(config_path="permissions.json", store=store)

        assert manager.save_config()

        saved = json.loads((tmp_path / "permissions.json").read_text(encoding="utf-8"))
        assert saved["team"] == {"owner": "infra"}
        assert saved["tools"]["notes"] == "keep me"
        assert "fileSystem" in saved
        assert saved["commands"]["allowSudo"] is False

    def test_malformed_file_uses_defaults(
        self, tmp_path: Path, store: ConfigStore, events: EventBus
    ) -> None:
        (tmp_path / "permissions.json").write_text("[broken", encoding="utf-8")
        seen: list[AuditEvent] = []
        events.subscribe(AuditEvent.CONFIG_ERROR, lambda event, payload: seen.append(event))

        manager = PermissionManager(config_path="permissions.json", store=store, events=events)

        assert manager.get_config() == PermissionConfig()
        assert seen == [AuditEvent.CONFIG_ERROR]

    def test_undecodable_file_uses_defaults(
        self, tmp_path: Path, store: ConfigStore, events: EventBus
    ) -> None:
        (tmp_path / "permissions.json").write_bytes(b'{"safety": "\xff\xfe"}')
        seen: list[AuditEvent] = []
        events.subscribe(AuditEvent.CONFIG_ERROR, lambda event, payload: seen.append(event))

        manager = PermissionManager(config_path="permissions.json", store=store, events=events)

        assert manager.get_config() == PermissionConfig()
        assert seen == [AuditEvent.CONFIG_ERROR]

    def test_update_config_persists(self, tmp_path: Path, store: ConfigStore) -> None:
        manager = PermissionManager(config_path="nested/permissions.json", store=store)

        manager.update_config({"fileSystem": {"allowDelete": False}})

        saved = json.loads((tmp_path / "nested" / "permissions.json").read_text(encoding="utf-8"))
        assert saved["fileSystem"]["allowDelete"] is False
        assert saved["version"] == "1.0.0"

    def test_yaml_document(self, tmp_path: Path, store: ConfigStore) -> None:
        (tmp_path / "permissions.yaml").write_text(
            "commands:\n  allowArbitraryCommands: true\n", encoding="utf-8"
        )

        manager = PermissionManager(config_path="permissions.yaml", store=store)

        assert manager.check_command_permission("make -j8 all").allowed
        assert manager.check_command_permission("terraform apply").allowed

    def test_in_memory_manager_does_not_save(self, permission_manager: PermissionManager) -> None:
        assert not permission_manager.save_config()
