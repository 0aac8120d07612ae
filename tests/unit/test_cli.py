"""
Unit tests for the command line interface.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from gatekeep import __version__
from gatekeep.cli.main import DEFAULT_SETTINGS_TEMPLATE, EXIT_NEEDS_CONFIRMATION, app

runner = CliRunner()


@pytest.fixture
def settings_file(tmp_path: Path, workspace: Path) -> Path:
    """Settings keeping every document inside tmp_path."""
    path = tmp_path / "gatekeep.toml"
    path.write_text(
        f"""
[permissions]
file = "{tmp_path / 'permissions.json'}"

[policy]
file = "{tmp_path / 'policy.json'}"

[sandbox]
method = "none"
workspace_root = "{workspace}"
timeout_ms = 10000
""",
        encoding="utf-8",
    )
    return path


def invoke(settings_file: Path, *args: str):
    return runner.invoke(app, ["--config", str(settings_file), *args])


class TestGlobalOptions:
    """Tests for the app callback."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_bad_settings_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.toml"
        bad.write_text("[sandbox]\nmethod = 'chroot'\n", encoding="utf-8")

        result = runner.invoke(app, ["--config", str(bad), "status"])

        assert result.exit_code == 1


class TestCheckCommand:
    """Tests for `gatekeep check`."""

    def test_allowed(self, settings_file: Path) -> None:
        result = invoke(settings_file, "check", "read_file", "--arg", "path=src/main.py")

        assert result.exit_code == 0
        assert "ALLOW" in result.stdout

    def test_json(self, settings_file: Path) -> None:
        result = invoke(settings_file, "check", "bash", "--json")

        data = json.loads(result.stdout)
        assert data["action"] == "allow"
        assert data["source"] == "profile"

    def test_denied_exits_1(self, settings_file: Path) -> None:
        assert invoke(settings_file, "profile", "minimal").exit_code == 0

        result = invoke(settings_file, "check", "bash")

        assert result.exit_code == 1
        assert "DENY" in result.stdout

    def test_malformed_arg(self, settings_file: Path) -> None:
        result = invoke(settings_file, "check", "bash", "--arg", "command")
        assert result.exit_code == 2


class TestPermissionCommands:
    """Tests for `gatekeep permission ...`."""

    def test_path(self, settings_file: Path) -> None:
        assert invoke(settings_file, "permission", "path", "src/main.py").exit_code == 0
        assert invoke(settings_file, "permission", "path", ".env", "--write").exit_code == 1

    def test_command(self, settings_file: Path) -> None:
        allowed = invoke(settings_file, "permission", "command", "git status")
        denied = invoke(settings_file, "permission", "command", "sudo reboot")

        assert allowed.exit_code == 0
        assert "confirmation" in allowed.stdout
        assert denied.exit_code == 1
        assert "sudo" in denied.stdout

    def test_tool_and_host(self, settings_file: Path) -> None:
        assert invoke(settings_file, "permission", "tool", "view_file").exit_code == 0
        assert invoke(settings_file, "permission", "host", "localhost:8080").exit_code == 0


class TestProfileCommands:
    """Tests for `gatekeep profile` and `gatekeep profiles`."""

    def test_show_active(self, settings_file: Path) -> None:
        result = invoke(settings_file, "profile")

        assert result.exit_code == 0
        assert "coding" in result.stdout

    def test_switch_persists(self, settings_file: Path, tmp_path: Path) -> None:
        result = invoke(settings_file, "profile", "full")

        assert result.exit_code == 0
        saved = json.loads((tmp_path / "policy.json").read_text(encoding="utf-8"))
        assert saved["activeProfile"] == "full"

    def test_unknown_profile(self, settings_file: Path) -> None:
        result = invoke(settings_file, "profile", "yolo")

        assert result.exit_code == 1
        assert "Invalid profile" in result.stdout

    def test_list_and_compare(self, settings_file: Path) -> None:
        listed = invoke(settings_file, "profiles")
        compared = invoke(settings_file, "profiles", "--compare")

        assert listed.exit_code == 0
        assert "messaging" in listed.stdout
        assert compared.exit_code == 0
        assert "group:fs:read" in compared.stdout


class TestRunCommand:
    """Tests for `gatekeep run`."""

    def test_needs_confirmation(self, settings_file: Path) -> None:
        result = invoke(settings_file, "run", "ls src")

        assert result.exit_code == EXIT_NEEDS_CONFIRMATION
        assert "--yes" in result.stdout

    def test_blocked(self, settings_file: Path) -> None:
        result = invoke(settings_file, "run", "terraform apply", "--yes")

        assert result.exit_code == 1
        assert "Command not in allowed list" in result.stdout

    @pytest.mark.integration
    def test_runs_confirmed_command(self, settings_file: Path) -> None:
        result = invoke(settings_file, "run", "ls src", "--yes", "--json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["result"]["stdout"] == "main.py\n"
        assert data["result"]["method"] == "none"

    def test_dry_run(self, settings_file: Path) -> None:
        result = invoke(settings_file, "run", "ls src", "--yes", "--dry-run", "--method", "none")

        assert result.exit_code == 0
        assert "[dry-run] none: ls src" in result.stdout


class TestMiscCommands:
    """Tests for methods, status and init."""

    def test_status(self, settings_file: Path) -> None:
        result = invoke(settings_file, "status")

        assert result.exit_code == 0
        assert "coding" in result.stdout

    def test_init(self, tmp_path: Path) -> None:
        target = tmp_path / "project"

        first = runner.invoke(app, ["init", str(target)])
        second = runner.invoke(app, ["init", str(target)])
        forced = runner.invoke(app, ["init", str(target), "--force"])

        assert first.exit_code == 0
        assert (target / ".gatekeep.toml").read_text(encoding="utf-8") == DEFAULT_SETTINGS_TEMPLATE
        assert second.exit_code == 1
        assert forced.exit_code == 0
