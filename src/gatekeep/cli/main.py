"""
Main CLI entry point for Gatekeep.

Usage:
    gatekeep check bash --arg command="npm test"
    gatekeep permission command "git status"
    gatekeep profile minimal
    gatekeep run "echo hello" --yes
    gatekeep methods
    gatekeep init
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import anyio
import typer
from rich.console import Console
from rich.logging import RichHandler

from gatekeep import __version__
from gatekeep.adapters.fs import ConfigStore
from gatekeep.domain.exceptions import ConfigError, UnknownProfileError
from gatekeep.domain.sandbox import SandboxMethod
from gatekeep.domain.settings import GatekeepSettings
from gatekeep.engine.gatekeeper import Gatekeeper
from gatekeep.renderers.json_renderer import JsonRenderer
from gatekeep.renderers.terminal import TerminalRenderer

# Create the main Typer app
app = typer.Typer(
    name="gatekeep",
    help="🛡️ Gatekeep — policy, permissions and sandboxing for coding agents",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
permission_app = typer.Typer(help="Run a single permission check.", no_args_is_help=True)
app.add_typer(permission_app, name="permission")

console = Console()

# Exit code when a gate asks for user confirmation
EXIT_NEEDS_CONFIRMATION = 2


def setup_logging(level: str | int) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Gatekeep version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to .gatekeep.toml settings file.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """
    🛡️ Gatekeep — decide, check and sandbox agent actions.

    Examples:

        gatekeep check write_file --arg path=src/app.py

        gatekeep run "npm test" --yes --method bubblewrap

        gatekeep profiles --compare
    """
    try:
        settings = ConfigStore().load_settings(config)
    except ConfigError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1) from e

    setup_logging(logging.DEBUG if verbose else settings.log_level)
    ctx.obj = settings


def _gatekeeper(ctx: typer.Context) -> Gatekeeper:
    settings = ctx.obj if isinstance(ctx.obj, GatekeepSettings) else GatekeepSettings()
    return Gatekeeper.from_settings(settings)


def _parse_args(pairs: list[str] | None) -> dict[str, Any]:
    args: dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--arg")
        args[key] = value
    return args


@app.command()
def check(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool name to resolve, e.g. bash.")],
    arg: Annotated[
        Optional[list[str]],
        typer.Option("--arg", "-a", help="Tool argument as key=value (repeatable)."),
    ] = None,
    agent: Annotated[Optional[str], typer.Option("--agent", help="Agent id.")] = None,
    provider: Annotated[Optional[str], typer.Option("--provider", help="Provider id.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """
    Resolve a tool call against the policy.

    Exits 1 when the decision is deny.
    """
    gatekeeper = _gatekeeper(ctx)
    decision = gatekeeper.policy.check_tool(
        tool, _parse_args(arg), agent_id=agent, provider=provider
    )

    if json_output:
        console.print_json(JsonRenderer().render(decision))
    else:
        TerminalRenderer(console).render_decision(decision)

    if decision.denied:
        raise typer.Exit(1)


def _report_permission(kind: str, subject: str, result: Any) -> None:
    TerminalRenderer(console).render_permission(kind, subject, result)
    if not result.allowed:
        raise typer.Exit(1)


@permission_app.command("path")
def permission_path(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Path to check.")],
    write: Annotated[bool, typer.Option("--write", "-w", help="Check a write.")] = False,
    create: Annotated[bool, typer.Option("--create", help="The write creates a file.")] = False,
    delete: Annotated[bool, typer.Option("--delete", help="Check a delete.")] = False,
) -> None:
    """Check read, write or delete access to a path."""
    permissions = _gatekeeper(ctx).permissions

    if delete:
        _report_permission("Delete", path, permissions.check_delete_permission(path))
    elif write or create:
        _report_permission("Write", path, permissions.check_write_permission(path, is_create=create))
    else:
        _report_permission("Read", path, permissions.check_read_permission(path))


@permission_app.command("command")
def permission_command(
    ctx: typer.Context,
    command: Annotated[str, typer.Argument(help="Shell command to check.")],
) -> None:
    """Check a shell command against the command allow/block lists."""
    permissions = _gatekeeper(ctx).permissions
    _report_permission("Command", command, permissions.check_command_permission(command))


@permission_app.command("tool")
def permission_tool(
    ctx: typer.Context,
    tool: Annotated[str, typer.Argument(help="Tool name to check.")],
) -> None:
    """Check a tool against the disabled and auto-approved lists."""
    permissions = _gatekeeper(ctx).permissions
    _report_permission("Tool", tool, permissions.check_tool_permission(tool))


@permission_app.command("host")
def permission_host(
    ctx: typer.Context,
    host: Annotated[str, typer.Argument(help="Host name, optionally with port.")],
) -> None:
    """Check outgoing network access to a host."""
    permissions = _gatekeeper(ctx).permissions
    _report_permission("Network", host, permissions.check_network_permission(host))


@app.command()
def profile(
    ctx: typer.Context,
    name: Annotated[
        Optional[str],
        typer.Argument(help="Profile to activate. Omit to show the active profile."),
    ] = None,
) -> None:
    """Show or switch the active policy profile."""
    policy = _gatekeeper(ctx).policy

    if name is None:
        info = policy.profile_info()
        console.print(f"Active profile: [cyan]{info.name}[/cyan]: {info.description}")
        return

    try:
        policy.set_profile(name)
    except UnknownProfileError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1) from e

    console.print(f"[green]✓ Active profile set to {name}[/green]")


@app.command()
def profiles(
    ctx: typer.Context,
    compare: Annotated[
        bool,
        typer.Option("--compare", help="Show the group x profile action matrix."),
    ] = False,
) -> None:
    """List policy profiles."""
    policy = _gatekeeper(ctx).policy
    renderer = TerminalRenderer(console)

    if compare:
        renderer.render_comparison(policy.resolver.catalog.comparison())
        return

    renderer.render_profiles(
        [policy.profile_info(name) for name in policy.available_profiles()],
        active=policy.get_profile(),
    )


@app.command()
def run(
    ctx: typer.Context,
    command: Annotated[str, typer.Argument(help="Shell command to run.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Approve calls that need confirmation."),
    ] = False,
    tool: Annotated[str, typer.Option("--tool", help="Tool issuing the command.")] = "bash",
    method: Annotated[
        Optional[SandboxMethod],
        typer.Option("--method", "-m", help="Preferred sandbox method."),
    ] = None,
    timeout_ms: Annotated[
        Optional[int],
        typer.Option("--timeout", help="Timeout in milliseconds."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Report the invocation without running it."),
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """
    Run a shell command through policy, permissions and the sandbox.

    Exits with the command's exit code, 1 when blocked, or 2 when
    confirmation is needed.
    """
    gatekeeper = _gatekeeper(ctx)

    overrides: dict[str, Any] = {}
    if method is not None:
        overrides["method"] = method
    if timeout_ms is not None:
        overrides["timeout_ms"] = timeout_ms
    if overrides:
        gatekeeper.executor.update_config(overrides)
    if dry_run:
        gatekeeper.permissions.enable_dry_run()

    outcome = anyio.run(
        lambda: gatekeeper.run_shell(command, tool_name=tool, confirmed=yes)
    )

    if json_output:
        console.print_json(JsonRenderer().render_shell_outcome(outcome))
    else:
        TerminalRenderer(console).render_shell_outcome(outcome)

    if outcome.needs_confirmation:
        raise typer.Exit(EXIT_NEEDS_CONFIRMATION)
    if outcome.result is None:
        raise typer.Exit(1)
    if outcome.result.exit_code != 0:
        raise typer.Exit(outcome.result.exit_code)


@app.command()
def methods(
    ctx: typer.Context,
    refresh: Annotated[bool, typer.Option("--refresh", help="Re-probe mechanisms.")] = False,
) -> None:
    """Probe which sandbox mechanisms are installed."""
    executor = _gatekeeper(ctx).executor
    available = anyio.run(lambda: executor.probe_methods(refresh=refresh))
    TerminalRenderer(console).render_methods(available, executor.select_method())


@app.command()
def status(ctx: typer.Context) -> None:
    """Show the active profile, safety switches and rule counts."""
    gatekeeper = _gatekeeper(ctx)
    TerminalRenderer(console).render_status(
        gatekeeper.policy.status(),
        gatekeeper.permissions.get_config(),
        gatekeeper.permissions.operation_count,
    )


DEFAULT_SETTINGS_TEMPLATE = """# Gatekeep Configuration

[permissions]
# Permission document (JSON or YAML)
file = ".gatekeep/permissions.json"

[policy]
# Tool policy document (JSON or YAML)
file = "~/.gatekeep/tool-policy.json"

[sandbox]
# Preferred method: bubblewrap, firejail, namespace, docker, none
method = "namespace"

# Allow network access inside the sandbox
network_enabled = false

# Wall-clock timeout per command (milliseconds)
timeout_ms = 30000

# Per-stream output cap (bytes)
max_output_size = 1048576

# Defaults to the current directory
# workspace_root = "."

[logging]
level = "WARNING"

[telemetry]
# Emit audit events as OpenTelemetry spans
enabled = false
service_name = "gatekeep"
"""


@app.command()
def init(
    path: Annotated[
        Path,
        typer.Argument(
            help="Directory in which to create .gatekeep.toml.",
        ),
    ] = Path("."),
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Overwrite existing config file.",
        ),
    ] = False,
) -> None:
    """
    Initialize Gatekeep configuration.

    Creates a .gatekeep.toml settings file with default values.

    Examples:

        gatekeep init

        gatekeep init ./project --force
    """
    config_path = path / ".gatekeep.toml"

    if config_path.exists() and not force:
        console.print(
            f"[yellow]Config file already exists: {config_path}[/yellow]\n"
            f"Use --force to overwrite."
        )
        raise typer.Exit(1)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_SETTINGS_TEMPLATE, encoding="utf-8")
    console.print(f"[green]✓ Created {config_path}[/green]")
    console.print("\nEdit this file to customize Gatekeep behavior.")


if __name__ == "__main__":
    app()
