"""
Terminal renderer using Rich.

Prints policy decisions, permission results, execution results and
status overviews as color-coded panels and tables.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gatekeep.domain.policy import PolicyAction

if TYPE_CHECKING:
    from gatekeep.domain.permissions import PermissionCheckResult, PermissionConfig
    from gatekeep.domain.policy import PolicyDecision, ProfileDefinition
    from gatekeep.domain.sandbox import SandboxExecResult, SandboxMethod
    from gatekeep.engine.gatekeeper import ShellOutcome


class TerminalRenderer:
    """
    Renders Gatekeep results to the terminal using Rich.
    """

    ACTION_STYLES = {
        PolicyAction.ALLOW: "green",
        PolicyAction.DENY: "red bold",
        PolicyAction.CONFIRM: "yellow",
    }

    def __init__(self, console: Console | None = None) -> None:
        """
        Initialize the terminal renderer.

        Args:
            console: Rich console to use (creates new one if None).
        """
        self.console = console or Console()

    def _action(self, action: PolicyAction) -> Text:
        return Text(action.value.upper(), style=self.ACTION_STYLES[action])

    def render_decision(self, decision: PolicyDecision) -> None:
        """Render one policy decision."""
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Field", style="bold")
        table.add_column("Value")

        table.add_row("Tool", Text(decision.tool_name, style="cyan"))
        table.add_row("Action", self._action(decision.action))
        table.add_row("Source", decision.source.value)
        table.add_row("Reason", decision.reason)
        if decision.matched_rule is not None:
            rule = decision.matched_rule
            table.add_row("Rule", f"{rule.group} (priority {rule.priority})")

        self.console.print(
            Panel(table, title="Policy decision", border_style=self.ACTION_STYLES[decision.action])
        )

    def render_permission(self, kind: str, subject: str, result: PermissionCheckResult) -> None:
        if not result.allowed:
            self.console.print(f"[red]✗ {kind} denied:[/red] {subject}")
            if result.reason:
                self.console.print(f"  [dim]{result.reason}[/dim]")
        elif result.requires_confirmation:
            self.console.print(f"[yellow]? {kind} allowed with confirmation:[/yellow] {subject}")
        else:
            self.console.print(f"[green]✓ {kind} allowed:[/green] {subject}")

    def render_exec_result(self, result: SandboxExecResult) -> None:
        """Render command output followed by a one-line summary."""
        if result.stdout:
            self.console.print(result.stdout, end="", markup=False, highlight=False)
        if result.stderr:
            self.console.print(
                Text(result.stderr, style="red"), end="" if result.stderr.endswith("\n") else "\n"
            )

        status = "[green]exit 0[/green]" if result.ok else f"[red]exit {result.exit_code}[/red]"
        flags = []
        if result.timed_out:
            flags.append("[red]timed out[/red]")
        if not result.sandboxed:
            flags.append("[yellow]unsandboxed[/yellow]")
        self.console.print(
            f"\n{status} · method [cyan]{result.method}[/cyan] · {result.duration:.0f} ms"
            + (" · " + " · ".join(flags) if flags else "")
        )

    def render_shell_outcome(self, outcome: ShellOutcome) -> None:
        if outcome.result is not None:
            self.render_exec_result(outcome.result)
            return

        if outcome.needs_confirmation:
            self.console.print(
                f"[yellow]Confirmation required:[/yellow] {outcome.reason}\n"
                "Re-run with --yes to approve."
            )
        else:
            self.console.print(f"[red]✗ Blocked:[/red] {outcome.reason}")

    def render_profiles(self, profiles: list[ProfileDefinition], active: str) -> None:
        table = Table(title="Policy profiles")
        table.add_column("Profile", style="cyan")
        table.add_column("Description")
        table.add_column("Rules", justify="right")
        table.add_column("Inherits")

        for profile in profiles:
            name = f"{profile.name} [green](active)[/green]" if profile.name == active else profile.name
            table.add_row(name, profile.description, str(len(profile.rules)), profile.inherits or "-")

        self.console.print(table)

    def render_comparison(self, matrix: dict[str, dict[str, PolicyAction]]) -> None:
        """Render a group x profile matrix."""
        profiles = list(next(iter(matrix.values()), {}))

        table = Table(title="Profile comparison")
        table.add_column("Group", style="bold")
        for name in profiles:
            table.add_column(name, justify="center")

        for group, row in matrix.items():
            table.add_row(group, *(self._action(row[name]) for name in profiles))

        self.console.print(table)

    def render_methods(
        self, available: list[SandboxMethod], selected: SandboxMethod
    ) -> None:
        self.console.print("[bold]Available sandbox methods:[/bold]")
        for method in available:
            marker = "[green]●[/green]" if method == selected else "○"
            self.console.print(f"  {marker} {method.value}")
        self.console.print(f"\nSelected: [cyan]{selected.value}[/cyan]")

    def render_status(
        self,
        policy: dict[str, Any],
        permissions: PermissionConfig,
        operation_count: int,
    ) -> None:
        """Render the combined policy and permission status."""
        safety = permissions.safety

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Setting", style="bold")
        table.add_column("Value")

        table.add_row("Active profile", Text(policy["profile"], style="cyan"))
        table.add_row("Description", policy["description"])
        table.add_row("Default action", policy["default_action"])
        table.add_row("Global rules", str(policy["global_rules"]))
        table.add_row("Agent rule sets", str(policy["agent_rules"]))
        table.add_row("Provider rule sets", str(policy["provider_rules"]))
        table.add_row("Audit log", "on" if policy["audit_log"] else "off")
        table.add_row("", "")
        table.add_row("Sandbox mode", "on" if safety.sandbox_mode else "off")
        table.add_row("Dry run", "on" if safety.dry_run_mode else "off")
        table.add_row("Confirm destructive", "yes" if safety.confirm_destructive else "no")
        table.add_row(
            "Operations",
            f"{operation_count} / {safety.max_operations_per_session}",
        )
        table.add_row(
            "Arbitrary commands",
            "allowed" if permissions.commands.allow_arbitrary_commands else "allow-list only",
        )

        self.console.print(Panel(table, title="🛡️ Gatekeep status", border_style="blue"))
