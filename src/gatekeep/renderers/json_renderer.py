"""
JSON renderer for Gatekeep.

Outputs machine-readable decisions and results for scripting.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from gatekeep.engine.gatekeeper import ShellOutcome


class JsonRenderer:
    """Renders pydantic results and shell outcomes as JSON."""

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    def render(self, value: BaseModel | dict[str, Any]) -> str:
        data = value.model_dump(mode="json") if isinstance(value, BaseModel) else value
        return json.dumps(data, indent=self.indent, default=str)

    def render_shell_outcome(self, outcome: ShellOutcome) -> str:
        return self.render(self.outcome_to_dict(outcome))

    @staticmethod
    def outcome_to_dict(outcome: ShellOutcome) -> dict[str, Any]:
        return {
            "decision": outcome.decision.model_dump(mode="json"),
            "permission": outcome.permission.model_dump(mode="json") if outcome.permission else None,
            "result": outcome.result.model_dump(mode="json") if outcome.result else None,
            "needs_confirmation": outcome.needs_confirmation,
            "reason": outcome.reason,
        }
