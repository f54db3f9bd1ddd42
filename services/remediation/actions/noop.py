"""No-op remediation action used to validate check-to-action wiring."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from services.remediation.base import ActionContext, ActionResult, RemediationAction
from services.remediation.registry import register_action


@register_action("noop")
class NoopRemediationAction(RemediationAction):
    """Do nothing; report success for the failing check."""

    action_type = "noop"

    def dry_run(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        _ = payload
        return ActionResult(ok=True, message=f"noop dry-run for {ctx.check_name}")

    def execute(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        _ = payload
        return ActionResult(ok=True, message=f"noop for {ctx.check_name}")
