"""Host reboot remediation action."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from services.remediation.actions._common import init_manager_from
from services.remediation.base import ActionContext, ActionResult, RemediationAction
from services.remediation.registry import register_action


@register_action("reboot")
class RebootAction(RemediationAction):
    """Reboot the host through the init system."""

    action_type = "reboot"

    def dry_run(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        _ = payload
        return ActionResult(
            ok=True,
            message=f"dry-run: reboot host for {ctx.check_name}",
            details={"operation": "reboot"},
        )

    def execute(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        _ = payload
        outcome = init_manager_from(ctx).reboot()
        if outcome.ok:
            return ActionResult(ok=True, message="reboot requested", details={"operation": "reboot"})
        return ActionResult(
            ok=False,
            message=f"reboot failed: {outcome.message}",
            details={"operation": "reboot"},
        )
