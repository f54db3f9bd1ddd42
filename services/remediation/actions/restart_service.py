"""Service restart remediation action."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from services.remediation.actions._common import init_manager_from, payload_text
from services.remediation.base import ActionContext, ActionResult, RemediationAction
from services.remediation.preconditions import RequiredPayloadKeysPrecondition
from services.remediation.registry import register_action


def _unit_name(payload: Mapping[str, Any]) -> str:
    """Return the unit name, defaulting to the ``.service`` suffix."""
    name = payload_text(payload, "service")
    if name and "." not in name:
        name = f"{name}.service"
    return name


@register_action("restart_service")
class RestartServiceAction(RemediationAction):
    """Restart one systemd unit."""

    action_type = "restart_service"
    preconditions = (RequiredPayloadKeysPrecondition(required_keys=("service",)),)

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        """Reject unit names that could be read as systemctl options or paths."""
        name = payload_text(payload, "service")
        if not name:
            raise ValueError("service is required")
        if name.startswith("-") or "/" in name or any(ch.isspace() for ch in name):
            raise ValueError(f"invalid unit name: {name!r}")

    def dry_run(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        unit = _unit_name(payload)
        return ActionResult(
            ok=True,
            message=f"dry-run: restart {unit} for {ctx.check_name}",
            details={"unit": unit, "operation": "restart"},
        )

    def execute(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        unit = _unit_name(payload)
        outcome = init_manager_from(ctx).restart_unit(unit)
        if outcome.ok:
            return ActionResult(
                ok=True,
                message=f"restart of {unit} queued",
                details={"unit": unit, "operation": "restart"},
            )
        return ActionResult(
            ok=False,
            message=f"failed to restart {unit}: {outcome.message}",
            details={"unit": unit, "operation": "restart"},
        )
