"""Log-file remediation action."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from services.remediation.actions._common import optional_text, payload_text
from services.remediation.base import ActionContext, ActionResult, RemediationAction
from services.remediation.log_append import append_line
from services.remediation.preconditions import RequiredPayloadKeysPrecondition
from services.remediation.registry import register_action


@register_action("log")
class LogLineAction(RemediationAction):
    """Append a line to a log file, creating it with an optional header and owner."""

    action_type = "log"
    preconditions = (RequiredPayloadKeysPrecondition(required_keys=("path", "line")),)

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        path = payload_text(payload, "path")
        if not path:
            raise ValueError("path is required")
        if "\n" in str(payload.get("line") or "").rstrip("\n"):
            raise ValueError("line must be a single line")

    def dry_run(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        path = payload_text(payload, "path")
        line = ctx.render(str(payload.get("line") or ""))
        return ActionResult(ok=True, message=f"dry-run: append to {path}", details={"path": path, "line": line})

    def execute(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        path = payload_text(payload, "path")
        header = optional_text(payload, "header")
        outcome = append_line(
            path,
            ctx.render(str(payload.get("line") or "")),
            owner=optional_text(payload, "user"),
            header=ctx.render(header) if header else None,
        )
        return ActionResult(
            ok=outcome.ok,
            message=outcome.message,
            details={"path": path, "created": "true" if outcome.created else "false"},
        )
