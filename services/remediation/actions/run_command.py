"""Shell command remediation action."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from infra.config import get_settings
from services.remediation.actions._common import optional_text, payload_seconds, payload_text
from services.remediation.base import ActionContext, ActionResult, RemediationAction
from services.remediation.command_runner import CommandSpec, run_command
from services.remediation.preconditions import RequiredPayloadKeysPrecondition
from services.remediation.registry import register_action

_MAX_OUTPUT_CHARS = 4096


def _spec(ctx: ActionContext, payload: Mapping[str, Any]) -> CommandSpec:
    default_timeout = get_settings().runner.default_timeout_seconds
    return CommandSpec(
        command=ctx.render(payload_text(payload, "command")),
        run_as_user=optional_text(payload, "user"),
        timeout=payload_seconds(payload, "timeout_seconds", default_timeout),
    )


@register_action("run_command")
class RunCommandAction(RemediationAction):
    """Run a shell command under a deadline, optionally as another user."""

    action_type = "run_command"
    preconditions = (RequiredPayloadKeysPrecondition(required_keys=("command",)),)

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        if not payload_text(payload, "command"):
            raise ValueError("command is required")
        payload_seconds(payload, "timeout_seconds", 1.0)

    def dry_run(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        spec = _spec(ctx, payload)
        details = {"command": spec.command, "timeout_seconds": f"{spec.timeout:g}"}
        if spec.run_as_user:
            details["user"] = spec.run_as_user
        return ActionResult(ok=True, message=f"dry-run: run {spec.command!r}", details=details)

    def execute(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        spec = _spec(ctx, payload)
        result = run_command(spec, spawner=ctx.services.get("spawner"))
        details = {
            "command": spec.command,
            "output": result.captured_output[-_MAX_OUTPUT_CHARS:],
        }
        if result.exit_code is not None:
            details["exit_code"] = str(result.exit_code)
        if result.output_truncated:
            details["output_truncated"] = "true"
        if result.failure is not None:
            details["code"] = result.failure.value
        return ActionResult(ok=result.succeeded, message=result.message, details=details)
