"""Metrics push remediation action."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from services.remediation.base import ActionContext, ActionResult, RemediationAction
from services.remediation.metric_pusher import MetricEndpoint, push
from services.remediation.preconditions import (
    RequiredPayloadKeysPrecondition,
    RequiredServicePrecondition,
)
from services.remediation.registry import register_action


def _endpoint(ctx: ActionContext) -> MetricEndpoint:
    endpoint = ctx.services.get("influx")
    if not isinstance(endpoint, MetricEndpoint):
        raise TypeError("ActionContext.services['influx'] must be a MetricEndpoint")
    return endpoint


@register_action("influx")
class InfluxPushAction(RemediationAction):
    """Push one line-protocol record to the configured metrics endpoint."""

    action_type = "influx"
    preconditions = (
        RequiredServicePrecondition(service_key="influx"),
        RequiredPayloadKeysPrecondition(required_keys=("line",)),
    )

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        line = str(payload.get("line") or "").strip()
        if not line:
            raise ValueError("line is required")
        if "\n" in line:
            raise ValueError("line must be a single line-protocol record")

    def dry_run(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        endpoint = _endpoint(ctx)
        line = ctx.render(str(payload.get("line") or "").strip())
        return ActionResult(
            ok=True,
            message=f"dry-run: push to {endpoint.address}{endpoint.http_path}",
            details={"endpoint": endpoint.address, "line": line},
        )

    def execute(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        endpoint = _endpoint(ctx)
        line = ctx.render(str(payload.get("line") or "").strip())
        result = push(endpoint, line)
        details = {"endpoint": endpoint.address, "state": endpoint.state.value}
        if result.failure is not None:
            details["code"] = result.failure.value
        return ActionResult(ok=result.ok, message=result.message, details=details)
