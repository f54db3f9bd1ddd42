"""Tests for remediation executor, preconditions, and built-in actions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from services.remediation.audit import InMemoryRemediationAuditSink
from services.remediation.base import ActionContext
from services.remediation.executor import ExecutionOutcome, ExecutionRequest, RemediationExecutor
from services.remediation.init_manager import DryInitManager, InitCallResult
from services.remediation.metric_pusher import MetricEndpoint
from services.remediation.registry import ActionRegistry
from tests.mock_influx import MockInfluxServer


class _FailingInitManager:
    """Init manager that rejects every request."""

    def reboot(self) -> InitCallResult:
        return InitCallResult(ok=False, message="Access denied")

    def restart_unit(self, name: str) -> InitCallResult:
        return InitCallResult(ok=False, message=f"Unit {name} not found.")


def _endpoint(port: int) -> MetricEndpoint:
    return MetricEndpoint(
        host="127.0.0.1",
        port=port,
        http_path="/write?db=health",
        authorization="Token t",
        timeout=2.0,
    )


def _registry() -> ActionRegistry:
    """Build discovered action registry."""
    registry = ActionRegistry()
    registry.discover()
    return registry


def _ctx(
    *,
    action_id: str,
    check_name: str = "nginx",
    services: dict[str, Any] | None = None,
) -> ActionContext:
    """Build deterministic ActionContext for unit tests."""
    return ActionContext(
        action_id=action_id,
        check_name=check_name,
        run_id="run-1",
        services=services or {},
    )


def _run(
    action_type: str,
    payload: dict[str, Any],
    *,
    dry_run: bool = False,
    **ctx_kwargs: Any,
) -> ExecutionOutcome:
    """Run one request through a fresh executor."""
    executor = RemediationExecutor(registry=_registry())
    return executor.run(
        ExecutionRequest(
            ctx=_ctx(**ctx_kwargs),
            action_type=action_type,
            payload=payload,
            dry_run=dry_run,
        )
    )


def test_unknown_action_type_fails_and_is_audited() -> None:
    """Unknown action types should fail without raising."""
    sink = InMemoryRemediationAuditSink()
    executor = RemediationExecutor(registry=_registry(), audit_sink=sink)
    outcome = executor.run(
        ExecutionRequest(ctx=_ctx(action_id="act-0"), action_type="teleport", payload={})
    )

    assert outcome.result.ok is False
    assert "teleport" in outcome.result.message
    assert [e.action_type for e in sink.events()] == ["teleport"]


def test_restart_service_execute_uses_init_manager() -> None:
    """Restart should queue the unit with the implied .service suffix."""
    manager = DryInitManager()
    outcome = _run(
        "restart_service",
        {"service": "nginx"},
        action_id="act-restart-1",
        services={"init": manager},
    )

    assert outcome.result.ok is True
    assert manager.calls == [("restart", "nginx.service")]
    assert outcome.result.details["unit"] == "nginx.service"


def test_restart_service_failure_reports_init_message() -> None:
    """A refused restart should fail the action with the init diagnostic."""
    outcome = _run(
        "restart_service",
        {"service": "nginx.service"},
        action_id="act-restart-2",
        services={"init": _FailingInitManager()},
    )

    assert outcome.result.ok is False
    assert "Unit nginx.service not found." in outcome.result.message


def test_restart_service_rejects_option_like_unit_names() -> None:
    """Unit names that look like options should never reach systemctl."""
    manager = DryInitManager()
    outcome = _run(
        "restart_service",
        {"service": "--force"},
        action_id="act-restart-3",
        services={"init": manager},
    )

    assert outcome.result.ok is False
    assert outcome.result.details.get("code") == "invalid_payload"
    assert manager.calls == []


def test_reboot_dry_run_does_not_touch_init() -> None:
    """Dry-run reboot should only describe the operation."""
    manager = DryInitManager()
    outcome = _run("reboot", {}, dry_run=True, action_id="act-reboot-1", services={"init": manager})

    assert outcome.result.ok is True
    assert outcome.dry_run is True
    assert manager.calls == []


def test_reboot_execute_failure_is_reported() -> None:
    """A refused reboot should fail the action."""
    outcome = _run("reboot", {}, action_id="act-reboot-2", services={"init": _FailingInitManager()})

    assert outcome.result.ok is False
    assert "Access denied" in outcome.result.message


def test_run_command_renders_check_name() -> None:
    """Command templates should expand the failing check name."""
    outcome = _run(
        "run_command",
        {"command": "echo restarting {check_name}", "timeout_seconds": 5},
        action_id="act-cmd-1",
        check_name="postfix",
    )

    assert outcome.result.ok is True
    assert outcome.result.details["command"] == "echo restarting postfix"
    assert "restarting postfix" in outcome.result.details["output"]
    assert outcome.result.details["exit_code"] == "0"


def test_run_command_unknown_user_fails_with_identity_code() -> None:
    """An unknown target user should fail the action."""
    outcome = _run(
        "run_command",
        {"command": "true", "user": "srd-no-such-user"},
        action_id="act-cmd-2",
    )

    assert outcome.result.ok is False
    assert outcome.result.details.get("code") == "identity_lookup"


def test_run_command_rejects_invalid_timeout() -> None:
    """Non-positive timeouts should be rejected during validation."""
    outcome = _run(
        "run_command",
        {"command": "true", "timeout_seconds": "0"},
        action_id="act-cmd-3",
    )

    assert outcome.result.ok is False
    assert outcome.result.details.get("code") == "invalid_payload"


def test_run_command_missing_command_fails() -> None:
    """A missing command should fail payload validation."""
    outcome = _run("run_command", {}, action_id="act-cmd-4")

    assert outcome.result.ok is False
    assert outcome.result.details.get("code") == "invalid_payload"


def test_log_action_appends_rendered_line(tmp_path: Path) -> None:
    """The log action should create the file with its header."""
    target = tmp_path / "srd.log"
    outcome = _run(
        "log",
        {"path": str(target), "line": "{check_name} failed ({action_id})", "header": "# srd"},
        action_id="act-log-1",
    )

    assert outcome.result.ok is True
    assert outcome.result.details["created"] == "true"
    assert target.read_text() == "# srd\nnginx failed (act-log-1)\n"


def test_log_action_failure_is_audited_through_logging(tmp_path: Path, caplog: Any) -> None:
    """The default audit sink should log the action details without raising."""
    caplog.set_level(logging.INFO, logger="srd.audit")
    outcome = _run(
        "log",
        {"path": str(tmp_path / "missing" / "srd.log"), "line": "nginx failed"},
        action_id="act-log-3",
    )

    assert outcome.result.ok is False
    assert outcome.result.details["created"] == "false"
    records = [r for r in caplog.records if r.name == "srd.audit"]
    assert [r.getMessage() for r in records] == ["remediation.failed"]
    assert records[0].fields["created"] == "false"


def test_log_action_rejects_multi_line_input(tmp_path: Path) -> None:
    """Only single lines may be appended."""
    outcome = _run(
        "log",
        {"path": str(tmp_path / "srd.log"), "line": "one\ntwo"},
        action_id="act-log-2",
    )

    assert outcome.result.ok is False
    assert not (tmp_path / "srd.log").exists()


def test_influx_requires_endpoint_service() -> None:
    """The influx action cannot run without a wired endpoint."""
    outcome = _run("influx", {"line": "health ok=1i"}, action_id="act-influx-1")

    assert outcome.result.ok is False
    assert outcome.result.details.get("code") == "missing_service"


def test_influx_dry_run_describes_target() -> None:
    """Dry-run should not open a connection."""
    endpoint = _endpoint(8086)
    outcome = _run(
        "influx",
        {"line": "health,check={check_name} ok=0i"},
        dry_run=True,
        action_id="act-influx-2",
        services={"influx": endpoint},
    )

    assert outcome.result.ok is True
    assert outcome.result.details["line"] == "health,check=nginx ok=0i"
    assert endpoint.connect_attempts == 0


def test_influx_execute_pushes_and_reuses_connection() -> None:
    """Two pushes through the executor should share one connection."""
    with MockInfluxServer() as server:
        endpoint = _endpoint(server.port)
        try:
            first = _run("influx", {"line": "health ok=1i"}, action_id="act-influx-3", services={"influx": endpoint})
            second = _run("influx", {"line": "health ok=2i"}, action_id="act-influx-4", services={"influx": endpoint})
        finally:
            endpoint.close()

        assert first.result.ok is True
        assert second.result.ok is True
        assert server.wait_for_requests(2)
        assert [body for _, body in server.requests] == [b"health ok=1i\n", b"health ok=2i\n"]
        assert endpoint.connect_attempts == 1


def test_noop_and_audit_events_are_recorded_in_order() -> None:
    """Each request should produce exactly one audit event."""
    sink = InMemoryRemediationAuditSink()
    executor = RemediationExecutor(registry=_registry(), audit_sink=sink)
    for action_id in ("act-a", "act-b"):
        executor.run(
            ExecutionRequest(ctx=_ctx(action_id=action_id), action_type="noop", payload={}, dry_run=True)
        )

    events = sink.events()
    assert [e.action_id for e in events] == ["act-a", "act-b"]
    assert all(e.ok and e.dry_run for e in events)
    assert events[0].check_name == "nginx"
