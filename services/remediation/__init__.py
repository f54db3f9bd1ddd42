"""Remediation framework primitives.

This package contains:
- action contracts (`base.py`) and the registry/executor around them
- the deadline-bounded action core (`command_runner.py`, `metric_pusher.py`)
- host collaborators (`init_manager.py`, `log_append.py`, `identity.py`)
- built-in actions (`actions/`)
"""

from services.remediation.base import (
    ActionContext,
    ActionResult,
    FailureKind,
    RemediationAction,
)
from services.remediation.command_runner import CommandResult, CommandSpec, run_command
from services.remediation.executor import ExecutionOutcome, ExecutionRequest, RemediationExecutor
from services.remediation.metric_pusher import ConnectionState, MetricEndpoint, PushResult, push
from services.remediation.preconditions import (
    ActionPrecondition,
    PreconditionResult,
    RequiredPayloadKeysPrecondition,
    RequiredServicePrecondition,
)
from services.remediation.registry import ActionRegistry, list_action_types, register_action

__all__ = [
    "ActionContext",
    "ActionResult",
    "FailureKind",
    "RemediationAction",
    "CommandSpec",
    "CommandResult",
    "run_command",
    "MetricEndpoint",
    "ConnectionState",
    "PushResult",
    "push",
    "PreconditionResult",
    "ActionPrecondition",
    "RequiredPayloadKeysPrecondition",
    "RequiredServicePrecondition",
    "ActionRegistry",
    "register_action",
    "list_action_types",
    "ExecutionRequest",
    "ExecutionOutcome",
    "RemediationExecutor",
]
