"""Base contracts for remediation actions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from services.remediation.preconditions import ActionPrecondition


class FailureKind(str, Enum):
    """Failure taxonomy shared by the action core and the action layer."""

    RESOURCE_EXHAUSTION = "resource_exhaustion"
    TIMEOUT = "timeout"
    PROTOCOL_FAILURE = "protocol_failure"
    CONNECTIVITY_FAILURE = "connectivity_failure"
    IDENTITY_LOOKUP = "identity_lookup"
    INVALID_PAYLOAD = "invalid_payload"


@dataclass(frozen=True)
class ActionContext:
    """Immutable runtime context for one remediation action."""

    action_id: str
    check_name: str
    run_id: str = ""
    services: Mapping[str, Any] = field(default_factory=dict)

    def render(self, template: str) -> str:
        """Expand ``{check_name}``/``{action_id}``/``{run_id}`` placeholders.

        Unknown placeholders and stray braces are left untouched so that
        shell snippets such as ``awk '{print $1}'`` survive unchanged.
        """
        text = str(template)
        for key, value in (
            ("check_name", self.check_name),
            ("action_id", self.action_id),
            ("run_id", self.run_id),
        ):
            text = text.replace("{" + key + "}", str(value))
        return text


@dataclass(frozen=True)
class ActionResult:
    """Normalized remediation action result."""

    ok: bool
    message: str = ""
    details: dict[str, str] = field(default_factory=dict)

    @classmethod
    def failure(cls, kind: FailureKind, message: str, **details: str) -> ActionResult:
        """Build a failed result tagged with a failure code."""
        return cls(ok=False, message=message, details={"code": kind.value, **details})


class RemediationAction(ABC):
    """Abstract remediation action contract."""

    action_type: str = ""
    preconditions: tuple[ActionPrecondition, ...] = ()

    def validate_payload(self, payload: Mapping[str, Any]) -> None:
        """Validate action payload before dry-run/execute."""
        _ = payload

    @abstractmethod
    def dry_run(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        """Describe the intended action without touching the host."""
        raise NotImplementedError

    @abstractmethod
    def execute(self, ctx: ActionContext, payload: Mapping[str, Any]) -> ActionResult:
        """Execute action against the host."""
        raise NotImplementedError
