"""Audit sink primitives for remediation execution events."""

from __future__ import annotations

from typing import NamedTuple, Protocol

from infra.logging_config import StructuredLogger


class RemediationAuditEvent(NamedTuple):
    """Immutable remediation execution audit event."""

    action_id: str
    check_name: str
    action_type: str
    dry_run: bool
    ok: bool
    message: str
    details: dict[str, str]


class RemediationAuditSink(Protocol):
    """Protocol for remediation audit event sinks."""

    def sink_name(self) -> str:
        """Return deterministic sink name for diagnostics."""

    def record_event(self, event: RemediationAuditEvent) -> None:
        """Record one remediation execution event."""


class LoggingRemediationAuditSink:
    """Default sink: one structured log entry per executed action."""

    def __init__(self, logger_name: str = "srd.audit") -> None:
        self._logger = StructuredLogger(logger_name)

    def sink_name(self) -> str:
        return "logging"

    def record_event(self, event: RemediationAuditEvent) -> None:
        """Log successes at INFO and failures at ERROR."""
        log = self._logger.info if event.ok else self._logger.error
        fields = {
            **event.details,
            "action_id": event.action_id,
            "check_name": event.check_name,
            "action_type": event.action_type,
            "dry_run": event.dry_run,
            "outcome": event.message,
        }
        log("remediation.completed" if event.ok else "remediation.failed", **fields)


class InMemoryRemediationAuditSink:
    """In-memory audit sink for deterministic unit tests."""

    def __init__(self) -> None:
        self._events: list[RemediationAuditEvent] = []

    def record_event(self, event: RemediationAuditEvent) -> None:
        """Store audit event in insertion order."""
        self._events.append(event)

    def sink_name(self) -> str:
        """Return deterministic sink identifier."""
        return "in_memory"

    def events(self) -> list[RemediationAuditEvent]:
        """Return a copy of recorded events."""
        return list(self._events)
