"""Shared helpers for remediation action implementations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from infra.config import get_settings
from services.remediation.base import ActionContext
from services.remediation.init_manager import InitManager, build_init_manager


def payload_text(payload: Mapping[str, Any], key: str) -> str:
    """Extract a stripped string value from payload, '' when absent."""
    return str(payload.get(key) or "").strip()


def optional_text(payload: Mapping[str, Any], key: str) -> str | None:
    """Extract a stripped string value from payload, None when absent or blank."""
    return payload_text(payload, key) or None


def payload_seconds(payload: Mapping[str, Any], key: str, default: float) -> float:
    """Parse a positive duration in seconds; raise ValueError when invalid."""
    raw = payload.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number of seconds") from exc
    if value <= 0:
        raise ValueError(f"{key} must be > 0")
    return value


def init_manager_from(ctx: ActionContext) -> InitManager:
    """Resolve init manager from action context, falling back to configuration."""
    manager = ctx.services.get("init")
    if manager is not None:
        return manager
    return build_init_manager(get_settings().init)
