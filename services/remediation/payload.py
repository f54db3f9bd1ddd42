"""Payload normalization helpers for the CLI and action configuration."""

from __future__ import annotations

import json
from typing import Any


def normalize_action_payload(value: Any) -> dict[str, Any]:
    """Normalize remediation action payload to a dictionary.

    Args:
        value: Payload value that may be a dict or a JSON object string.

    Returns:
        Normalized dictionary payload. Invalid/non-dict inputs return {}.
    """
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def merge_payload(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated with the non-None values of ``overrides``."""
    merged = dict(base)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged
