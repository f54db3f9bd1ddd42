"""Centralized application configuration with schema validation.

This module is intentionally compatibility-first:
- Supports flat environment names (for example ``SRD_METRICS_HOST``).
- Supports nested names (for example ``METRICS__HOST``) for future consistency.
- Optionally reads a local ``.env`` file before process env values.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from threading import Lock

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingSettings(BaseModel):
    """Repository-wide logging settings."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)
    override_root_handlers: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        text = str(value or "").strip().upper()
        if text in _LOG_LEVELS:
            return text
        return "INFO"


class RunnerConfig(BaseModel):
    """Command runner timing defaults."""

    model_config = ConfigDict(frozen=True)

    poll_interval_seconds: float = Field(default=0.1, gt=0.0, le=5.0)
    default_timeout_seconds: float = Field(default=30.0, gt=0.0)
    kill_grace_seconds: float = Field(default=2.0, ge=0.0, le=60.0)
    max_output_bytes: int = Field(default=1_048_576, ge=1024)


class MetricsConfig(BaseModel):
    """Metric destination and push budget."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8086, ge=1, le=65535)
    path: str = Field(default="/api/v2/write")
    authorization: str = Field(default="")
    timeout_seconds: float = Field(default=5.0, gt=0.0)
    connect_wait_seconds: float = Field(default=10.0, gt=0.0)
    read_buffer_size: int = Field(default=128, ge=32, le=65536)

    @field_validator("path", mode="before")
    @classmethod
    def _normalize_path(cls, value: object) -> str:
        text = str(value or "").strip()
        if not text:
            return "/api/v2/write"
        if not text.startswith("/"):
            return "/" + text
        return text


class InitConfig(BaseModel):
    """Init-manager collaborator settings."""

    model_config = ConfigDict(frozen=True)

    systemctl_path: str = Field(default="systemctl")
    dry_mode: bool = Field(default=False)
    call_timeout_seconds: float = Field(default=90.0, gt=0.0)


class Settings(BaseModel):
    """Top-level settings model."""

    model_config = ConfigDict(frozen=True)

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    init: InitConfig = Field(default_factory=InitConfig)

    @classmethod
    def from_env(
        cls,
        *,
        env: Mapping[str, str] | None = None,
        env_file: str = ".env",
    ) -> Settings:
        """Build settings from `.env` then environment variables."""
        runtime_env = os.environ if env is None else env
        merged_env = _merge_env(_load_dotenv(Path(env_file)), runtime_env)
        payload = _build_payload(merged_env)
        return cls.model_validate(payload)


def _load_dotenv(path: Path) -> dict[str, str]:
    """Parse a minimal `.env` file format."""
    if not path.exists() or not path.is_file():
        return {}

    values: dict[str, str] = {}
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, raw_value = line.split("=", 1)
        key_clean = key.strip()
        value = raw_value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        if key_clean:
            values[key_clean] = value
    return values


def _merge_env(dotenv_values: Mapping[str, str], runtime_env: Mapping[str, str]) -> dict[str, str]:
    """Return env map where process env overrides `.env` values."""
    merged = {str(k): str(v) for k, v in dotenv_values.items()}
    for key, value in runtime_env.items():
        merged[str(key)] = str(value)
    return merged


def _first_non_empty(env: Mapping[str, str], *keys: str) -> str | None:
    """Return the first non-empty value for the provided keys."""
    for key in keys:
        value = str(env.get(key, "")).strip()
        if value:
            return value
    return None


def _build_payload(env: Mapping[str, str]) -> dict[str, object]:
    """Build nested settings payload from env values."""
    logging_settings = {
        "level": _first_non_empty(env, "LOGGING__LEVEL", "SRD_LOG_LEVEL"),
        "json_logs": _first_non_empty(env, "LOGGING__JSON_LOGS", "SRD_LOG_JSON"),
        "override_root_handlers": _first_non_empty(
            env, "LOGGING__OVERRIDE_ROOT_HANDLERS", "SRD_LOG_OVERRIDE"
        ),
    }
    runner = {
        "poll_interval_seconds": _first_non_empty(
            env, "RUNNER__POLL_INTERVAL_SECONDS", "SRD_POLL_INTERVAL_SECONDS"
        ),
        "default_timeout_seconds": _first_non_empty(
            env, "RUNNER__DEFAULT_TIMEOUT_SECONDS", "SRD_COMMAND_TIMEOUT_SECONDS"
        ),
        "kill_grace_seconds": _first_non_empty(
            env, "RUNNER__KILL_GRACE_SECONDS", "SRD_KILL_GRACE_SECONDS"
        ),
        "max_output_bytes": _first_non_empty(
            env, "RUNNER__MAX_OUTPUT_BYTES", "SRD_MAX_OUTPUT_BYTES"
        ),
    }
    metrics = {
        "host": _first_non_empty(env, "METRICS__HOST", "SRD_METRICS_HOST", "INFLUX_HOST"),
        "port": _first_non_empty(env, "METRICS__PORT", "SRD_METRICS_PORT", "INFLUX_PORT"),
        "path": _first_non_empty(env, "METRICS__PATH", "SRD_METRICS_PATH"),
        "authorization": _first_non_empty(
            env, "METRICS__AUTHORIZATION", "SRD_METRICS_AUTHORIZATION"
        ),
        "timeout_seconds": _first_non_empty(
            env, "METRICS__TIMEOUT_SECONDS", "SRD_METRICS_TIMEOUT_SECONDS"
        ),
        "connect_wait_seconds": _first_non_empty(
            env, "METRICS__CONNECT_WAIT_SECONDS", "SRD_METRICS_CONNECT_WAIT_SECONDS"
        ),
        "read_buffer_size": _first_non_empty(
            env, "METRICS__READ_BUFFER_SIZE", "SRD_METRICS_READ_BUFFER_SIZE"
        ),
    }
    init = {
        "systemctl_path": _first_non_empty(env, "INIT__SYSTEMCTL_PATH", "SRD_SYSTEMCTL"),
        "dry_mode": _first_non_empty(env, "INIT__DRY_MODE", "SRD_INIT_DRY_MODE"),
        "call_timeout_seconds": _first_non_empty(
            env, "INIT__CALL_TIMEOUT_SECONDS", "SRD_INIT_CALL_TIMEOUT_SECONDS"
        ),
    }
    return {
        "logging": {k: v for k, v in logging_settings.items() if v is not None},
        "runner": {k: v for k, v in runner.items() if v is not None},
        "metrics": {k: v for k, v in metrics.items() if v is not None},
        "init": {k: v for k, v in init.items() if v is not None},
    }


_SETTINGS_LOCK = Lock()
_SETTINGS_CACHE: Settings | None = None


def get_settings(*, reload: bool = False) -> Settings:
    """Return cached settings, optionally forcing reload from env."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        if reload or _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = Settings.from_env()
        return _SETTINGS_CACHE


def clear_settings_cache() -> None:
    """Clear in-process settings cache."""
    global _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None


__all__ = [
    "InitConfig",
    "LoggingSettings",
    "MetricsConfig",
    "RunnerConfig",
    "Settings",
    "get_settings",
    "clear_settings_cache",
    "ValidationError",
]
