"""Unit tests for centralized configuration parsing and validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from infra.config import Settings, ValidationError, clear_settings_cache, get_settings


def test_settings_defaults() -> None:
    """An empty environment should yield the documented defaults."""
    settings = Settings.from_env(env={}, env_file=".missing.env")

    assert settings.runner.poll_interval_seconds == 0.1
    assert settings.metrics.connect_wait_seconds == 10.0
    assert settings.metrics.read_buffer_size == 128
    assert settings.metrics.path == "/api/v2/write"
    assert settings.init.dry_mode is False
    assert settings.logging.level == "INFO"


def test_settings_reads_flat_env_keys() -> None:
    """Flat SRD_* env keys should map to nested settings models."""
    env = {
        "SRD_LOG_LEVEL": "debug",
        "SRD_LOG_JSON": "1",
        "SRD_POLL_INTERVAL_SECONDS": "0.05",
        "SRD_COMMAND_TIMEOUT_SECONDS": "12",
        "SRD_METRICS_HOST": "10.0.0.5",
        "SRD_METRICS_PORT": "9999",
        "SRD_METRICS_PATH": "write?db=health",
        "SRD_METRICS_AUTHORIZATION": "Token abc",
        "SRD_SYSTEMCTL": "/usr/bin/systemctl",
        "SRD_INIT_DRY_MODE": "true",
    }
    settings = Settings.from_env(env=env, env_file=".missing.env")

    assert settings.logging.level == "DEBUG"
    assert settings.logging.json_logs is True
    assert settings.runner.poll_interval_seconds == 0.05
    assert settings.runner.default_timeout_seconds == 12.0
    assert settings.metrics.host == "10.0.0.5"
    assert settings.metrics.port == 9999
    assert settings.metrics.path == "/write?db=health"
    assert settings.metrics.authorization == "Token abc"
    assert settings.init.systemctl_path == "/usr/bin/systemctl"
    assert settings.init.dry_mode is True


def test_nested_env_keys_take_precedence_over_flat() -> None:
    """Nested env keys should be supported with `__` delimiter and win."""
    env = {
        "METRICS__HOST": "influx.internal",
        "SRD_METRICS_HOST": "ignored",
        "INFLUX_PORT": "8087",
        "RUNNER__KILL_GRACE_SECONDS": "0.5",
    }
    settings = Settings.from_env(env=env, env_file=".missing.env")

    assert settings.metrics.host == "influx.internal"
    assert settings.metrics.port == 8087
    assert settings.runner.kill_grace_seconds == 0.5


@pytest.mark.parametrize(
    "env",
    [
        {"SRD_METRICS_PORT": "0"},
        {"SRD_POLL_INTERVAL_SECONDS": "0"},
        {"SRD_METRICS_TIMEOUT_SECONDS": "-1"},
        {"SRD_METRICS_READ_BUFFER_SIZE": "4"},
    ],
)
def test_settings_invalid_values_raise_validation_error(env: dict[str, str]) -> None:
    """Invalid constrained values should fail schema validation."""
    with pytest.raises(ValidationError):
        Settings.from_env(env=env, env_file=".missing.env")


def test_invalid_log_level_falls_back_to_info() -> None:
    """Unknown log levels should normalize to INFO."""
    settings = Settings.from_env(env={"SRD_LOG_LEVEL": "chatty"}, env_file=".missing.env")
    assert settings.logging.level == "INFO"


def test_dotenv_values_are_overridden_by_process_env(tmp_path: Path) -> None:
    """Process env should win over `.env` entries."""
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local overrides\nSRD_METRICS_HOST='dotenv-host'\nSRD_METRICS_PORT=8181\n",
        encoding="utf-8",
    )
    settings = Settings.from_env(env={"SRD_METRICS_PORT": "8282"}, env_file=str(env_file))

    assert settings.metrics.host == "dotenv-host"
    assert settings.metrics.port == 8282


def test_get_settings_reload_rebuilds_cache(monkeypatch: Any) -> None:
    """Reload should rebuild cached settings from current process env."""
    clear_settings_cache()
    monkeypatch.setenv("SRD_METRICS_HOST", "first")
    first = get_settings(reload=True)

    monkeypatch.setenv("SRD_METRICS_HOST", "second")
    second = get_settings(reload=True)

    assert first.metrics.host == "first"
    assert second.metrics.host == "second"
    clear_settings_cache()
