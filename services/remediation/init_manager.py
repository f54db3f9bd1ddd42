"""Init-system collaborator: host reboot and unit restart."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from infra.config import InitConfig
from infra.logging_config import StructuredLogger

logger = StructuredLogger(__name__)

CommandExecutor = Callable[[Sequence[str], float], "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True)
class InitCallResult:
    """Opaque outcome of one init-system call."""

    ok: bool
    message: str = ""


class InitManager(Protocol):
    """Operations the agent needs from the init system."""

    def reboot(self) -> InitCallResult:
        """Request a host reboot."""

    def restart_unit(self, name: str) -> InitCallResult:
        """Queue a restart job for one unit."""


def _run_systemctl(argv: Sequence[str], timeout: float) -> subprocess.CompletedProcess[str]:
    return subprocess.run(  # noqa: S603
        list(argv),
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


class SystemctlInitManager:
    """Init manager driving systemd through ``systemctl``.

    Restarts use ``--job-mode=fail`` so a conflicting queued job fails the
    request instead of replacing it.
    """

    def __init__(
        self,
        *,
        systemctl: str = "systemctl",
        timeout: float = 90.0,
        executor: CommandExecutor | None = None,
    ) -> None:
        self._systemctl = systemctl
        self._timeout = timeout
        self._executor = executor or _run_systemctl

    @classmethod
    def from_config(cls, cfg: InitConfig) -> SystemctlInitManager:
        return cls(systemctl=cfg.systemctl_path, timeout=cfg.call_timeout_seconds)

    def _call(self, *args: str) -> InitCallResult:
        argv = [self._systemctl, *args]
        try:
            completed = self._executor(argv, self._timeout)
        except subprocess.TimeoutExpired:
            logger.error("init.call_timeout", argv=" ".join(argv), timeout=self._timeout)
            return InitCallResult(ok=False, message=f"{' '.join(argv)} timed out after {self._timeout:g}s")
        except OSError as exc:
            logger.error("init.call_failed", argv=" ".join(argv), error=str(exc))
            return InitCallResult(ok=False, message=f"failed to issue {' '.join(argv)}: {exc}")
        if completed.returncode != 0:
            detail = (completed.stderr or completed.stdout or "").strip()
            logger.error("init.call_failed", argv=" ".join(argv), returncode=completed.returncode, error=detail)
            return InitCallResult(ok=False, message=detail or f"exit status {completed.returncode}")
        logger.debug("init.call_ok", argv=" ".join(argv))
        return InitCallResult(ok=True, message=(completed.stdout or "").strip())

    def reboot(self) -> InitCallResult:
        return self._call("reboot")

    def restart_unit(self, name: str) -> InitCallResult:
        logger.debug("init.restart_unit", unit=name)
        return self._call("restart", "--job-mode=fail", "--", name)


class DryInitManager:
    """Init manager that only records what it was asked to do."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []

    def reboot(self) -> InitCallResult:
        self.calls.append(("reboot",))
        return InitCallResult(ok=True, message="dry mode: reboot skipped")

    def restart_unit(self, name: str) -> InitCallResult:
        self.calls.append(("restart", name))
        return InitCallResult(ok=True, message=f"dry mode: restart of {name} skipped")


def build_init_manager(cfg: InitConfig) -> InitManager:
    """Return the configured init manager."""
    if cfg.dry_mode:
        return DryInitManager()
    return SystemctlInitManager.from_config(cfg)
