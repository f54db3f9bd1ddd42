"""Deadline-bounded shell command execution.

``run_command`` spawns ``/bin/sh -c <command>`` in its own process group,
drains its output while polling liveness at a fixed interval, and kills the
whole group once the deadline passes. Every exit path reaps the child and
closes the pipe.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from infra.config import get_settings
from infra.logging_config import StructuredLogger
from services.remediation.base import FailureKind
from services.remediation.identity import (
    Identity,
    IdentityLookupError,
    is_current_identity,
    resolve_identity,
)

logger = StructuredLogger(__name__)

SHELL = "/bin/sh"
_READ_CHUNK = 65536
# Upper bound per poll so a fast writer cannot starve the deadline check
_MAX_READ_PER_POLL = 4 * _READ_CHUNK


@dataclass(frozen=True)
class CommandSpec:
    """One shell command to run under a wall-clock deadline."""

    command: str
    run_as_user: str | None = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not str(self.command or "").strip():
            raise ValueError("command must be non-empty")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one ``run_command`` call."""

    succeeded: bool
    captured_output: str = ""
    message: str = ""
    exit_code: int | None = None
    failure: FailureKind | None = None
    elapsed: float = 0.0
    output_truncated: bool = False


@dataclass(frozen=True)
class ProcessStatus:
    """Liveness snapshot of a spawned child.

    ``pid`` is the identifier returned by the reaping wait call, or None when
    the child is still running or could not be reaped.
    """

    running: bool
    pid: int | None = None
    exit_code: int | None = None


class ProcessHandle(Protocol):
    """Control surface over one spawned child."""

    pid: int

    def poll(self) -> ProcessStatus:
        """Reap the child if it has exited, without blocking."""

    def read_available(self) -> bytes:
        """Return whatever output is buffered, without blocking."""

    def terminate(self, grace: float) -> ProcessStatus:
        """Signal the child's process group and reap it."""

    def close(self) -> None:
        """Release pipes held by the parent."""


class ProcessSpawner(Protocol):
    """Capability that starts a shell command as a child process."""

    def spawn(self, command: str, identity: Identity | None) -> ProcessHandle:
        """Start ``command``; raises OSError when no pipe/process can be created."""


class PosixProcessHandle:
    """Process handle backed by ``subprocess.Popen`` and ``os.waitpid``."""

    def __init__(self, proc: subprocess.Popen[bytes]) -> None:
        self._proc = proc
        self.pid = proc.pid
        self._status: ProcessStatus | None = None
        self._stdout_fd: int | None = None
        if proc.stdout is not None:
            self._stdout_fd = proc.stdout.fileno()
            os.set_blocking(self._stdout_fd, False)

    def poll(self) -> ProcessStatus:
        if self._status is not None:
            return self._status
        try:
            pid, raw_status = os.waitpid(self.pid, os.WNOHANG)
        except ChildProcessError:
            # Reaped elsewhere; the exit cannot be attributed to our child.
            self._status = ProcessStatus(running=False)
            self._proc.returncode = -1
            return self._status
        if pid == 0:
            return ProcessStatus(running=True)
        exit_code = os.waitstatus_to_exitcode(raw_status)
        self._status = ProcessStatus(running=False, pid=pid, exit_code=exit_code)
        # Popen must not try to reap the pid again.
        self._proc.returncode = exit_code
        return self._status

    def read_available(self) -> bytes:
        if self._stdout_fd is None:
            return b""
        chunks: list[bytes] = []
        total = 0
        while total < _MAX_READ_PER_POLL:
            try:
                chunk = os.read(self._stdout_fd, _READ_CHUNK)
            except BlockingIOError:
                break
            if not chunk:
                break
            chunks.append(chunk)
            total += len(chunk)
        return b"".join(chunks)

    def _signal_group(self, sig: signal.Signals) -> None:
        try:
            os.killpg(self.pid, sig)
        except (ProcessLookupError, PermissionError):
            pass

    def _exited(self) -> bool:
        """Report whether the child exited, leaving it unreaped."""
        try:
            info = os.waitid(os.P_PID, self.pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
        except ChildProcessError:
            # Reaped elsewhere; the group id may already be recycled.
            self._status = ProcessStatus(running=False)
            self._proc.returncode = -1
            return True
        return info is not None

    def terminate(self, grace: float) -> ProcessStatus:
        """SIGTERM the group, SIGKILL it after ``grace``, then reap the child.

        The child stays unreaped until the final group SIGKILL, so its pid
        still pins the process group id and the signal cannot reach a
        recycled group.
        """
        if self._status is not None:
            return self._status
        self._signal_group(signal.SIGTERM)
        deadline = time.monotonic() + max(0.0, grace)
        while not self._exited() and time.monotonic() < deadline:
            time.sleep(0.01)
        if self._status is not None:
            return self._status
        self._signal_group(signal.SIGKILL)
        try:
            pid, raw_status = os.waitpid(self.pid, 0)
        except ChildProcessError:
            self._status = ProcessStatus(running=False)
            self._proc.returncode = -1
        else:
            exit_code = os.waitstatus_to_exitcode(raw_status)
            self._status = ProcessStatus(running=False, pid=pid, exit_code=exit_code)
            self._proc.returncode = exit_code
        return self._status

    def close(self) -> None:
        if self._proc.stdout is not None:
            self._proc.stdout.close()
        self._stdout_fd = None


class PosixProcessSpawner:
    """Spawn ``/bin/sh -c`` children in a fresh session."""

    def __init__(self, shell: str = SHELL) -> None:
        self._shell = shell

    def spawn(self, command: str, identity: Identity | None) -> PosixProcessHandle:
        kwargs: dict[str, object] = {}
        if identity is not None and not is_current_identity(identity):
            kwargs.update(user=identity.uid, group=identity.gid, extra_groups=[])
        proc = subprocess.Popen(  # noqa: S603
            [self._shell, "-c", command],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            start_new_session=True,
            close_fds=True,
            **kwargs,  # type: ignore[arg-type]
        )
        return PosixProcessHandle(proc)


class OutputTail:
    """Keeps the last ``limit`` bytes written to it and counts the rest."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._buf = bytearray()
        self.dropped = 0

    def append(self, chunk: bytes) -> None:
        if not chunk:
            return
        self._buf += chunk
        excess = len(self._buf) - self._limit
        if excess > 0:
            del self._buf[:excess]
            self.dropped += excess

    @property
    def truncated(self) -> bool:
        return self.dropped > 0

    def text(self) -> str:
        return bytes(self._buf).decode("utf-8", errors="replace")


def run_command(
    spec: CommandSpec,
    *,
    poll_interval: float | None = None,
    kill_grace: float | None = None,
    max_output_bytes: int | None = None,
    spawner: ProcessSpawner | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> CommandResult:
    """Run ``spec.command`` and wait for it at most ``spec.timeout`` seconds.

    Args:
        spec: Command, optional target user and deadline.
        poll_interval: Seconds between liveness polls (config default 0.1).
        kill_grace: Seconds to wait after SIGTERM before SIGKILL.
        max_output_bytes: Only the last this-many bytes of output are kept.
        spawner: Process spawning capability, POSIX by default.

    Returns:
        CommandResult. ``succeeded`` is True only when the spawned child itself
        was reaped before the deadline.
    """
    runner_cfg = get_settings().runner
    interval = runner_cfg.poll_interval_seconds if poll_interval is None else poll_interval
    grace = runner_cfg.kill_grace_seconds if kill_grace is None else kill_grace
    limit = runner_cfg.max_output_bytes if max_output_bytes is None else max_output_bytes
    spawner = spawner or PosixProcessSpawner()

    identity: Identity | None = None
    if spec.run_as_user:
        try:
            identity = resolve_identity(spec.run_as_user)
        except IdentityLookupError as exc:
            logger.error("command.identity_lookup_failed", user=spec.run_as_user, error=str(exc))
            return CommandResult(
                succeeded=False,
                message=f"cannot run as {spec.run_as_user!r}: {exc}",
                failure=FailureKind.IDENTITY_LOOKUP,
            )

    try:
        handle = spawner.spawn(spec.command, identity)
    except OSError as exc:
        logger.error("command.spawn_failed", command=spec.command, error=str(exc))
        return CommandResult(
            succeeded=False,
            message=f"unable to spawn command: {exc}",
            failure=FailureKind.RESOURCE_EXHAUSTION,
        )

    started = clock()
    output = OutputTail(limit)
    try:
        while True:
            output.append(handle.read_available())
            status = handle.poll()
            if not status.running:
                break
            elapsed = clock() - started
            if elapsed >= spec.timeout:
                status = handle.terminate(grace)
                output.append(handle.read_available())
                logger.warning(
                    "command.timeout",
                    command=spec.command,
                    pid=handle.pid,
                    timeout=spec.timeout,
                    dropped_bytes=output.dropped,
                )
                return CommandResult(
                    succeeded=False,
                    captured_output=output.text(),
                    message=f"command took longer than {spec.timeout:g}s and was killed",
                    exit_code=status.exit_code,
                    failure=FailureKind.TIMEOUT,
                    elapsed=clock() - started,
                    output_truncated=output.truncated,
                )
            sleep(min(interval, spec.timeout - elapsed))
        output.append(handle.read_available())
    finally:
        handle.close()

    elapsed = clock() - started
    text = output.text()
    logger.debug("command.output", command=spec.command, output=text, dropped_bytes=output.dropped)
    if status.pid != handle.pid:
        logger.error("command.reap_mismatch", command=spec.command, pid=handle.pid, reaped=status.pid)
        return CommandResult(
            succeeded=False,
            captured_output=text,
            message=f"could not collect exit status of pid {handle.pid}",
            failure=FailureKind.RESOURCE_EXHAUSTION,
            elapsed=elapsed,
            output_truncated=output.truncated,
        )
    logger.info(
        "command.finished",
        command=spec.command,
        pid=handle.pid,
        exit_code=status.exit_code,
        elapsed=round(elapsed, 3),
    )
    return CommandResult(
        succeeded=True,
        captured_output=text,
        message=f"command exited with status {status.exit_code}",
        exit_code=status.exit_code,
        elapsed=elapsed,
        output_truncated=output.truncated,
    )
