"""Append-only log files written by the ``log`` action."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from infra.logging_config import StructuredLogger
from services.remediation.identity import IdentityLookupError, resolve_identity

logger = StructuredLogger(__name__)


@dataclass(frozen=True)
class LogAppendResult:
    ok: bool
    created: bool = False
    message: str = ""


def append_line(
    path: str | os.PathLike[str],
    line: str,
    *,
    owner: str | None = None,
    header: str | None = None,
) -> LogAppendResult:
    """Append ``line`` to ``path``.

    A file created by this call gets ``header`` as its first line and, when
    ``owner`` is given, is chowned to that user. Ownership problems are
    logged but do not fail the append.
    """
    target = Path(path)
    try:
        fd = os.open(target, os.O_WRONLY | os.O_APPEND | os.O_CREAT | os.O_EXCL, 0o644)
        created = True
    except FileExistsError:
        created = False
        try:
            fd = os.open(target, os.O_WRONLY | os.O_APPEND)
        except OSError as exc:
            logger.error("log.open_failed", path=str(target), error=str(exc))
            return LogAppendResult(ok=False, message=f"unable to open {target}: {exc}")
    except OSError as exc:
        logger.error("log.open_failed", path=str(target), error=str(exc))
        return LogAppendResult(ok=False, message=f"unable to open {target}: {exc}")

    try:
        with os.fdopen(fd, "a", encoding="utf-8") as handle:
            if created and header:
                handle.write(header.rstrip("\n") + "\n")
            handle.write(line.rstrip("\n") + "\n")
    except OSError as exc:
        logger.error("log.write_failed", path=str(target), error=str(exc))
        return LogAppendResult(ok=False, created=created, message=f"unable to write {target}: {exc}")

    if created and owner:
        _assign_owner(target, owner)
    return LogAppendResult(ok=True, created=created, message=f"appended to {target}")


def _assign_owner(target: Path, owner: str) -> None:
    try:
        identity = resolve_identity(owner)
    except IdentityLookupError as exc:
        logger.error("log.chown_failed", path=str(target), user=owner, error=str(exc))
        return
    try:
        os.chown(target, identity.uid, identity.gid)
    except OSError as exc:
        logger.error("log.chown_failed", path=str(target), user=owner, error=str(exc))
