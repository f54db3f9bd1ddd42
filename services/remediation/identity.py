"""User identity resolution for privilege drop before exec."""

from __future__ import annotations

import os
import pwd
from dataclasses import dataclass


class IdentityLookupError(LookupError):
    """Raised when a user name cannot be resolved in the user database."""


@dataclass(frozen=True)
class Identity:
    """Numeric identity a child process switches to."""

    name: str
    uid: int
    gid: int
    home: str = ""


def resolve_identity(name: str) -> Identity:
    """Resolve a user name through the system user database."""
    username = str(name or "").strip()
    if not username:
        raise IdentityLookupError("user name must be non-empty")
    try:
        entry = pwd.getpwnam(username)
    except KeyError as exc:
        raise IdentityLookupError(f"unknown user: {username!r}") from exc
    return Identity(name=username, uid=entry.pw_uid, gid=entry.pw_gid, home=entry.pw_dir)


def is_current_identity(identity: Identity) -> bool:
    """Return True when the agent already runs as ``identity``."""
    return os.geteuid() == identity.uid and os.getegid() == identity.gid
