"""Deadline-bounded line-protocol push over a reusable non-blocking socket.

One :class:`MetricEndpoint` owns at most one socket plus two readiness
watchers (write and read). ``push`` runs connect, header write, body write and
status read against a single shrinking budget. Every failure goes through
:meth:`MetricEndpoint.invalidate`, which closes the socket and returns the
endpoint to ``DISCONNECTED`` so the next push starts from scratch.
"""

from __future__ import annotations

import errno
import ipaddress
import os
import selectors
import socket
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from infra.config import MetricsConfig
from infra.logging_config import StructuredLogger
from services.remediation.base import FailureKind
from services.remediation.deadline import DeadlineBudget

logger = StructuredLogger(__name__)

SUCCESS_STATUS_LINE = b"HTTP/1.1 204 No Content"
HEADER_TERMINATOR = b"\r\n\r\n"
DEFAULT_CONNECT_WAIT_SECONDS = 10.0
DEFAULT_READ_BUFFER_SIZE = 128

_CONNECT_PENDING = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EAGAIN, errno.EALREADY}

SocketFactory = Callable[[int], Any]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class PushResult:
    """Outcome of one push; truthy when the destination answered 204."""

    ok: bool
    message: str = ""
    failure: FailureKind | None = None
    remaining_budget: float = 0.0

    def __bool__(self) -> bool:
        return self.ok


class ReadinessWatcher:
    """Blocks until one socket is ready in one direction, or a timeout passes."""

    def __init__(self, sock: Any, events: int) -> None:
        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, events)

    def wait(self, timeout: float) -> bool:
        if timeout <= 0:
            return False
        return bool(self._selector.select(timeout))

    def close(self) -> None:
        for key in list(self._selector.get_map().values()):
            self._selector.unregister(key.fileobj)
        self._selector.close()


def _default_socket_factory(family: int) -> socket.socket:
    return socket.socket(family, socket.SOCK_STREAM)


def resolve_address(host: str, port: int) -> tuple[int, tuple[Any, ...]]:
    """Return ``(family, sockaddr)`` for ``host``.

    Literal IPv4/IPv6 addresses are parsed directly; anything else goes
    through name resolution.
    """
    try:
        address = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        if not infos:
            raise OSError(f"no address for {host}") from None
        family, _, _, _, sockaddr = infos[0]
        return family, sockaddr
    if address.version == 6:
        return socket.AF_INET6, (str(address), port, 0, 0)
    return socket.AF_INET, (str(address), port)


def build_request_head(*, path: str, host: str, port: int, content_length: int, authorization: str) -> bytes:
    """Format the fixed HTTP/1.1 POST request head."""
    return (
        f"POST {path} HTTP/1.1\r\n"
        f"Host: {host}:{port}\r\n"
        f"Content-Length: {content_length}\r\n"
        f"Authorization: {authorization}\r\n"
        "\r\n"
    ).encode("utf-8")


def build_body(line: str) -> bytes:
    return f"{line}\n".encode("utf-8")


@dataclass(eq=False)
class MetricEndpoint:
    """Long-lived metrics destination plus its connection state.

    Callers must serialise pushes on one endpoint.
    """

    host: str
    port: int
    http_path: str
    authorization: str
    timeout: float
    connect_wait: float = DEFAULT_CONNECT_WAIT_SECONDS
    read_buffer_size: int = DEFAULT_READ_BUFFER_SIZE
    socket_factory: SocketFactory = field(default=_default_socket_factory, repr=False)
    state: ConnectionState = field(default=ConnectionState.DISCONNECTED, init=False)
    connect_attempts: int = field(default=0, init=False)
    _sock: Any = field(default=None, init=False, repr=False)
    _write_watcher: ReadinessWatcher | None = field(default=None, init=False, repr=False)
    _read_watcher: ReadinessWatcher | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_config(cls, cfg: MetricsConfig) -> MetricEndpoint:
        return cls(
            host=cfg.host,
            port=cfg.port,
            http_path=cfg.path,
            authorization=cfg.authorization,
            timeout=cfg.timeout_seconds,
            connect_wait=cfg.connect_wait_seconds,
            read_buffer_size=cfg.read_buffer_size,
        )

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def sock(self) -> Any:
        return self._sock

    def wait_writable(self, timeout: float) -> bool:
        return self._write_watcher is not None and self._write_watcher.wait(timeout)

    def wait_readable(self, timeout: float) -> bool:
        return self._read_watcher is not None and self._read_watcher.wait(timeout)

    def open_socket(self, family: int) -> Any:
        """DISCONNECTED -> CONNECTING: create the socket and its watchers."""
        if self._sock is not None:
            self.invalidate()
        sock = self.socket_factory(family)
        try:
            sock.setblocking(False)
            self._write_watcher = ReadinessWatcher(sock, selectors.EVENT_WRITE)
            self._read_watcher = ReadinessWatcher(sock, selectors.EVENT_READ)
        except (OSError, ValueError):
            self._sock = sock
            self.invalidate()
            raise
        self._sock = sock
        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        return sock

    def mark_connected(self) -> None:
        self.state = ConnectionState.CONNECTED

    def invalidate(self) -> None:
        """Any state -> DISCONNECTED, releasing watchers and the socket."""
        for watcher in (self._write_watcher, self._read_watcher):
            if watcher is not None:
                watcher.close()
        self._write_watcher = None
        self._read_watcher = None
        if self._sock is not None:
            self._sock.close()
        self._sock = None
        self.state = ConnectionState.DISCONNECTED

    def close(self) -> None:
        self.invalidate()


def _fail(
    endpoint: MetricEndpoint,
    budget: DeadlineBudget,
    kind: FailureKind,
    message: str,
    **fields: Any,
) -> PushResult:
    endpoint.invalidate()
    logger.error("influx.push_failed", endpoint=endpoint.address, code=kind.value, reason=message, **fields)
    return PushResult(ok=False, message=message, failure=kind, remaining_budget=budget.remaining)


def _ensure_connected(endpoint: MetricEndpoint, budget: DeadlineBudget) -> PushResult | None:
    if endpoint.state is ConnectionState.CONNECTED and endpoint.sock is not None:
        return None

    try:
        family, sockaddr = resolve_address(endpoint.host, endpoint.port)
    except (OSError, UnicodeError, OverflowError) as exc:
        return _fail(
            endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
            f"unable to get an IP for {endpoint.host}: {exc}",
        )

    try:
        sock = endpoint.open_socket(family)
    except (OSError, ValueError) as exc:
        return _fail(
            endpoint, budget, FailureKind.RESOURCE_EXHAUSTION,
            f"unable to create socket: {exc}",
        )

    try:
        err = sock.connect_ex(sockaddr)
    except (OSError, OverflowError) as exc:
        return _fail(
            endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
            f"unable to connect to {endpoint.address}: {exc}",
        )
    if err == 0:
        endpoint.mark_connected()
        logger.debug("influx.connected", endpoint=endpoint.address)
        return None
    if err not in _CONNECT_PENDING:
        return _fail(
            endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
            f"unable to connect to {endpoint.address}: {os.strerror(err)}",
        )

    logger.debug("influx.connect_pending", endpoint=endpoint.address)
    started = budget.now()
    ready = endpoint.wait_writable(endpoint.connect_wait)
    budget.consume_since(started)
    if not ready:
        return _fail(
            endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
            f"unable to connect to {endpoint.address} within {endpoint.connect_wait:g}s",
        )
    so_error = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
    if so_error:
        return _fail(
            endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
            f"unable to connect to {endpoint.address}: {os.strerror(so_error)}",
        )
    endpoint.mark_connected()
    logger.debug("influx.connected", endpoint=endpoint.address, remaining=round(budget.remaining, 3))
    return None


def _send_all(endpoint: MetricEndpoint, data: bytes, budget: DeadlineBudget, phase: str) -> PushResult | None:
    view = memoryview(data)
    sent = 0
    while sent < len(data):
        if budget.exhausted:
            return _fail(endpoint, budget, FailureKind.TIMEOUT, f"timeout sending {phase} to {endpoint.address}")
        try:
            written = endpoint.sock.send(view[sent:])
        except (BlockingIOError, InterruptedError):
            started = budget.now()
            ready = endpoint.wait_writable(budget.remaining)
            budget.consume_since(started)
            if not ready:
                return _fail(
                    endpoint, budget, FailureKind.TIMEOUT,
                    f"timeout while waiting to send {phase} to {endpoint.address}",
                )
            continue
        except OSError as exc:
            return _fail(
                endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
                f"unable to send {phase} to {endpoint.address}: {exc}",
            )
        if written <= 0:
            return _fail(
                endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
                f"connection to {endpoint.address} stopped accepting {phase}",
            )
        sent += written
    return None


def _recv_some(endpoint: MetricEndpoint, budget: DeadlineBudget) -> bytes | PushResult:
    """Read one chunk, waiting on the read watcher within the budget."""
    while True:
        if budget.exhausted:
            return _fail(
                endpoint, budget, FailureKind.TIMEOUT,
                f"timeout for an answer from {endpoint.address}",
            )
        try:
            return endpoint.sock.recv(endpoint.read_buffer_size)
        except (BlockingIOError, InterruptedError):
            started = budget.now()
            ready = endpoint.wait_readable(budget.remaining)
            budget.consume_since(started)
            if not ready:
                return _fail(
                    endpoint, budget, FailureKind.TIMEOUT,
                    f"timeout for an answer from {endpoint.address}",
                )
        except OSError as exc:
            return _fail(
                endpoint, budget, FailureKind.CONNECTIVITY_FAILURE,
                f"unable to receive answer from {endpoint.address}: {exc}",
            )


def _receive_status(endpoint: MetricEndpoint, budget: DeadlineBudget) -> PushResult:
    answer = bytearray()
    need = len(SUCCESS_STATUS_LINE)
    while len(answer) < need:
        chunk = _recv_some(endpoint, budget)
        if isinstance(chunk, PushResult):
            return chunk
        if not chunk:
            return _fail(
                endpoint, budget, FailureKind.PROTOCOL_FAILURE,
                f"connection closed after {len(answer)} bytes of answer",
                received=bytes(answer).decode("latin-1"),
            )
        answer += chunk

    if bytes(answer[:need]) != SUCCESS_STATUS_LINE:
        return _fail(
            endpoint, budget, FailureKind.PROTOCOL_FAILURE,
            "destination did not accept the write",
            received=bytes(answer).decode("latin-1").splitlines()[0] if answer else "",
        )

    _discard_response_headers(endpoint, answer)
    logger.debug("influx.accepted", endpoint=endpoint.address, remaining=round(budget.remaining, 3))
    return PushResult(ok=True, message="accepted", remaining_budget=budget.remaining)


def _discard_response_headers(endpoint: MetricEndpoint, answer: bytearray) -> None:
    """Consume what is already buffered of a 204 response, without waiting.

    A 204 carries no body, so the response ends at the blank line. The write
    is accepted once the status line matched; if the rest of the head is not
    readable yet the connection is dropped rather than reused with stale
    bytes pending.
    """
    while HEADER_TERMINATOR not in answer:
        try:
            chunk = endpoint.sock.recv(endpoint.read_buffer_size)
        except (BlockingIOError, InterruptedError):
            logger.debug("influx.response_incomplete", endpoint=endpoint.address)
            endpoint.invalidate()
            return
        except OSError:
            endpoint.invalidate()
            return
        if not chunk:
            endpoint.invalidate()
            return
        answer += chunk


def push(
    endpoint: MetricEndpoint,
    line: str,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> PushResult:
    """Send one line-protocol payload; True only on ``204 No Content``."""
    budget = DeadlineBudget(endpoint.timeout, clock=clock)
    logger.debug("influx.push_started", endpoint=endpoint.address, timeout=endpoint.timeout)
    if budget.exhausted:
        return _fail(endpoint, budget, FailureKind.TIMEOUT, "no time budget for push")

    failure = _ensure_connected(endpoint, budget)
    if failure is not None:
        return failure
    if budget.exhausted:
        return _fail(endpoint, budget, FailureKind.TIMEOUT, f"timeout for {endpoint.address} after connect")

    body = build_body(line)
    head = build_request_head(
        path=endpoint.http_path,
        host=endpoint.host,
        port=endpoint.port,
        content_length=len(body),
        authorization=endpoint.authorization,
    )
    for phase, data in (("header", head), ("body", body)):
        failure = _send_all(endpoint, data, budget, phase)
        if failure is not None:
            return failure

    return _receive_status(endpoint, budget)
