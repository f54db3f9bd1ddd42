"""Threaded loopback HTTP endpoint that mimics an InfluxDB write API."""

from __future__ import annotations

import socket
import threading
import time

NO_CONTENT = b"HTTP/1.1 204 No Content\r\n\r\n"
SERVER_ERROR = b"HTTP/1.1 500 Internal Server Error\r\nContent-Length: 0\r\n\r\n"


class MockInfluxServer:
    """Accepts connections and answers each complete POST with ``reply``.

    ``reply=None`` reads requests but never answers. ``close_after_reply``
    drops the connection after each answer.
    """

    def __init__(self, reply: bytes | None = NO_CONTENT, *, close_after_reply: bool = False) -> None:
        self.reply = reply
        self.close_after_reply = close_after_reply
        self.accepted = 0
        self.requests: list[tuple[bytes, bytes]] = []
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(8)
        self._listener.settimeout(0.05)
        self.port = self._listener.getsockname()[1]
        self._accept_thread = threading.Thread(target=self._serve, daemon=True)
        self._accept_thread.start()

    def __enter__(self) -> MockInfluxServer:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def wait_for_requests(self, count: int, timeout: float = 2.0) -> bool:
        """Block until ``count`` requests were fully read."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if len(self.requests) >= count:
                    return True
            time.sleep(0.01)
        return False

    def close(self) -> None:
        self._stop.set()
        self._accept_thread.join(timeout=2)
        self._listener.close()
        for thread in self._threads:
            thread.join(timeout=2)

    def _serve(self) -> None:
        while not self._stop.is_set():
            try:
                conn, _ = self._listener.accept()
            except (TimeoutError, socket.timeout):
                continue
            except OSError:
                return
            with self._lock:
                self.accepted += 1
            thread = threading.Thread(target=self._handle, args=(conn,), daemon=True)
            self._threads.append(thread)
            thread.start()

    def _recv(self, conn: socket.socket) -> bytes | None:
        """Return received bytes, b'' on EOF, None on idle timeout."""
        try:
            return conn.recv(65536)
        except (TimeoutError, socket.timeout):
            return None
        except OSError:
            return b""

    def _handle(self, conn: socket.socket) -> None:
        conn.settimeout(0.05)
        buf = b""
        with conn:
            while not self._stop.is_set():
                while b"\r\n\r\n" not in buf:
                    if self._stop.is_set():
                        return
                    chunk = self._recv(conn)
                    if chunk is None:
                        continue
                    if not chunk:
                        return
                    buf += chunk
                head, buf = buf.split(b"\r\n\r\n", 1)
                length = 0
                for header in head.split(b"\r\n")[1:]:
                    key, _, value = header.partition(b":")
                    if key.strip().lower() == b"content-length":
                        length = int(value.strip())
                while len(buf) < length:
                    if self._stop.is_set():
                        return
                    chunk = self._recv(conn)
                    if chunk is None:
                        continue
                    if not chunk:
                        return
                    buf += chunk
                body, buf = buf[:length], buf[length:]
                with self._lock:
                    self.requests.append((head + b"\r\n\r\n", body))
                if self.reply is None:
                    continue
                conn.sendall(self.reply)
                if self.close_after_reply:
                    return
