"""Property-based tests for the metric push request encoding."""

from __future__ import annotations

import pytest

pytest.importorskip("hypothesis")
from hypothesis import given  # type: ignore  # noqa: E402
from hypothesis import strategies as st

from services.remediation.metric_pusher import build_body, build_request_head

_LINE = st.text(
    alphabet=st.characters(exclude_categories=("Cs",), exclude_characters="\r\n"),
    min_size=1,
    max_size=200,
)
_PATH = st.from_regex(r"/[a-z0-9/_?=&]{0,40}", fullmatch=True)


@given(line=_LINE, path=_PATH, port=st.integers(min_value=1, max_value=65535))
def test_content_length_matches_encoded_body(line: str, path: str, port: int) -> None:
    """Content-Length must count bytes of the UTF-8 body, newline included."""
    body = build_body(line)
    head = build_request_head(
        path=path,
        host="127.0.0.1",
        port=port,
        content_length=len(body),
        authorization="",
    )

    assert body.endswith(b"\n")
    assert body.decode("utf-8") == line + "\n"
    assert f"Content-Length: {len(body)}\r\n".encode() in head
    assert head.startswith(f"POST {path} HTTP/1.1\r\n".encode())
    assert head.endswith(b"\r\n\r\n")
    assert head.count(b"\r\n\r\n") == 1
