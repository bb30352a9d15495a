"""ASGI fixtures and mocks for unit tests."""

from __future__ import annotations

import typing as t
from unittest.mock import AsyncMock, Mock

import pytest


class SentMessages:
    """ASGI send callable that records every message."""

    def __init__(self) -> None:
        self.messages: t.List[t.Dict[str, t.Any]] = []

    async def __call__(self, message: t.Dict[str, t.Any]) -> None:
        self.messages.append(message)

    @property
    def start(self) -> t.Dict[str, t.Any]:
        for message in self.messages:
            if message["type"] == "http.response.start":
                return message
        raise AssertionError("no http.response.start sent")

    @property
    def status(self) -> int:
        return self.start["status"]

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages if m["type"] == "http.response.body")

    def header(self, name: str) -> t.Optional[str]:
        for key, value in self.start.get("headers", []):
            if bytes(key).decode("latin1").lower() == name:
                return bytes(value).decode("latin1")
        return None


@pytest.fixture
def sent():
    """Recording ASGI send."""
    return SentMessages()


@pytest.fixture
def http_scope():
    """Create a sample HTTP scope."""
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/api/interpret",
        "query_string": b"",
        "root_path": "",
        "headers": [
            (b"content-type", b"application/json"),
            (b"x-forwarded-for", b"203.0.113.7, 10.0.0.1"),
        ],
        "server": ("127.0.0.1", 8000),
        "client": ("127.0.0.1", 12345),
        "state": {},
    }


@pytest.fixture
def make_receive():
    """Build an ASGI receive callable that yields one request body."""

    def factory(body: bytes = b'{"chartData": {"planets": {"sun": {}}}}'):
        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        return receive

    return factory


def _asgi_app(status: int, payload: bytes):
    calls = Mock()

    async def app(scope, receive, send):
        message = await receive()
        calls(message.get("body", b""))
        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [(b"content-type", b"application/json")],
            }
        )
        await send({"type": "http.response.body", "body": payload})

    app.calls = calls
    return app


@pytest.fixture
def json_app():
    """ASGI app answering 200 JSON; `json_app.calls` records request bodies."""
    return _asgi_app(200, b'{"result": "ok"}')


@pytest.fixture
def failing_json_app():
    """ASGI app answering 502 JSON."""
    return _asgi_app(502, b'{"error": "upstream"}')


@pytest.fixture
def mock_redis_client():
    """Mock async Redis client; `client.pipe.execute` returns `[count, pttl]`."""
    client = Mock()
    pipeline = Mock()
    pipeline.execute = AsyncMock(return_value=[1, -1])
    client.pipeline = Mock(return_value=pipeline)
    client.pexpire = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    client.pipe = pipeline
    return client
