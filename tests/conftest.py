"""
Shared fixtures for unit and integration tests.

Provides:
- Settings isolated from any local .env file
- A freshly built application per test
- A TestClient bound to that application
- A raw ASGI caller for requests httpx would normalize (e.g. bad escapes)
"""

import asyncio
from typing import Callable, Dict, Iterable, Tuple

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.src.config import Settings
from api.src.main import create_app


EXPECTED_PAYLOAD = bytes(ord("0") + i % 10 for i in range(1, 20000))


@pytest.fixture
def expected_payload() -> bytes:
    """The 19,999-byte digit payload served by /test."""
    return EXPECTED_PAYLOAD


@pytest.fixture
def settings_overrides() -> Dict:
    """Per-test Settings overrides; override this fixture to customise."""
    return {}


@pytest.fixture
def settings(settings_overrides) -> Settings:
    """Settings with defaults, ignoring .env files."""
    return Settings(_env_file=None, **settings_overrides)


@pytest.fixture
def app(settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


async def _call_asgi(
    app: FastAPI,
    method: str,
    path: str,
    query_string: bytes,
    body: bytes,
    headers: Iterable[Tuple[str, str]],
) -> Tuple[int, Dict[str, str], bytes]:
    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers]
    raw_headers.append((b"host", b"testserver"))
    if body:
        raw_headers.append((b"content-length", str(len(body)).encode("ascii")))

    scope = {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.4"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("ascii"),
        "root_path": "",
        "query_string": query_string,
        "headers": raw_headers,
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
        "state": {},
    }

    request_sent = False
    response_complete = asyncio.Event()
    status_code = 0
    response_headers: Dict[str, str] = {}
    chunks = []

    async def receive():
        nonlocal request_sent
        if not request_sent:
            request_sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        await response_complete.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        nonlocal status_code
        if message["type"] == "http.response.start":
            status_code = message["status"]
            for key, value in message.get("headers", []):
                response_headers[key.decode("latin-1")] = value.decode("latin-1")
        elif message["type"] == "http.response.body":
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                response_complete.set()

    await app(scope, receive, send)
    return status_code, response_headers, b"".join(chunks)


@pytest.fixture
def raw_request(app) -> Callable[..., Tuple[int, Dict[str, str], bytes]]:
    """
    Send a request straight to the ASGI app with an untouched query string.

    Returns:
        Callable ``(method, path, query_string=b"", body=b"", headers=())``
        returning ``(status, headers, body)``
    """

    def send_raw(method, path, query_string=b"", body=b"", headers=()):
        return asyncio.run(_call_asgi(app, method, path, query_string, body, headers))

    return send_raw
