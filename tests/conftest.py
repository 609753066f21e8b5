"""Shared pytest fixtures for sqapi tests."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl, urlsplit

import pytest
from loguru import logger

from sqapi._client.dtos import RawResponse
from sqapi.models import ApiSession
from tests.fixtures.fake_transport import FakeTransport, MemorySink, RecordingReporter

if TYPE_CHECKING:
    from collections.abc import Iterator

HOST = "https://squidle.example.org"
TOKEN = "test-token-123"

_SQAPI_ENV_VARS = (
    "SQUIDLE_HOST",
    "SQUIDLE_API_TOKEN",
    "SQAPI_CONFIG",
    "SQAPI_NO_INTERACTIVE",
)


def make_response(
    status_code: int = 200,
    *,
    json_body: Any = None,  # noqa: ANN401
    content: bytes = b"",
    headers: dict[str, str] | None = None,
) -> RawResponse:
    """Build a ``RawResponse``; *json_body* is serialized into the content."""
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
    return RawResponse(status_code=status_code, headers=headers or {}, content=content)


def query_of(url: str) -> dict[str, str]:
    """Return the decoded query parameters of *url* (last value wins)."""
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


def q_of(url: str) -> dict[str, Any]:
    """Return the decoded ``q`` JSON object of *url*."""
    return json.loads(query_of(url)["q"])


@pytest.fixture(autouse=True)
def _clean_sqapi_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own SQUIDLE+ settings out of tests."""
    for var in _SQAPI_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def session() -> ApiSession:
    """Session against a fake host with a fixed token."""
    return ApiSession(host=HOST, auth=TOKEN)


@pytest.fixture
def transport() -> FakeTransport:
    """Empty scripted transport; tests push responses onto it."""
    return FakeTransport()


@pytest.fixture
def sink() -> MemorySink:
    """In-memory disk sink."""
    return MemorySink()


@pytest.fixture
def reporter() -> RecordingReporter:
    """Progress reporter that records values."""
    return RecordingReporter()


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Collect loguru messages at DEBUG and above."""
    messages: list[str] = []
    handler_id = logger.add(lambda msg: messages.append(str(msg)), level="DEBUG")
    yield messages
    logger.remove(handler_id)
