"""Typed data-transfer objects for raw HTTP responses.

These simple dataclasses are the boundary between the transport adapter
and the rest of the library, and are trivial to construct in tests.
Header names are normalized to lower case on construction.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

_HTTP_OK_MIN = 200
_HTTP_OK_MAX = 300


def _lower_keys(headers: dict[str, str]) -> dict[str, str]:
    return {str(k).lower(): str(v) for k, v in headers.items()}


@dataclass(frozen=True, slots=True)
class RawResponse:
    """Status, headers and body of one HTTP response.

    When the body was streamed to disk, ``content`` is empty and ``path``
    points at the written file.
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    url: str = ""
    path: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _lower_keys(self.headers))

    @property
    def ok(self) -> bool:
        """True for 2xx status codes."""
        return _HTTP_OK_MIN <= self.status_code < _HTTP_OK_MAX

    def header(self, name: str) -> str | None:
        """Return a header value by case-insensitive name."""
        return self.headers.get(name.lower())

    def body(self) -> bytes:
        """Return the payload, reading it back from disk if it was streamed."""
        if self.path is not None and not self.content:
            return self.path.read_bytes()
        return self.content

    def text(self, encoding: str = "utf-8") -> str:
        """Decode the payload as text."""
        return self.body().decode(encoding, errors="replace")

    def json(self) -> Any:  # noqa: ANN401
        """Decode the payload as JSON."""
        return json.loads(self.body().decode("utf-8"))


@dataclass(frozen=True, slots=True)
class RawStream:
    """An open streaming response; ``chunks`` is consumed at most once."""

    status_code: int
    headers: dict[str, str]
    chunks: Iterator[bytes]
    url: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _lower_keys(self.headers))

    @property
    def ok(self) -> bool:
        """True for 2xx status codes."""
        return _HTTP_OK_MIN <= self.status_code < _HTTP_OK_MAX
