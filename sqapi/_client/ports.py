"""Protocols defining the boundaries between the core and its collaborators.

``HttpTransport`` is the single seam between request logic and the HTTP
library.  In production it is satisfied by ``RequestsTransport``; in tests
a scripted fake returning canned responses is used instead.  The remaining
ports cover credentials, disk writes and progress rendering.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from contextlib import AbstractContextManager
    from pathlib import Path

    from sqapi._client.dtos import RawResponse, RawStream


class HttpTransport(Protocol):
    """Minimal interface for the HTTP calls made by sqapi."""

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        data: bytes | None = None,
    ) -> RawResponse:
        """Send one request and return the fully buffered response."""
        ...

    def stream(
        self,
        url: str,
        *,
        headers: Mapping[str, str],
    ) -> AbstractContextManager[RawStream]:
        """Open a streaming GET; the body is read from ``RawStream.chunks``."""
        ...

    def close(self) -> None:
        """Release pooled connections."""
        ...


class CredentialProvider(Protocol):
    """Supplies the API token."""

    def get_token(self) -> str:
        """Return a token string."""
        ...


class DiskSink(Protocol):
    """Persists a byte stream under a file name."""

    def write(self, filename: str, chunks: Iterable[bytes]) -> Path:
        """Write *chunks* to *filename* and return the written path."""
        ...


class ProgressReporter(Protocol):
    """Renders export progress in percent (0-100)."""

    def report(self, percent: float) -> None:
        """Show the current progress."""
        ...

    def close(self) -> None:
        """Finish rendering."""
        ...
