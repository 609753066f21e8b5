"""``requests`` adapter implementing ``HttpTransport``.

This is the only module that imports ``requests``.  It converts
``requests.Response`` objects into typed DTOs from ``dtos.py`` and wraps
every ``requests`` failure into :class:`~sqapi.exceptions.TransportError`.
No retries happen here: a failed call propagates to the caller at once.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

import requests
from loguru import logger

from sqapi._client.dtos import RawResponse, RawStream
from sqapi.exceptions import TransportError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

_CHUNK_SIZE = 1 << 16


def _wrap_chunks(response: requests.Response, url: str) -> Iterator[bytes]:
    """Yield body chunks, converting mid-stream failures to TransportError."""
    try:
        yield from response.iter_content(chunk_size=_CHUNK_SIZE)
    except requests.RequestException as e:
        raise TransportError(f"Download from {url} interrupted: {e}", url=url) from e


class RequestsTransport:
    """``HttpTransport`` implementation backed by a ``requests.Session``.

    The session is created on demand unless one is passed in; ``close``
    closes it either way.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Store the HTTP session and the per-request socket timeout."""
        self._session = session or requests.Session()
        self._timeout = timeout

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        data: bytes | None = None,
    ) -> RawResponse:
        """Send one request and return the buffered response."""
        try:
            response = self._session.request(
                method,
                url,
                headers=dict(headers),
                data=data,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}", url=url) from e
        logger.trace(f"{method} {url} -> HTTP {response.status_code}")
        return RawResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            content=response.content,
            url=url,
        )

    @contextmanager
    def stream(
        self,
        url: str,
        *,
        headers: Mapping[str, str],
    ) -> Iterator[RawStream]:
        """Open a streaming GET and yield it; the connection closes on exit."""
        try:
            response = self._session.get(
                url,
                headers=dict(headers),
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e}", url=url) from e
        logger.trace(f"GET {url} (stream) -> HTTP {response.status_code}")
        with response:
            yield RawStream(
                status_code=response.status_code,
                headers=dict(response.headers),
                chunks=_wrap_chunks(response, url),
                url=url,
            )

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()
