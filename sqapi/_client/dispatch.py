"""Authenticated HTTP primitives shared by the request entry points and the poller."""

from __future__ import annotations

import json
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from sqapi._client.dtos import RawResponse
from sqapi._client.requests_adapter import RequestsTransport
from sqapi._client.sinks import LocalDiskSink
from sqapi.exceptions import ConfigurationError, TransportError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqapi._client.ports import DiskSink, HttpTransport
    from sqapi.models import ApiSession

_JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}
_ERROR_BODY_PREVIEW = 500


class HttpVerb(str, Enum):
    """HTTP methods accepted by the SQUIDLE+ API."""

    GET = "GET"
    POST = "POST"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, verb: str | HttpVerb) -> HttpVerb:
        """Return the verb for *verb* (case-insensitive) or raise ConfigurationError."""
        if isinstance(verb, cls):
            return verb
        try:
            return cls(str(verb).strip().upper())
        except ValueError:
            allowed = ", ".join(v.value for v in cls)
            msg = f"Unsupported HTTP verb {verb!r}; expected one of {allowed}."
            raise ConfigurationError(msg) from None

    @property
    def allows_body(self) -> bool:
        """True for verbs that may carry a JSON body."""
        return self in (HttpVerb.POST, HttpVerb.PATCH)


@contextmanager
def transport_scope(transport: HttpTransport | None) -> Iterator[HttpTransport]:
    """Yield *transport*, or a short-lived ``RequestsTransport`` closed on exit."""
    if transport is not None:
        yield transport
        return
    owned = RequestsTransport()
    try:
        yield owned
    finally:
        owned.close()


def raise_for_status(response: RawResponse, context: str) -> None:
    """Raise ``TransportError`` for a non-2xx *response*."""
    if response.ok:
        return
    preview = response.content[:_ERROR_BODY_PREVIEW].decode("utf-8", errors="replace")
    msg = f"{context} failed: HTTP {response.status_code} for {response.url}"
    if preview.strip():
        msg = f"{msg}: {preview.strip()}"
    raise TransportError(msg, status_code=response.status_code, url=response.url)


def send(
    session: ApiSession,
    verb: str | HttpVerb,
    url: str,
    body: Any = None,  # noqa: ANN401
    *,
    transport: HttpTransport,
) -> RawResponse:
    """Send one authenticated request and return the raw response unparsed.

    A *body* is serialized as compact JSON; only POST and PATCH may carry one.
    """
    method = HttpVerb.parse(verb)
    headers = session.auth_headers()
    data: bytes | None = None
    if body is not None:
        if not method.allows_body:
            msg = f"{method.value} requests cannot carry a body."
            raise ConfigurationError(msg)
        data = json.dumps(body, separators=(",", ":")).encode("utf-8")
        headers.update(_JSON_HEADERS)
        logger.debug(f"Body for {method.value} request: {data.decode('utf-8')}")
    return transport.request(method.value, url, headers=headers, data=data)


def fetch(
    session: ApiSession,
    url: str,
    *,
    transport: HttpTransport,
    filename: str | None = None,
    sink: DiskSink | None = None,
) -> RawResponse:
    """GET *url*; stream the body to *sink* when *filename* is given.

    Non-2xx responses raise ``TransportError`` and are never written to disk.
    """
    headers = session.auth_headers()
    if filename is None:
        response = transport.request(HttpVerb.GET.value, url, headers=headers)
        raise_for_status(response, "GET")
        return response

    with transport.stream(url, headers=headers) as stream:
        if not stream.ok:
            failed = RawResponse(
                status_code=stream.status_code,
                headers=stream.headers,
                content=b"".join(stream.chunks),
                url=url,
            )
            raise_for_status(failed, "Download")
        path = (sink or LocalDiskSink()).write(filename, stream.chunks)
    return RawResponse(
        status_code=stream.status_code,
        headers=stream.headers,
        url=url,
        path=path,
    )
