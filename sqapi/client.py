"""SQUIDLE+ request logic: send, request, export."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote

from loguru import logger

from sqapi._client.dispatch import HttpVerb, raise_for_status, transport_scope
from sqapi._client.dispatch import send as _send
from sqapi._client.progress import TqdmProgressReporter
from sqapi._client.requests_adapter import RequestsTransport
from sqapi._client.sinks import LocalDiskSink
from sqapi.exceptions import ConfigurationError
from sqapi.models import ApiSession, ExportJob
from sqapi.poller import POLL_INTERVAL, Poller
from sqapi.url import build_url

if TYPE_CHECKING:
    import threading
    from collections.abc import Sequence
    from types import TracebackType

    from typing_extensions import Self

    from sqapi._client.dtos import RawResponse
    from sqapi._client.ports import DiskSink, HttpTransport, ProgressReporter
    from sqapi.config import SquidleConfig
    from sqapi.models import (
        Disposition,
        FilterNode,
        QueryParams,
        Transform,
        Translate,
    )

_EXPORT_MARKER = "export"
_CSV_TEMPLATES = ("data.csv", "dataframe.csv")
_METADATA_HEADER = "x-content-metadata"


def _is_export_endpoint(endpoint: str) -> bool:
    return _EXPORT_MARKER in endpoint


def _check_request_endpoint(endpoint: str) -> None:
    if _is_export_endpoint(endpoint):
        msg = (
            f"Endpoint {endpoint!r} is an export endpoint; use export() so the "
            "job is polled to completion."
        )
        raise ConfigurationError(msg)


def _check_export_endpoint(endpoint: str) -> None:
    if not _is_export_endpoint(endpoint):
        msg = (
            f"Endpoint {endpoint!r} is not an export endpoint; use request() "
            "instead."
        )
        raise ConfigurationError(msg)


def _metadata_filename(
    endpoint: str,
    filename: str | None,
    metadata_filename: str,
) -> str:
    """Name the metadata file after the result file, or the endpoint."""
    if filename is not None:
        return f"{filename}_{metadata_filename}"
    safe_endpoint = re.sub(r"[^a-zA-Z0-9_]", "_", endpoint)
    return f"{safe_endpoint}_{metadata_filename}"


def send(
    session: ApiSession,
    verb: str | HttpVerb,
    url: str,
    body: Any = None,  # noqa: ANN401
    *,
    transport: HttpTransport | None = None,
) -> RawResponse:
    """Send an authenticated request to a pre-built *url*.

    Returns the raw response unparsed; the status code is not checked.
    """
    method = HttpVerb.parse(verb)
    with transport_scope(transport) as active:
        return _send(session, method, url, body, transport=active)


def request(  # noqa: PLR0913
    session: ApiSession,
    verb: str | HttpVerb,
    endpoint: str,
    filters: FilterNode | Sequence[FilterNode] | None = None,
    params: QueryParams | None = None,
    body: Any = None,  # noqa: ANN401
    *,
    transport: HttpTransport | None = None,
) -> RawResponse:
    """Send a GET, POST, PATCH or DELETE request to a non-export endpoint.

    The response is returned whatever its status code, so callers can
    inspect error payloads.

    Examples
    --------
    ::

        session = ApiSession.from_config()
        flt = query_filter("annotation_set_id", "eq", "5432")
        r = request(session, "GET", "api/annotation", flt,
                    query_params(page=14, results_per_page=56))
        r = request(session, "POST", "api/media_collection",
                    body={"name": "API test 01"})

    """
    _check_request_endpoint(endpoint)
    method = HttpVerb.parse(verb)
    url = build_url(session, endpoint, filters, params)
    logger.info(f"Constructed URL: <{unquote(url)}>")
    with transport_scope(transport) as active:
        response = _send(session, method, url, body, transport=active)
    logger.info(f"Response status code: {response.status_code}")
    return response


def export(  # noqa: PLR0913
    session: ApiSession,
    endpoint: str,
    filters: FilterNode | Sequence[FilterNode] | None = None,
    params: QueryParams | None = None,
    template: str | None = None,
    disposition: Disposition | None = None,
    *,
    translate: Translate | None = None,
    transform: Transform | None = None,
    poll: bool = True,
    filename: str | None = None,
    metadata_filename: str | None = "metadata.json",
    transport: HttpTransport | None = None,
    sink: DiskSink | None = None,
    reporter: ProgressReporter | None = None,
    cancel: threading.Event | None = None,
    poll_interval: float = POLL_INTERVAL,
) -> RawResponse:
    """Start an export job, poll it to completion and return the result.

    With ``poll=False`` the initial response (the job descriptor) is
    returned without polling.  When *filename* is given the result is
    streamed to disk through *sink* rather than held in memory.

    For CSV templates the ``X-Content-Metadata`` header of the result is
    saved next to the data as ``<filename>_<metadata_filename>`` (or
    ``<endpoint>_<metadata_filename>``); pass ``metadata_filename=None``
    to skip it.

    Progress is drawn with a tqdm bar unless another *reporter* is given.

    Raises
    ------
    ConfigurationError
        *endpoint* does not contain ``export``.
    TransportError
        The initial request, a status check or the result download failed.
    ServerJobError
        The job descriptor was malformed or the job reported an error.
    PollCancelledError
        *cancel* was set while polling.

    """
    _check_export_endpoint(endpoint)
    url = build_url(
        session,
        endpoint,
        filters,
        params,
        template=template,
        disposition=disposition,
        transform=transform,
        translate=translate,
    )
    logger.info(f"Constructed URL: <{unquote(url)}>")
    disk = sink or LocalDiskSink()

    with transport_scope(transport) as active:
        response = _send(session, HttpVerb.GET, url, transport=active)
        raise_for_status(response, "Export request")
        if not poll:
            logger.info(f"Response status code: {response.status_code}")
            logger.info(
                "Initial response returned without polling. "
                "To retrieve the final result, set poll=True."
            )
            return response

        job = ExportJob.from_response(response)
        poller = Poller(
            session,
            active,
            reporter=reporter if reporter is not None else TqdmProgressReporter(),
            sink=disk,
            interval=poll_interval,
            cancel=cancel,
        )
        result = poller.run(job, filename=filename)

    effective_template = template or (params.template if params else None)
    if metadata_filename is not None and effective_template in _CSV_TEMPLATES:
        meta = result.header(_METADATA_HEADER)
        if meta is not None:
            meta_name = _metadata_filename(endpoint, filename, metadata_filename)
            meta_path = disk.write(meta_name, [meta.encode("utf-8")])
            logger.info(f"See metadata file: {meta_path}")

    if result.path is not None:
        logger.info(f"File downloaded to: {result.path}")
    logger.info(f"Response status code: {result.status_code}")
    return result


class SquidleClient:
    """High-level SQUIDLE+ client bound to one session.

    Can be used as a context manager to keep one HTTP connection pool open
    across multiple calls::

        with SquidleClient(session) as client:
            r = client.get("api/annotation", flt, params)
            result = client.export("api/annotation_set/123/export", flt)

    Without the context manager, each call opens and closes its own
    connection pool.
    """

    def __init__(
        self,
        session: ApiSession | None = None,
        transport: HttpTransport | None = None,
        *,
        cfg: SquidleConfig | None = None,
    ) -> None:
        """Store the session and optional transport for DI.

        When *session* is ``None`` it is built from *cfg*, or from
        configuration loaded via :meth:`SquidleConfig.load`.
        """
        self._session = session or ApiSession.from_config(cfg)
        self._transport = transport
        # Opened by __enter__, closed by __exit__.
        self._owned_transport: RequestsTransport | None = None

    def __enter__(self) -> Self:
        """Open a persistent transport unless one was injected."""
        if self._transport is None:
            self._owned_transport = RequestsTransport()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the persistent transport."""
        if self._owned_transport is not None:
            self._owned_transport.close()
            self._owned_transport = None

    @property
    def session(self) -> ApiSession:
        """The session every call is made with."""
        return self._session

    def _get_transport(self) -> HttpTransport | None:
        """Return the best available transport (injected > persistent > None)."""
        return self._transport or self._owned_transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def send(self, verb: str | HttpVerb, url: str, body: Any = None) -> RawResponse:  # noqa: ANN401
        """Send an authenticated request to a pre-built *url*."""
        return send(self._session, verb, url, body, transport=self._get_transport())

    def request(
        self,
        verb: str | HttpVerb,
        endpoint: str,
        filters: FilterNode | Sequence[FilterNode] | None = None,
        params: QueryParams | None = None,
        body: Any = None,  # noqa: ANN401
    ) -> RawResponse:
        """See :func:`sqapi.client.request`."""
        return request(
            self._session,
            verb,
            endpoint,
            filters,
            params,
            body,
            transport=self._get_transport(),
        )

    def get(
        self,
        endpoint: str,
        filters: FilterNode | Sequence[FilterNode] | None = None,
        params: QueryParams | None = None,
    ) -> RawResponse:
        """GET a non-export endpoint."""
        return self.request(HttpVerb.GET, endpoint, filters, params)

    def post(self, endpoint: str, body: Any) -> RawResponse:  # noqa: ANN401
        """POST a JSON *body*."""
        return self.request(HttpVerb.POST, endpoint, body=body)

    def patch(
        self,
        endpoint: str,
        body: Any,  # noqa: ANN401
        filters: FilterNode | Sequence[FilterNode] | None = None,
    ) -> RawResponse:
        """PATCH with a JSON *body*, optionally restricted by *filters*."""
        return self.request(HttpVerb.PATCH, endpoint, filters, body=body)

    def delete(
        self,
        endpoint: str,
        filters: FilterNode | Sequence[FilterNode] | None = None,
    ) -> RawResponse:
        """DELETE the resource at *endpoint*."""
        return self.request(HttpVerb.DELETE, endpoint, filters)

    def export(
        self,
        endpoint: str,
        filters: FilterNode | Sequence[FilterNode] | None = None,
        params: QueryParams | None = None,
        **kwargs: Any,  # noqa: ANN401
    ) -> RawResponse:
        """See :func:`sqapi.client.export`; keyword options are passed through."""
        kwargs.setdefault("transport", self._get_transport())
        return export(self._session, endpoint, filters, params, **kwargs)
