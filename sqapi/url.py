"""Construct fully encoded SQUIDLE+ API URLs.

Filters and the encoded parameter group are combined into a single compact
JSON object passed as the ``q`` query parameter; everything else is an
ordinary query parameter.  Every value is percent-encoded, so the same
inputs always produce byte-identical URLs.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, get_args
from urllib.parse import quote, urlencode

from loguru import logger

from sqapi.exceptions import ValidationError
from sqapi.models import Disposition, FilterNode

if TYPE_CHECKING:
    from sqapi.models import ApiSession, QueryParams, Transform, Translate

_PLAIN_ORDER = ("include_columns", "template", "disposition", "page", "results_per_page")


def base_url(host: str, endpoint: str) -> str:
    """Join *host* and *endpoint* with exactly one slash."""
    return f"{host.rstrip('/')}/{endpoint.lstrip('/')}"


def compact_json(value: Any) -> str:  # noqa: ANN401
    """Serialize *value* without insignificant whitespace."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def normalize_filters(
    filters: FilterNode | Sequence[FilterNode] | None,
) -> list[FilterNode]:
    """Return *filters* as a list; a single node becomes a one-element list."""
    if filters is None:
        return []
    if isinstance(filters, FilterNode):
        return [filters]
    if isinstance(filters, (str, bytes)) or not isinstance(filters, Sequence):
        msg = f"filters must be a FilterNode or a sequence of them, got {filters!r}"
        raise ValidationError(msg)
    nodes = list(filters)
    for node in nodes:
        if not isinstance(node, FilterNode):
            msg = f"filters must contain only FilterNode objects, got {node!r}"
            raise ValidationError(msg)
    return nodes


def build_url(  # noqa: PLR0913
    session: ApiSession,
    endpoint: str,
    filters: FilterNode | Sequence[FilterNode] | None = None,
    params: QueryParams | None = None,
    template: str | None = None,
    disposition: Disposition | None = None,
    transform: Transform | None = None,
    translate: Translate | None = None,
) -> str:
    """Build the request URL for *endpoint*.

    Parameters
    ----------
    session:
        Supplies the host.
    endpoint:
        API path such as ``"api/annotation"``.
    filters:
        One filter or a sequence of filters (ANDed by the server).
    params:
        Output of :func:`sqapi.query_params`.
    template, disposition:
        Override the values carried by *params*.
    transform, translate:
        Appended as compact JSON query parameters.

    The ``q`` parameter is only emitted when filters are given; encoded
    parameters (``limit``, ``order_by``...) without filters are dropped
    with a warning.

    """
    if disposition is not None and disposition not in get_args(Disposition):
        msg = f"disposition must be 'attachment' or 'inline', got {disposition!r}"
        raise ValidationError(msg)

    nodes = normalize_filters(filters)
    encoded = params.encoded_group() if params is not None else {}
    query: list[tuple[str, str]] = []

    if nodes:
        q: dict[str, Any] = {"filters": [node.to_query() for node in nodes]}
        q.update(encoded)
        query.append(("q", compact_json(q)))
    elif encoded:
        logger.warning(
            f"Ignoring {', '.join(encoded)} for {endpoint}: "
            "these parameters are only sent together with filters."
        )

    plain = params.plain_group() if params is not None else {}
    if template is not None:
        plain["template"] = template
    if disposition is not None:
        plain["disposition"] = disposition
    query.extend((key, plain[key]) for key in _PLAIN_ORDER if key in plain)

    if transform is not None:
        query.append(("transform", compact_json(transform.to_query())))
    if translate is not None:
        query.append(("translate", compact_json(translate.to_query())))

    url = base_url(session.host, endpoint)
    if not query:
        return url
    return f"{url}?{urlencode(query, safe='', quote_via=quote)}"
