"""Tests for URL construction: q blob, plain params, encoding."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from urllib.parse import unquote

import pytest

from sqapi.exceptions import ValidationError
from sqapi.models import Transform, query_filter, query_params, translate
from sqapi.url import base_url, build_url, normalize_filters
from tests.conftest import HOST, q_of, query_of

if TYPE_CHECKING:
    from sqapi.models import ApiSession


# ---------------------------------------------------------------------------
# base_url
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("host", "endpoint"),
    [
        ("https://squidle.org", "api/annotation"),
        ("https://squidle.org/", "api/annotation"),
        ("https://squidle.org", "/api/annotation"),
        ("https://squidle.org/", "/api/annotation"),
    ],
)
def test_base_url_single_slash(host: str, endpoint: str) -> None:
    assert base_url(host, endpoint) == "https://squidle.org/api/annotation"


# ---------------------------------------------------------------------------
# normalize_filters
# ---------------------------------------------------------------------------


def test_normalize_filters_single_node() -> None:
    flt = query_filter("id", "eq", 1)
    assert normalize_filters(flt) == [flt]


def test_normalize_filters_none() -> None:
    assert normalize_filters(None) == []


def test_normalize_filters_rejects_foreign_objects() -> None:
    with pytest.raises(ValidationError, match="FilterNode"):
        normalize_filters([{"name": "id", "op": "eq", "val": 1}])  # type: ignore[list-item]


def test_normalize_filters_rejects_string() -> None:
    with pytest.raises(ValidationError, match="FilterNode"):
        normalize_filters("id eq 1")  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# build_url
# ---------------------------------------------------------------------------


def test_build_url_without_query(session: ApiSession) -> None:
    assert build_url(session, "api/annotation") == f"{HOST}/api/annotation"


def test_build_url_filters_in_q(session: ApiSession) -> None:
    filters = [
        query_filter("annotation_set_id", "eq", "5432"),
        query_filter("label", "has", query_filter("name", "eq", "Sand")),
    ]
    url = build_url(session, "api/annotation", filters)
    q = q_of(url)
    assert len(q["filters"]) == len(filters)
    for sent, node in zip(q["filters"], filters):
        assert sent == node.to_query()


def test_build_url_set_and_geometry_values(session: ApiSession) -> None:
    """Set and mapping filter values serialize into ``q`` as JSON."""
    geometry = {"type": "Point", "coordinates": (151.2, -33.8)}
    filters = [
        query_filter("id", "in", {30, 10, 20}),
        query_filter("pose.geom", "geo_within", geometry),
    ]
    q = q_of(build_url(session, "api/media", filters))
    assert q["filters"][0]["val"] == [10, 20, 30]
    assert q["filters"][1]["val"] == {"type": "Point", "coordinates": [151.2, -33.8]}


def test_build_url_q_is_compact_json(session: ApiSession) -> None:
    url = build_url(session, "api/annotation", query_filter("id", "eq", 1))
    assert query_of(url)["q"] == '{"filters":[{"name":"id","op":"eq","val":1}]}'


def test_build_url_encodes_every_reserved_character(session: ApiSession) -> None:
    url = build_url(session, "api/annotation", query_filter("name", "eq", "a b/c&d"))
    query = url.split("?", 1)[1]
    assert query.startswith("q=%7B%22filters%22")
    assert " " not in query
    assert "/" not in query
    assert query.count("&") == 0


def test_build_url_order_by_in_q(session: ApiSession) -> None:
    url = build_url(
        session,
        "api/annotation",
        query_filter("id", "gt", 0),
        query_params(order_by=("field", "asc"), limit=5, offset=10),
    )
    q = q_of(url)
    assert q["order_by"] == [{"field": "field", "direction": "asc"}]
    assert q["limit"] == 5
    assert q["offset"] == 10
    assert list(q) == ["filters", "order_by", "limit", "offset"]


def test_build_url_include_columns_round_trip(session: ApiSession) -> None:
    url = build_url(session, "api/annotation", params=query_params(include_columns=["a", "b"]))
    assert json.loads(query_of(url)["include_columns"]) == ["a", "b"]


def test_build_url_plain_param_order(session: ApiSession) -> None:
    url = build_url(
        session,
        "api/annotation_set/1/export",
        query_filter("id", "eq", 1),
        query_params(
            page=2,
            results_per_page=50,
            template="data.csv",
            disposition="attachment",
            include_columns=["id"],
        ),
        transform=Transform.normalize(),
        translate=translate(target_label_scheme_id=3),
    )
    keys = [part.split("=", 1)[0] for part in url.split("?", 1)[1].split("&")]
    assert keys == [
        "q",
        "include_columns",
        "template",
        "disposition",
        "page",
        "results_per_page",
        "transform",
        "translate",
    ]
    query = query_of(url)
    assert json.loads(query["transform"]) == {
        "operations": [{"module": "pandas", "method": "json_normalize"}]
    }
    assert json.loads(query["translate"]) == {"target_label_scheme_id": 3}


def test_build_url_template_and_disposition_override_params(session: ApiSession) -> None:
    url = build_url(
        session,
        "api/annotation/export",
        params=query_params(template="data.json", disposition="attachment"),
        template="data.csv",
        disposition="inline",
    )
    query = query_of(url)
    assert query["template"] == "data.csv"
    assert query["disposition"] == "inline"


def test_build_url_invalid_disposition(session: ApiSession) -> None:
    with pytest.raises(ValidationError, match="disposition"):
        build_url(session, "api/x/export", disposition="download")  # type: ignore[arg-type]


def test_build_url_encoded_params_without_filters_dropped(
    session: ApiSession,
    log_messages: list[str],
) -> None:
    """limit/order_by only travel inside q; without filters they are dropped."""
    url = build_url(session, "api/annotation", params=query_params(limit=5, page=3))
    assert "q" not in query_of(url)
    assert query_of(url) == {"page": "3"}
    assert any("Ignoring limit" in m for m in log_messages)


def test_build_url_idempotent(session: ApiSession) -> None:
    filters = [query_filter("id", "in", [1, 2, 3]), query_filter("comment", "is_null")]
    params = query_params(order_by=("id", "desc"), group_by=["id"], page=1)
    first = build_url(session, "api/annotation", filters, params)
    second = build_url(session, "api/annotation", filters, params)
    assert first == second


def test_build_url_decodes_to_readable_form(session: ApiSession) -> None:
    url = build_url(session, "api/annotation", query_filter("id", "eq", 1))
    assert unquote(url) == (
        f'{HOST}/api/annotation?q={{"filters":[{{"name":"id","op":"eq","val":1}}]}}'
    )


def test_build_url_non_ascii_value(session: ApiSession) -> None:
    url = build_url(session, "api/annotation", query_filter("name", "eq", "Éponge"))
    assert url.isascii()
    assert q_of(url)["filters"][0]["val"] == "Éponge"
