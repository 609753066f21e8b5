"""Pydantic models for SQUIDLE+ queries, sessions and export jobs."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from sqapi.config import SquidleConfig
from sqapi.exceptions import ServerJobError, ValidationError

if TYPE_CHECKING:
    from typing_extensions import Self

    from sqapi._client.dtos import RawResponse
    from sqapi._client.ports import CredentialProvider

DEFAULT_HOST = "https://squidle.org"
AUTH_HEADER = "x-auth-token"

UNARY_OPERATORS: frozenset[str] = frozenset({"is_null", "is_not_null"})
"""Operators that take no ``val``."""

Direction = Literal["asc", "desc"]
Disposition = Literal["attachment", "inline"]


def _describe(error: PydanticValidationError) -> str:
    """Flatten pydantic error details into one readable line."""
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "value"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class _FrozenModel(BaseModel):
    """Immutable model whose construction errors surface as ``sqapi.ValidationError``."""

    model_config = ConfigDict(frozen=True)

    def __init__(self, **data: Any) -> None:  # noqa: ANN401
        try:
            super().__init__(**data)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {type(self).__name__}: {_describe(e)}"
            ) from e


# ------------------------------------------------------------------
# Filters
# ------------------------------------------------------------------


def _encode_value(value: Any) -> Any:  # noqa: ANN401
    """Recursively convert a filter value to its JSON-ready form."""
    if isinstance(value, FilterNode):
        return value.to_query()
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    if isinstance(value, Mapping):
        return {k: _encode_value(v) for k, v in value.items()}
    return value


_JSON_SCALARS = (str, int, float, bool)


def _normalize_value(value: Any) -> Any:  # noqa: ANN401
    """Check that *value* is JSON-encodable, freezing lists and sets into tuples.

    Sets are sorted when their items are comparable.  Mappings (e.g. GeoJSON
    geometries) must have string keys.
    """
    if value is None or isinstance(value, (_JSON_SCALARS, FilterNode)):
        return value
    if isinstance(value, (set, frozenset)):
        try:
            value = sorted(value)
        except TypeError:
            value = list(value)
    if isinstance(value, (list, tuple)):
        return tuple(_normalize_value(v) for v in value)
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                msg = f"mapping keys must be strings, got {key!r}"
                raise ValueError(msg)
        return {k: _normalize_value(v) for k, v in value.items()}
    msg = (
        f"unsupported filter value of type {type(value).__name__}; use a "
        "string, number, bool, list, mapping or another filter"
    )
    raise ValueError(msg)


class FilterNode(_FrozenModel):
    """One query predicate; ``val`` may itself be a ``FilterNode``.

    Nesting expresses relational traversal, e.g. media that have a
    deployment whose campaign key equals some value::

        FilterNode(name="deployment", op="has", val=FilterNode(
            name="campaign", op="has", val=FilterNode(
                name="key", op="eq", val="Batemans201011")))
    """

    name: str
    op: str
    val: Any = None

    @field_validator("name", "op")
    @classmethod
    def check_non_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "must be a non-empty string"
            raise ValueError(msg)
        return v

    @field_validator("val", mode="before")
    @classmethod
    def check_value(cls, v: Any) -> Any:  # noqa: ANN401
        return _normalize_value(v)

    @model_validator(mode="after")
    def check_arity(self) -> Self:
        if self.op in UNARY_OPERATORS and self.val is not None:
            msg = f"operator {self.op!r} takes no value"
            raise ValueError(msg)
        if self.op not in UNARY_OPERATORS and self.val is None:
            msg = f"operator {self.op!r} requires a value"
            raise ValueError(msg)
        return self

    def to_query(self) -> dict[str, Any]:
        """Return the ``{"name", "op", "val"}`` mapping sent to the server."""
        node: dict[str, Any] = {"name": self.name, "op": self.op}
        if self.val is not None:
            node["val"] = _encode_value(self.val)
        return node


def query_filter(name: str, op: str, val: Any = None) -> FilterNode:  # noqa: ANN401
    """Create a filter; pass another ``query_filter`` as *val* to nest."""
    return FilterNode(name=name, op=op, val=val)


# ------------------------------------------------------------------
# Query parameters
# ------------------------------------------------------------------


def _maybe_json(value: Any, field: str) -> Any:  # noqa: ANN401
    """Parse *value* when it is a pre-serialized JSON array or object."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith(("[", "{")):
            try:
                return json.loads(stripped)
            except json.JSONDecodeError as e:
                msg = f"{field} is not valid JSON: {e}"
                raise ValueError(msg) from e
    return value


def _field_names(value: Any, field: str) -> tuple[str, ...]:  # noqa: ANN401
    """Normalize a field name, list of names or list of ``{"field": ...}``."""
    if isinstance(value, (str, Mapping)):
        value = [value]
    if not isinstance(value, (list, tuple)) or not value:
        msg = f"{field} must be a field name or a non-empty list of field names"
        raise ValueError(msg)
    names: list[str] = []
    for item in value:
        name = item.get("field") if isinstance(item, Mapping) else item
        if not isinstance(name, str) or not name.strip():
            msg = f"{field} entries must be non-empty field names, got {item!r}"
            raise ValueError(msg)
        names.append(name)
    return tuple(names)


class QueryParams(_FrozenModel):
    """Pagination, ordering and output options for a request.

    ``limit``, ``offset``, ``order_by``, ``group_by`` and ``single`` are
    encoded inside the ``q`` JSON blob; the rest become plain URL query
    parameters.
    """

    template: str | None = None
    disposition: Disposition | None = None
    include_columns: tuple[str, ...] | None = None
    page: int | None = Field(default=None, ge=1, strict=True)
    results_per_page: int | None = Field(default=None, ge=1, strict=True)
    limit: int | None = Field(default=None, ge=0, strict=True)
    offset: int | None = Field(default=None, ge=0, strict=True)
    order_by: tuple[str, Direction] | None = None
    group_by: tuple[str, ...] | None = None
    single: bool = False

    @field_validator("order_by", mode="before")
    @classmethod
    def coerce_order_by(cls, value: Any) -> Any:  # noqa: ANN401
        if value is None:
            return None
        value = _maybe_json(value, "order_by")
        if isinstance(value, Mapping):
            value = [value]
        if (
            isinstance(value, (list, tuple))
            and len(value) == 1
            and isinstance(value[0], Mapping)
        ):
            entry = value[0]
            if set(entry) != {"field", "direction"}:
                msg = "order_by entry must have exactly 'field' and 'direction' keys"
                raise ValueError(msg)
            value = (entry["field"], entry["direction"])
        if (
            isinstance(value, (list, tuple))
            and len(value) == 2  # noqa: PLR2004
            and all(isinstance(v, str) for v in value)
            and value[0].strip()
        ):
            return tuple(value)
        msg = (
            "order_by must be exactly one (field, direction) pair, "
            "e.g. ('pose.dep', 'asc')"
        )
        raise ValueError(msg)

    @field_validator("group_by", mode="before")
    @classmethod
    def coerce_group_by(cls, value: Any) -> Any:  # noqa: ANN401
        if value is None:
            return None
        return _field_names(_maybe_json(value, "group_by"), "group_by")

    @field_validator("include_columns", mode="before")
    @classmethod
    def coerce_include_columns(cls, value: Any) -> Any:  # noqa: ANN401
        if value is None:
            return None
        return _field_names(_maybe_json(value, "include_columns"), "include_columns")

    def encoded_group(self) -> dict[str, Any]:
        """Parameters that go inside the ``q`` JSON blob, in wire order."""
        q: dict[str, Any] = {}
        if self.order_by is not None:
            field, direction = self.order_by
            q["order_by"] = [{"field": field, "direction": direction}]
        if self.group_by is not None:
            q["group_by"] = [{"field": f} for f in self.group_by]
        if self.limit is not None:
            q["limit"] = self.limit
        if self.offset is not None:
            q["offset"] = self.offset
        if self.single:
            q["single"] = True
        return q

    def plain_group(self) -> dict[str, str]:
        """Parameters appended directly to the URL, outside ``q``."""
        params: dict[str, str] = {}
        if self.include_columns is not None:
            params["include_columns"] = json.dumps(
                list(self.include_columns), separators=(",", ":")
            )
        if self.template is not None:
            params["template"] = self.template
        if self.disposition is not None:
            params["disposition"] = self.disposition
        if self.page is not None:
            params["page"] = str(self.page)
        if self.results_per_page is not None:
            params["results_per_page"] = str(self.results_per_page)
        return params


def query_params(  # noqa: PLR0913
    template: str | None = None,
    disposition: Disposition | None = None,
    include_columns: list[str] | str | None = None,
    page: int | None = None,
    results_per_page: int | None = None,
    limit: int | None = None,
    offset: int | None = None,
    order_by: tuple[str, str] | list[str] | str | None = None,
    group_by: list[str] | str | None = None,
    single: bool = False,  # noqa: FBT001, FBT002
) -> QueryParams:
    """Build a validated :class:`QueryParams`.

    Examples
    --------
    >>> query_params(page=14, results_per_page=56).plain_group()
    {'page': '14', 'results_per_page': '56'}
    >>> query_params(order_by=("pose.dep", "asc")).encoded_group()
    {'order_by': [{'field': 'pose.dep', 'direction': 'asc'}]}

    """
    return QueryParams(
        template=template,
        disposition=disposition,
        include_columns=include_columns,
        page=page,
        results_per_page=results_per_page,
        limit=limit,
        offset=offset,
        order_by=order_by,
        group_by=group_by,
        single=single,
    )


# ------------------------------------------------------------------
# Export options
# ------------------------------------------------------------------


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Translate(_FrozenModel):
    """Label translation request for an export."""

    target_label_scheme_id: int
    vocab_registry_keys: tuple[str, ...] | None = None
    mapping_override: dict[str, int | float] | None = None

    @field_validator("target_label_scheme_id", mode="before")
    @classmethod
    def check_scheme_id(cls, value: Any) -> Any:  # noqa: ANN401
        if not _is_number(value) or (
            isinstance(value, float) and not value.is_integer()
        ):
            msg = f"must be an integer id, got {value!r}"
            raise ValueError(msg)
        return int(value)

    @field_validator("vocab_registry_keys", mode="before")
    @classmethod
    def check_registry_keys(cls, value: Any) -> Any:  # noqa: ANN401
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)) or not all(
            isinstance(v, str) for v in value
        ):
            msg = "must be a list of strings"
            raise ValueError(msg)
        return tuple(value)

    @field_validator("mapping_override", mode="before")
    @classmethod
    def check_mapping_override(cls, value: Any) -> Any:  # noqa: ANN401
        if value is None:
            return None
        if not isinstance(value, Mapping):
            msg = "must be a mapping of source label id -> target label id"
            raise ValueError(msg)
        result: dict[str, int | float] = {}
        for key, target in value.items():
            source = str(key) if _is_number(key) else key
            if not isinstance(source, str) or not source.strip():
                msg = f"source label ids must be non-empty strings, got {key!r}"
                raise ValueError(msg)
            if not _is_number(target):
                msg = f"target label id for {source!r} must be numeric, got {target!r}"
                raise ValueError(msg)
            result[source] = target
        return result

    def to_query(self) -> dict[str, Any]:
        """Return the JSON-ready mapping, omitting unset fields."""
        return self.model_dump(mode="json", exclude_none=True)


def translate(
    target_label_scheme_id: int,
    vocab_registry_keys: list[str] | None = None,
    mapping_override: Mapping[str | int, int | float] | None = None,
) -> Translate:
    """Build a validated :class:`Translate` for :func:`sqapi.export`."""
    return Translate(
        target_label_scheme_id=target_label_scheme_id,
        vocab_registry_keys=vocab_registry_keys,
        mapping_override=mapping_override,
    )


JSON_NORMALIZE: dict[str, str] = {"module": "pandas", "method": "json_normalize"}
"""Server-side operation flattening nested JSON objects into table rows."""


class Transform(_FrozenModel):
    """Ordered server-side pipeline operations applied to a result."""

    operations: tuple[dict[str, Any], ...]

    @field_validator("operations", mode="before")
    @classmethod
    def check_operations(cls, value: Any) -> Any:  # noqa: ANN401
        if not isinstance(value, (list, tuple)) or not value:
            msg = "at least one operation is required"
            raise ValueError(msg)
        if not all(isinstance(op, Mapping) for op in value):
            msg = "all operations must be mappings of key-value pairs"
            raise ValueError(msg)
        return tuple(dict(op) for op in value)

    @classmethod
    def normalize(cls) -> Transform:
        """Return the fixed tabular-normalization transform."""
        return cls(operations=(JSON_NORMALIZE,))

    def to_query(self) -> dict[str, Any]:
        """Return ``{"operations": [...]}``."""
        return {"operations": [dict(op) for op in self.operations]}


def transform(*operations: Mapping[str, Any]) -> Transform:
    """Build a :class:`Transform` from one or more operation mappings."""
    return Transform(operations=operations)


# ------------------------------------------------------------------
# Session
# ------------------------------------------------------------------


class ApiSession(_FrozenModel):
    """Host and API token shared by every call."""

    host: str = DEFAULT_HOST
    auth: str = Field(repr=False)

    @field_validator("host")
    @classmethod
    def check_host(cls, v: str) -> str:
        host = v.strip().rstrip("/")
        if not host.startswith(("http://", "https://")):
            msg = f"host must start with http:// or https://, got {v!r}"
            raise ValueError(msg)
        return host

    @field_validator("auth")
    @classmethod
    def check_auth(cls, v: str) -> str:
        if not v.strip():
            msg = "API token must not be empty"
            raise ValueError(msg)
        return v.strip()

    @classmethod
    def from_config(
        cls,
        cfg: SquidleConfig | None = None,
        *,
        credentials: CredentialProvider | None = None,
    ) -> ApiSession:
        """Build a session from config; the token comes from *credentials* or *cfg*."""
        resolved = cfg or SquidleConfig.load()
        provider = credentials or resolved
        return cls(host=resolved.host or DEFAULT_HOST, auth=provider.get_token())

    def resolve(self, url: str) -> str:
        """Resolve a server-relative path (e.g. a status URL) against the host."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.host}/{url.lstrip('/')}"

    def auth_headers(self) -> dict[str, str]:
        """Return the authentication header."""
        return {AUTH_HEADER: self.auth}


# ------------------------------------------------------------------
# Export job payloads
# ------------------------------------------------------------------


def _decode_payload(response: RawResponse, what: str) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as e:
        msg = f"{what} is not valid JSON: {e}"
        raise ServerJobError(msg) from e
    if not isinstance(payload, dict):
        msg = f"{what} must be a JSON object, got {type(payload).__name__}"
        raise ServerJobError(msg)
    return payload


def _coerce_stages(value: Any) -> Any:  # noqa: ANN401
    """Accept ``progress`` as a list of stages or a name -> stage mapping."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [
            {"name": name, **stage} if isinstance(stage, Mapping) else stage
            for name, stage in value.items()
        ]
    return value


class ProgressStage(BaseModel):
    """One named stage of an export job."""

    name: str | None = None
    iteration: float = 0
    iteration_count: float = 0

    @field_validator("iteration", "iteration_count", mode="before")
    @classmethod
    def none_is_zero(cls, v: Any) -> Any:  # noqa: ANN401
        return 0 if v is None else v


class JobStatus(BaseModel):
    """Decoded payload of an export status URL."""

    status: str | None = None
    result_available: bool = False
    message: str | None = None
    progress: list[ProgressStage] = []

    @field_validator("result_available", mode="before")
    @classmethod
    def none_is_false(cls, v: Any) -> Any:  # noqa: ANN401
        return False if v is None else v

    @field_validator("progress", mode="before")
    @classmethod
    def coerce_progress(cls, v: Any) -> Any:  # noqa: ANN401
        return _coerce_stages(v)

    @classmethod
    def from_response(cls, response: RawResponse) -> JobStatus:
        """Decode a status response body."""
        payload = _decode_payload(response, "Export status")
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            msg = f"Malformed export status: {_describe(e)}"
            raise ServerJobError(msg) from e


class ExportJob(BaseModel):
    """Descriptor returned by the initial export request."""

    status_url: str
    result_url: str
    message: str = ""
    progress: list[ProgressStage] = []

    @field_validator("message", mode="before")
    @classmethod
    def none_is_empty(cls, v: Any) -> Any:  # noqa: ANN401
        return "" if v is None else v

    @field_validator("progress", mode="before")
    @classmethod
    def coerce_progress(cls, v: Any) -> Any:  # noqa: ANN401
        return _coerce_stages(v)

    @classmethod
    def from_response(cls, response: RawResponse) -> ExportJob:
        """Decode the initial export response body."""
        payload = _decode_payload(response, "Export response")
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as e:
            msg = f"Malformed export job descriptor: {_describe(e)}"
            raise ServerJobError(msg) from e
