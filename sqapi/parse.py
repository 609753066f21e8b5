"""Parse SQUIDLE+ API responses into Python structures.

Supported formats:

- ``csv``: ``pandas.DataFrame`` (first line is the header)
- ``json``: the decoded JSON tree (dicts and lists)
- ``html``: the page text, or a temporary file path when viewed
- ``txt``: tab-delimited ``pandas.DataFrame``

When no file type is given it is detected from the ``Content-Disposition``
file extension, falling back to ``json`` with a warning.
"""

from __future__ import annotations

import io
import json
import re
import tempfile
import webbrowser
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pandas as pd
from loguru import logger

from sqapi.exceptions import UnsupportedFormatError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqapi._client.dtos import RawResponse

_EXTENSION_RE = re.compile(r"\.([A-Za-z0-9]+)[\"']?\s*;?\s*$")


class FileType(str, Enum):
    """Response formats understood by :func:`parse_api`."""

    CSV = "csv"
    JSON = "json"
    HTML = "html"
    TXT = "txt"

    @classmethod
    def coerce(cls, value: str | FileType) -> FileType:
        """Return the member for *value* or raise ``UnsupportedFormatError``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            msg = f"Unsupported filetype {value!r}; expected one of {allowed}."
            raise UnsupportedFormatError(msg) from None


def detect_filetype(response: RawResponse) -> FileType:
    """Guess the file type from the ``Content-Disposition`` extension.

    Falls back to ``FileType.JSON`` (with a warning) when the header is
    missing or names an unsupported extension.
    """
    disposition = response.header("content-disposition")
    if not disposition:
        logger.warning(
            "No Content-Disposition header to detect the file type from; "
            "defaulting to 'json'. Pass filetype explicitly to override."
        )
        return FileType.JSON
    match = _EXTENSION_RE.search(disposition)
    ext = match.group(1).lower() if match else ""
    try:
        return FileType(ext)
    except ValueError:
        logger.warning(
            f"Detected filetype {ext!r} not supported; defaulting to 'json'. "
            "Pass filetype explicitly to override."
        )
        return FileType.JSON


def _view_html(content: bytes, opener: Callable[[str], object]) -> Path:
    """Write *content* to a temporary ``.html`` file and open it."""
    with tempfile.NamedTemporaryFile(suffix=".html", delete=False) as fh:
        fh.write(content)
        path = Path(fh.name)
    opener(path.as_uri())
    logger.info(f"HTML written to {path}")
    return path


def parse_api(
    response: RawResponse,
    filetype: str | FileType | None = None,
    *,
    view_html: bool = False,
    opener: Callable[[str], object] = webbrowser.open,
) -> Any:  # noqa: ANN401
    """Decode *response* according to *filetype*.

    Parameters
    ----------
    response:
        A response returned by :func:`sqapi.request` or :func:`sqapi.export`.
    filetype:
        ``"csv"``, ``"json"``, ``"html"`` or ``"txt"``.  Detected from the
        response headers when omitted.
    view_html:
        For HTML, write the page to a temporary file, open it with *opener*
        and return the file path instead of the text.
    opener:
        Viewer called with the temporary file URI (the default browser).

    Raises
    ------
    UnsupportedFormatError
        *filetype* is given but not one of the supported values.

    """
    kind = detect_filetype(response) if filetype is None else FileType.coerce(filetype)
    content = response.body()
    logger.debug(f"Parsing {len(content)} bytes as {kind.value}")

    match kind:
        case FileType.CSV:
            return pd.read_csv(io.BytesIO(content))
        case FileType.JSON:
            return json.loads(content.decode("utf-8"))
        case FileType.HTML:
            if view_html:
                return _view_html(content, opener)
            return content.decode("utf-8", errors="replace")
        case FileType.TXT:
            return pd.read_csv(io.BytesIO(content), sep="\t")
    msg = f"Unsupported filetype {kind!r}"
    raise UnsupportedFormatError(msg)


def to_dataframe(parsed: Any) -> pd.DataFrame:  # noqa: ANN401
    """Project parsed JSON onto a table.

    Accepts a list of objects or a paginated payload with an ``objects``
    list; nested objects become dotted column names.
    """
    if isinstance(parsed, pd.DataFrame):
        return parsed
    records = parsed.get("objects") if isinstance(parsed, dict) else parsed
    if not isinstance(records, list):
        msg = "Expected a JSON array of objects or a payload with an 'objects' list."
        raise UnsupportedFormatError(msg)
    return pd.json_normalize(records)
