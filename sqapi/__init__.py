"""sqapi -- SQUIDLE+ API client: filters, queries, requests and exports."""

from sqapi._client.dispatch import HttpVerb
from sqapi._client.dtos import RawResponse
from sqapi._client.ports import CredentialProvider, DiskSink, HttpTransport, ProgressReporter
from sqapi._client.progress import NullProgressReporter, TqdmProgressReporter
from sqapi.client import SquidleClient, export, request, send
from sqapi.config import SquidleConfig
from sqapi.exceptions import (
    ConfigurationError,
    InteractiveModeRequiredError,
    PollCancelledError,
    ServerJobError,
    SqapiError,
    TransportError,
    UnsupportedFormatError,
    ValidationError,
)
from sqapi.models import (
    ApiSession,
    ExportJob,
    FilterNode,
    JobStatus,
    ProgressStage,
    QueryParams,
    Transform,
    Translate,
    query_filter,
    query_params,
    transform,
    translate,
)
from sqapi.parse import FileType, detect_filetype, parse_api, to_dataframe
from sqapi.poller import Poller, PollState, compute_progress, evaluate_status
from sqapi.url import build_url

__all__ = [
    "ApiSession",
    "ConfigurationError",
    "CredentialProvider",
    "DiskSink",
    "ExportJob",
    "FileType",
    "FilterNode",
    "HttpTransport",
    "HttpVerb",
    "InteractiveModeRequiredError",
    "JobStatus",
    "NullProgressReporter",
    "PollCancelledError",
    "PollState",
    "Poller",
    "ProgressReporter",
    "ProgressStage",
    "QueryParams",
    "RawResponse",
    "ServerJobError",
    "SqapiError",
    "SquidleClient",
    "SquidleConfig",
    "Transform",
    "TransportError",
    "Translate",
    "TqdmProgressReporter",
    "UnsupportedFormatError",
    "ValidationError",
    "build_url",
    "compute_progress",
    "detect_filetype",
    "evaluate_status",
    "export",
    "parse_api",
    "query_filter",
    "query_params",
    "request",
    "send",
    "to_dataframe",
    "transform",
    "translate",
]
