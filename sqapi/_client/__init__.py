"""Internal helpers for splitting `sqapi.client` responsibilities."""

from sqapi._client.dispatch import HttpVerb, fetch, raise_for_status, send, transport_scope
from sqapi._client.dtos import RawResponse, RawStream
from sqapi._client.ports import CredentialProvider, DiskSink, HttpTransport, ProgressReporter
from sqapi._client.progress import NullProgressReporter, TqdmProgressReporter
from sqapi._client.requests_adapter import RequestsTransport
from sqapi._client.sinks import LocalDiskSink

__all__ = [
    "CredentialProvider",
    "DiskSink",
    "HttpTransport",
    "HttpVerb",
    "LocalDiskSink",
    "NullProgressReporter",
    "ProgressReporter",
    "RawResponse",
    "RawStream",
    "RequestsTransport",
    "TqdmProgressReporter",
    "fetch",
    "raise_for_status",
    "send",
    "transport_scope",
]
