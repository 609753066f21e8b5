"""Tests for the export poll state machine and the Poller I/O loop."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from sqapi.exceptions import PollCancelledError, ServerJobError, TransportError
from sqapi.models import ExportJob, JobStatus, ProgressStage
from sqapi.poller import (
    PollState,
    Poller,
    compute_progress,
    evaluate_status,
)
from tests.conftest import HOST, make_response

if TYPE_CHECKING:
    from sqapi.models import ApiSession
    from tests.fixtures.fake_transport import FakeTransport, MemorySink, RecordingReporter

JOB = ExportJob(status_url="/api/status/7", result_url="/api/result/7", message="Queued")


def _pending(iteration: int, count: int) -> dict[str, object]:
    return {"status": "pending", "progress": [{"iteration": iteration, "iteration_count": count}]}


# ---------------------------------------------------------------------------
# compute_progress / evaluate_status
# ---------------------------------------------------------------------------


def test_compute_progress_sums_all_stages() -> None:
    stages = [
        ProgressStage(iteration=1, iteration_count=4),
        ProgressStage(iteration=3, iteration_count=4),
    ]
    assert compute_progress(stages) == 50.0


def test_compute_progress_no_stages() -> None:
    assert compute_progress([]) == 0.0


def test_compute_progress_zero_total() -> None:
    assert compute_progress([ProgressStage(iteration=0, iteration_count=0)]) == 0.0


def test_evaluate_done() -> None:
    step = evaluate_status(JobStatus(status="done"))
    assert step.state is PollState.COMPLETED
    assert step.progress == 100.0


def test_evaluate_result_available_wins_over_pending() -> None:
    step = evaluate_status(JobStatus(status="pending", result_available=True))
    assert step.state is PollState.COMPLETED


def test_evaluate_error_keeps_message() -> None:
    step = evaluate_status(JobStatus(status="error", message="bad filter"))
    assert step.state is PollState.FAILED
    assert step.message == "bad filter"


def test_evaluate_error_default_message() -> None:
    step = evaluate_status(JobStatus(status="error"))
    assert step.message == "Error in processing the request."


def test_evaluate_pending_progress() -> None:
    status = JobStatus.model_validate(_pending(1, 4))
    step = evaluate_status(status)
    assert step.state is PollState.POLLING
    assert step.progress == 25.0


def test_evaluate_unknown_status_keeps_polling() -> None:
    assert evaluate_status(JobStatus(status="queued")).state is PollState.POLLING


# ---------------------------------------------------------------------------
# Poller
# ---------------------------------------------------------------------------


def _poller(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
    sink: MemorySink | None = None,
    *,
    cancel: threading.Event | None = None,
) -> tuple[Poller, list[float]]:
    sleeps: list[float] = []
    poller = Poller(
        session,
        transport,
        reporter=reporter,
        sink=sink,
        cancel=cancel,
        sleep=sleeps.append,
    )
    return poller, sleeps


def test_poller_reports_progress_then_fetches_result(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
) -> None:
    transport.push(
        make_response(json_body=_pending(1, 4)),
        make_response(json_body=_pending(2, 4)),
        make_response(json_body={"status": "done"}),
        make_response(json_body=[{"id": 1}]),
    )
    poller, sleeps = _poller(session, transport, reporter)
    assert poller.state is PollState.INITIATED

    result = poller.run(JOB)

    assert result.json() == [{"id": 1}]
    assert poller.state is PollState.COMPLETED
    assert reporter.reports == [25.0, 50.0, 100.0]
    assert reporter.closed
    assert sleeps == [1.0, 1.0]
    assert [c.url for c in transport.calls] == [
        f"{HOST}/api/status/7",
        f"{HOST}/api/status/7",
        f"{HOST}/api/status/7",
        f"{HOST}/api/result/7",
    ]


def test_poller_error_raises_without_fetching_result(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
) -> None:
    transport.push(
        make_response(json_body=_pending(1, 2)),
        make_response(json_body={"status": "error", "message": "bad filter"}),
    )
    poller, _sleeps = _poller(session, transport, reporter)

    with pytest.raises(ServerJobError, match="bad filter") as excinfo:
        poller.run(JOB)

    assert excinfo.value.message == "bad filter"
    assert poller.state is PollState.FAILED
    assert all("result" not in c.url for c in transport.calls)
    assert reporter.closed


def test_poller_status_http_error_not_retried(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
) -> None:
    transport.push(
        make_response(502, content=b"Bad gateway"),
        make_response(json_body={"status": "done"}),
    )
    poller, sleeps = _poller(session, transport, reporter)

    with pytest.raises(TransportError, match="Poll status URL failed: HTTP 502"):
        poller.run(JOB)

    assert len(transport.calls) == 1
    assert sleeps == []
    assert poller.state is PollState.FAILED


def test_poller_connection_failure_propagates(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
) -> None:
    transport.push(TransportError("GET failed: reset by peer"))
    poller, _sleeps = _poller(session, transport, reporter)
    with pytest.raises(TransportError, match="reset by peer"):
        poller.run(JOB)
    assert poller.state is PollState.FAILED


def test_poller_malformed_status_is_server_job_error(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
) -> None:
    transport.push(make_response(content=b"not json"))
    poller, _sleeps = _poller(session, transport, reporter)
    with pytest.raises(ServerJobError, match="Export status is not valid JSON"):
        poller.run(JOB)
    assert poller.state is PollState.FAILED
    assert reporter.closed


def test_poller_cancel_interrupts_wait(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
) -> None:
    cancel = threading.Event()

    class _CancellingReporter:
        def report(self, percent: float) -> None:
            reporter.report(percent)
            cancel.set()

        def close(self) -> None:
            reporter.close()

    transport.push(make_response(json_body=_pending(1, 4)), make_response(json_body={"status": "done"}))
    poller = Poller(session, transport, reporter=_CancellingReporter(), cancel=cancel)

    with pytest.raises(PollCancelledError):
        poller.run(JOB)

    assert poller.state is PollState.CANCELLED
    assert len(transport.calls) == 1
    assert reporter.reports == [25.0]
    assert reporter.closed


def test_poller_streams_result_to_sink(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
    sink: MemorySink,
) -> None:
    transport.push(
        make_response(json_body={"status": "done"}),
        make_response(content=b"id\tname\n1\tx\n"),
    )
    poller, _sleeps = _poller(session, transport, reporter, sink)

    result = poller.run(JOB, filename="result.txt")

    assert sink.files == {"result.txt": b"id\tname\n1\tx\n"}
    assert result.path is not None
    assert transport.calls[-1].streamed


def test_poller_absolute_status_url_used_as_is(
    session: ApiSession,
    transport: FakeTransport,
    reporter: RecordingReporter,
) -> None:
    job = ExportJob(
        status_url="https://jobs.example.org/status/1",
        result_url="https://jobs.example.org/result/1",
    )
    transport.push(make_response(json_body={"status": "done"}), make_response(json_body={}))
    poller, _sleeps = _poller(session, transport, reporter)
    poller.run(job)
    assert transport.calls[0].url == "https://jobs.example.org/status/1"
