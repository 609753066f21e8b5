"""Drive asynchronous export jobs to completion.

The transition logic (:func:`evaluate_status`) is a pure function of one
decoded status payload, so it can be tested with canned payloads.  The
:class:`Poller` performs the I/O around it: status requests, the fixed
delay between attempts, progress reporting and the final result download.

Polling has no attempt limit and no timeout.  Callers that need a deadline
pass a ``threading.Event`` as *cancel* and set it from elsewhere; it is
checked before every status request and interrupts the delay.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger
from tenacity import Retrying, retry_if_result, stop_never, wait_fixed

from sqapi._client.dispatch import HttpVerb, fetch, raise_for_status
from sqapi._client.progress import NullProgressReporter
from sqapi.exceptions import PollCancelledError, ServerJobError, SqapiError
from sqapi.models import JobStatus

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterable

    from sqapi._client.dtos import RawResponse
    from sqapi._client.ports import DiskSink, HttpTransport, ProgressReporter
    from sqapi.models import ApiSession, ExportJob, ProgressStage

POLL_INTERVAL = 1.0
"""Seconds between two status requests."""


class PollState(str, Enum):
    """States of one export job as seen by the client."""

    INITIATED = "initiated"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollStep:
    """Outcome of evaluating one status payload."""

    state: PollState
    progress: float = 0.0
    message: str = ""


def compute_progress(stages: Iterable[ProgressStage]) -> float:
    """Return overall completion in percent summed across all stages."""
    completed = 0.0
    total = 0.0
    for stage in stages:
        completed += stage.iteration
        total += stage.iteration_count
    if total <= 0:
        return 0.0
    return completed / total * 100


def evaluate_status(status: JobStatus) -> PollStep:
    """Map a status payload to the next state."""
    if status.result_available or status.status == "done":
        return PollStep(PollState.COMPLETED, progress=100.0, message=status.message or "")
    if status.status == "error":
        return PollStep(
            PollState.FAILED,
            message=status.message or "Error in processing the request.",
        )
    return PollStep(
        PollState.POLLING,
        progress=compute_progress(status.progress),
        message=status.message or "",
    )


def _still_polling(step: PollStep) -> bool:
    return step.state is PollState.POLLING


class Poller:
    """Poll an export job's status URL, then fetch its result.

    Errors are never retried: a non-2xx status response, a connection
    failure or an undecodable payload ends the loop immediately.
    """

    def __init__(  # noqa: PLR0913
        self,
        session: ApiSession,
        transport: HttpTransport,
        *,
        reporter: ProgressReporter | None = None,
        sink: DiskSink | None = None,
        interval: float = POLL_INTERVAL,
        cancel: threading.Event | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Store collaborators; *sleep* is replaced in tests."""
        self._session = session
        self._transport = transport
        self._reporter = reporter or NullProgressReporter()
        self._sink = sink
        self._interval = interval
        self._cancel = cancel
        self._sleep = sleep
        self.state = PollState.INITIATED

    def run(self, job: ExportJob, filename: str | None = None) -> RawResponse:
        """Wait for *job* to finish and return the result response.

        Raises
        ------
        ServerJobError
            The status URL reported ``status == "error"``.
        TransportError
            A status or result request failed.
        PollCancelledError
            The *cancel* event was set.

        """
        status_url = self._session.resolve(job.status_url)
        result_url = self._session.resolve(job.result_url)
        if job.message:
            logger.info(job.message)
        logger.info(f"Status URL: {status_url}")
        logger.info(f"Results URL: {result_url}")

        try:
            step = self._wait(status_url)
            if step.state is PollState.FAILED:
                logger.error(f"Export failed: {step.message}")
                raise ServerJobError(step.message)

            result = fetch(
                self._session,
                result_url,
                transport=self._transport,
                filename=filename,
                sink=self._sink,
            )
            self._reporter.report(100.0)
            self.state = PollState.COMPLETED
            return result
        except PollCancelledError:
            self.state = PollState.CANCELLED
            raise
        except SqapiError:
            self.state = PollState.FAILED
            raise
        finally:
            self._reporter.close()

    def _wait(self, status_url: str) -> PollStep:
        """Repeat status checks until the job leaves the POLLING state."""
        self.state = PollState.POLLING
        retrying = Retrying(
            retry=retry_if_result(_still_polling),
            wait=wait_fixed(self._interval),
            stop=stop_never,
            sleep=self._pause,
            reraise=True,
        )
        return retrying(self._check_status, status_url)

    def _check_status(self, status_url: str) -> PollStep:
        self._raise_if_cancelled()
        response = self._transport.request(
            HttpVerb.GET.value,
            status_url,
            headers=self._session.auth_headers(),
        )
        raise_for_status(response, "Poll status URL")
        status = JobStatus.from_response(response)
        step = evaluate_status(status)
        logger.trace(f"Export status {status.status!r}: {step.state.value}")
        if step.state is PollState.POLLING:
            self._reporter.report(step.progress)
        return step

    def _pause(self, seconds: float) -> None:
        if self._cancel is None:
            self._sleep(seconds)
            return
        if self._cancel.wait(seconds):
            self._raise_if_cancelled()

    def _raise_if_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            msg = "Export polling cancelled."
            raise PollCancelledError(msg)
