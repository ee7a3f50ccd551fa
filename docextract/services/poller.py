"""Completion poller: bridges an asynchronous OCR job to a single awaitable.

The poller queries job status with bounded exponential backoff until the job
reaches a terminal state. Text is rebuilt from the full result set returned by
each query, so the final poll is authoritative. Query failures are logged and
retried; exhausting the attempt or wall-clock ceiling raises
``PollingTimeoutError``. Cancelling the awaiting task aborts the loop,
including while it sleeps between attempts.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from ..errors import JobFailedError, OCRQueryError, PollingTimeoutError
from ..models.extraction import JobHandle, JobResult, JobStatus, NotificationChannel, join_line_text
from ..utils.logging_utils import structured_log
from .interfaces import MetricsClient, OCRClient
from .metrics import NullMetrics

_LOG = logging.getLogger("docextract.poller")

POLL_INITIAL_DELAY_SECONDS = 1.0
POLL_MAX_DELAY_SECONDS = 10.0
POLL_MAX_ATTEMPTS = 60
POLL_TIMEOUT_SECONDS = 5 * 60


def _still_running(result: JobResult) -> bool:
    return result.status is JobStatus.RUNNING


class CompletionPoller:
    """Polls a text-detection job until SUCCEEDED or FAILED."""

    def __init__(
        self,
        *,
        ocr_client: OCRClient,
        initial_delay: float = POLL_INITIAL_DELAY_SECONDS,
        max_delay: float = POLL_MAX_DELAY_SECONDS,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        timeout_seconds: float = POLL_TIMEOUT_SECONDS,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.ocr_client = ocr_client
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep_fn
        self.metrics = metrics or NullMetrics()

    @property
    def notification_channel(self) -> NotificationChannel | None:
        return None

    async def wait(self, job: JobHandle) -> str:
        """Return the trimmed LINE text of ``job`` once it succeeds."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts) | stop_after_delay(self.timeout_seconds),
            wait=wait_exponential(multiplier=self.initial_delay, min=self.initial_delay, max=self.max_delay),
            retry=retry_if_exception_type(OCRQueryError) | retry_if_result(_still_running),
            sleep=self._sleep,
            before_sleep=lambda state: self._log_retry(job, state),
        )
        try:
            # A single hung query must not carry the wait past the ceiling.
            result: JobResult = await asyncio.wait_for(
                retrying(self._poll_once, job), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            self.metrics.increment("ocr_jobs_timed_out_total", stage="ocr_poll")
            structured_log(
                _LOG,
                logging.ERROR,
                "ocr_poll_timeout",
                job_id=job.job_id,
                reason="deadline",
            )
            raise PollingTimeoutError(
                f"Textract job {job.job_id} did not complete within {self.timeout_seconds:g}s"
            ) from exc
        except RetryError as exc:
            attempts = exc.last_attempt.attempt_number
            self.metrics.increment("ocr_jobs_timed_out_total", stage="ocr_poll")
            structured_log(
                _LOG,
                logging.ERROR,
                "ocr_poll_timeout",
                job_id=job.job_id,
                attempt=attempts,
            )
            raise PollingTimeoutError(
                f"Textract job {job.job_id} did not complete after {attempts} attempts"
            ) from exc

        if result.status is JobStatus.FAILED:
            self.metrics.increment("ocr_jobs_failed_total", stage="ocr_poll")
            detail = f": {result.status_message}" if result.status_message else ""
            raise JobFailedError(f"Textract job {job.job_id} failed{detail}")

        text = join_line_text(result.blocks)
        self.metrics.increment("ocr_jobs_succeeded_total", stage="ocr_poll")
        structured_log(
            _LOG,
            logging.INFO,
            "ocr_job_succeeded",
            job_id=job.job_id,
            text_length=len(text),
        )
        return text

    async def _poll_once(self, job: JobHandle) -> JobResult:
        self.metrics.increment("ocr_poll_attempts_total", stage="ocr_poll")
        return await self.ocr_client.get_job_result(job.job_id)

    def _log_retry(self, job: JobHandle, state: RetryCallState) -> None:
        outcome = state.outcome
        sleep_seconds = state.next_action.sleep if state.next_action else None
        if outcome is not None and outcome.failed:
            error = outcome.exception()
            structured_log(
                _LOG,
                logging.WARNING,
                "ocr_poll_retry",
                job_id=job.job_id,
                attempt=state.attempt_number,
                sleep_seconds=round(sleep_seconds, 2) if sleep_seconds is not None else None,
                reason="query_error",
                error=str(error),
                error_type=type(error).__name__,
            )
            return
        structured_log(
            _LOG,
            logging.DEBUG,
            "ocr_poll_retry",
            job_id=job.job_id,
            attempt=state.attempt_number,
            sleep_seconds=round(sleep_seconds, 2) if sleep_seconds is not None else None,
            reason="running",
        )


__all__ = ["CompletionPoller"]
