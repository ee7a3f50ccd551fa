"""Job completion strategies.

``CompletionPoller`` (see ``poller.py``) asks the OCR service for status until
the job finishes. ``NotificationCompletion`` instead starts the job with an SNS
notification channel and waits for Textract's completion message, then reads
the result once.
"""
from __future__ import annotations

import logging

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import JobFailedError, OCRQueryError, PollingTimeoutError
from ..models.extraction import JobHandle, JobStatus, NotificationChannel, join_line_text
from ..utils.logging_utils import structured_log
from .interfaces import CompletionListener, MetricsClient, OCRClient
from .metrics import NullMetrics

_LOG = logging.getLogger("docextract.completion")

RESULT_FETCH_ATTEMPTS = 3


class NotificationCompletion:
    """Waits for a pushed completion notice instead of polling job status."""

    def __init__(
        self,
        *,
        ocr_client: OCRClient,
        listener: CompletionListener,
        channel: NotificationChannel,
        timeout_seconds: float,
        fetch_attempts: int = RESULT_FETCH_ATTEMPTS,
        fetch_delay: float = 1.0,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.ocr_client = ocr_client
        self.listener = listener
        self.channel = channel
        self.timeout_seconds = timeout_seconds
        self.fetch_attempts = fetch_attempts
        self.fetch_delay = fetch_delay
        self.metrics = metrics or NullMetrics()

    @property
    def notification_channel(self) -> NotificationChannel | None:
        return self.channel

    async def wait(self, job: JobHandle) -> str:
        status = await self.listener.wait_for(job.job_id, timeout=self.timeout_seconds)
        if status is None:
            self.metrics.increment("ocr_jobs_timed_out_total", stage="ocr_notify")
            raise PollingTimeoutError(
                f"No completion notice for Textract job {job.job_id} within {self.timeout_seconds:g}s"
            )
        structured_log(_LOG, logging.INFO, "ocr_completion_notice", job_id=job.job_id, status=status.value)
        if status is JobStatus.FAILED:
            self.metrics.increment("ocr_jobs_failed_total", stage="ocr_notify")
            raise JobFailedError(f"Textract job {job.job_id} failed")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.fetch_attempts),
            wait=wait_exponential(multiplier=self.fetch_delay, max=self.fetch_delay * 4),
            retry=retry_if_exception_type(OCRQueryError),
            reraise=True,
        ):
            with attempt:
                result = await self.ocr_client.get_job_result(job.job_id)
        if result.status is not JobStatus.SUCCEEDED:
            self.metrics.increment("ocr_jobs_failed_total", stage="ocr_notify")
            detail = f": {result.status_message}" if result.status_message else ""
            raise JobFailedError(f"Textract job {job.job_id} reported {result.status.value}{detail}")
        self.metrics.increment("ocr_jobs_succeeded_total", stage="ocr_notify")
        return join_line_text(result.blocks)


__all__ = ["NotificationCompletion"]
