"""boto3 adapters for S3, Textract, Comprehend and the SQS completion queue.

The SDK clients are synchronous; every call is pushed to a worker thread with
``asyncio.to_thread`` so a slow AWS round trip never stalls the event loop.
Provider errors are translated into the service's own exception types here,
so nothing above this module imports botocore.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import AppConfig
from ..errors import AnalysisError, JobFailedError, JobStartError, OCRQueryError, StorageError
from ..models.extraction import (
    Entity,
    JobResult,
    JobStatus,
    NotificationChannel,
    Sentiment,
    StorageKey,
    TextBlock,
)

_LOG = logging.getLogger("docextract.aws")

_AWS_ERRORS = (BotoCoreError, ClientError)
# Query errors that will not go away by asking again.
_PERMANENT_QUERY_ERRORS = frozenset(
    {"InvalidJobIdException", "AccessDeniedException", "InvalidParameterException", "InvalidKMSKeyException"}
)
TEXTRACT_PAGE_SIZE = 1000
SQS_MAX_WAIT_SECONDS = 20
# Deliveries after which an unclaimed completion notice is dropped.
MAX_FOREIGN_RECEIVES = 10


def _error_code(exc: Exception) -> str | None:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code")
    return None


def create_session(cfg: AppConfig) -> boto3.session.Session:
    """Build a session from explicit credentials, or the default chain when unset."""
    return boto3.session.Session(
        aws_access_key_id=cfg.aws_access_key_id or None,
        aws_secret_access_key=cfg.aws_secret_access_key or None,
        aws_session_token=cfg.aws_session_token or None,
        region_name=cfg.aws_region,
    )


def client_config() -> Config:
    return Config(retries={"max_attempts": 3, "mode": "standard"})


class S3ObjectStore:
    """ObjectStore backed by ``s3.put_object``."""

    def __init__(self, client: Any) -> None:
        self.client = client

    async def put(
        self, bucket: str, key: str, data: bytes, content_type: str | None = None
    ) -> None:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        try:
            await asyncio.to_thread(self.client.put_object, **params)
        except _AWS_ERRORS as exc:
            raise StorageError(f"S3 upload failed for s3://{bucket}/{key}: {exc}") from exc


class TextractOCRClient:
    """OCRClient backed by Textract's asynchronous text detection API."""

    def __init__(self, client: Any, *, page_size: int = TEXTRACT_PAGE_SIZE) -> None:
        self.client = client
        self.page_size = page_size

    async def start_job(
        self, source: StorageKey, notification: NotificationChannel | None = None
    ) -> str | None:
        params: dict[str, Any] = {
            "DocumentLocation": {"S3Object": {"Bucket": source.bucket, "Name": source.key}},
        }
        if notification is not None:
            params["NotificationChannel"] = {
                "SNSTopicArn": notification.topic_arn,
                "RoleArn": notification.role_arn,
            }
        try:
            response = await asyncio.to_thread(self.client.start_document_text_detection, **params)
        except _AWS_ERRORS as exc:
            raise JobStartError(f"Textract rejected {source.uri}: {exc}") from exc
        return response.get("JobId")

    async def get_job_result(self, job_id: str) -> JobResult:
        try:
            return await asyncio.to_thread(self._fetch_result, job_id)
        except _AWS_ERRORS as exc:
            if _error_code(exc) in _PERMANENT_QUERY_ERRORS:
                raise JobFailedError(f"Textract job {job_id} cannot be queried: {exc}") from exc
            raise OCRQueryError(f"Textract status query failed for {job_id}: {exc}") from exc

    def _fetch_result(self, job_id: str) -> JobResult:
        blocks: list[TextBlock] = []
        next_token: str | None = None
        while True:
            params: dict[str, Any] = {"JobId": job_id, "MaxResults": self.page_size}
            if next_token:
                params["NextToken"] = next_token
            response = self.client.get_document_text_detection(**params)
            status = JobStatus.from_provider(response.get("JobStatus"))
            blocks.extend(TextBlock.from_mapping(block) for block in response.get("Blocks") or [])
            next_token = response.get("NextToken")
            # Only a finished job has a stable result set worth paging through.
            if status is not JobStatus.SUCCEEDED or not next_token:
                return JobResult(
                    status=status,
                    blocks=tuple(blocks),
                    status_message=response.get("StatusMessage"),
                )


class ComprehendNLPClient:
    """NLPClient backed by Comprehend sentiment and entity detection."""

    def __init__(self, client: Any) -> None:
        self.client = client

    async def detect_sentiment(self, text: str, language_code: str) -> Sentiment:
        try:
            response = await asyncio.to_thread(
                self.client.detect_sentiment, Text=text, LanguageCode=language_code
            )
        except _AWS_ERRORS as exc:
            raise AnalysisError(f"Sentiment detection failed: {exc}") from exc
        scores = response.get("SentimentScore") or {}
        return Sentiment(
            label=str(response.get("Sentiment") or ""),
            scores={name: float(value) for name, value in scores.items()},
        )

    async def detect_entities(self, text: str, language_code: str) -> list[Entity]:
        try:
            response = await asyncio.to_thread(
                self.client.detect_entities, Text=text, LanguageCode=language_code
            )
        except _AWS_ERRORS as exc:
            raise AnalysisError(f"Entity detection failed: {exc}") from exc
        return [
            Entity(
                text=str(item.get("Text") or ""),
                type=str(item.get("Type") or ""),
                score=float(item.get("Score") or 0.0),
            )
            for item in response.get("Entities") or []
        ]


@dataclass(slots=True, frozen=True)
class CompletionNotice:
    job_id: str
    status: JobStatus


def parse_completion_notice(body: str | None) -> CompletionNotice | None:
    """Decode a Textract completion message, with or without the SNS envelope."""
    if not body:
        return None
    try:
        payload = json.loads(body)
        if isinstance(payload, dict) and isinstance(payload.get("Message"), str):
            payload = json.loads(payload["Message"])
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict) or not payload.get("JobId"):
        return None
    return CompletionNotice(
        job_id=str(payload["JobId"]),
        status=JobStatus.from_provider(payload.get("Status")),
    )


class SQSCompletionListener:
    """CompletionListener reading Textract notifications from an SQS queue.

    The queue is subscribed to the SNS topic passed to Textract. Messages for
    other jobs are released back to the queue so concurrent waiters can claim
    them, after which the listener backs off before receiving again. A notice
    nobody has claimed after ``max_foreign_receives`` deliveries belongs to a
    waiter that is gone and is deleted.
    """

    def __init__(
        self,
        client: Any,
        *,
        queue_url: str,
        wait_time_seconds: int = SQS_MAX_WAIT_SECONDS,
        error_backoff_seconds: float = 1.0,
        idle_backoff_seconds: float = 1.0,
        max_foreign_receives: int = MAX_FOREIGN_RECEIVES,
        clock: Callable[[], float] = time.monotonic,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.queue_url = queue_url
        self.wait_time_seconds = min(wait_time_seconds, SQS_MAX_WAIT_SECONDS)
        self.error_backoff_seconds = error_backoff_seconds
        self.idle_backoff_seconds = idle_backoff_seconds
        self.max_foreign_receives = max_foreign_receives
        self._clock = clock
        self._sleep = sleep_fn

    async def wait_for(self, job_id: str, *, timeout: float) -> JobStatus | None:
        deadline = self._clock() + timeout
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return None
            wait_seconds = max(1, min(self.wait_time_seconds, int(remaining)))
            try:
                response = await asyncio.to_thread(
                    self.client.receive_message,
                    QueueUrl=self.queue_url,
                    MaxNumberOfMessages=10,
                    WaitTimeSeconds=wait_seconds,
                    AttributeNames=["ApproximateReceiveCount"],
                )
            except _AWS_ERRORS as exc:
                _LOG.warning(
                    "completion_queue_receive_failed",
                    extra={"job_id": job_id, "error": str(exc)},
                )
                await self._sleep(min(self.error_backoff_seconds, max(remaining, 0)))
                continue
            messages = response.get("Messages") or []
            for message in messages:
                receipt = message.get("ReceiptHandle")
                notice = parse_completion_notice(message.get("Body"))
                if notice is not None and notice.job_id == job_id:
                    await self._acknowledge(receipt, job_id)
                    return notice.status
                if _receive_count(message) >= self.max_foreign_receives:
                    await self._discard(receipt, notice)
                else:
                    await self._release(receipt)
            if messages:
                # Only foreign notices came back; they would be redelivered at once.
                remaining = deadline - self._clock()
                if remaining > 0:
                    await self._sleep(min(self.idle_backoff_seconds, remaining))

    async def _acknowledge(self, receipt: str | None, job_id: str) -> None:
        try:
            await asyncio.to_thread(
                self.client.delete_message, QueueUrl=self.queue_url, ReceiptHandle=receipt
            )
        except _AWS_ERRORS as exc:
            _LOG.warning(
                "completion_queue_delete_failed",
                extra={"job_id": job_id, "error": str(exc)},
            )

    async def _discard(self, receipt: str | None, notice: CompletionNotice | None) -> None:
        _LOG.warning(
            "completion_notice_unclaimed",
            extra={"job_id": notice.job_id if notice else None, "reason": "max_receives"},
        )
        if receipt:
            await self._acknowledge(receipt, notice.job_id if notice else "")

    async def _release(self, receipt: str | None) -> None:
        if not receipt:
            return
        try:
            await asyncio.to_thread(
                self.client.change_message_visibility,
                QueueUrl=self.queue_url,
                ReceiptHandle=receipt,
                VisibilityTimeout=0,
            )
        except _AWS_ERRORS as exc:
            _LOG.warning("completion_queue_release_failed", extra={"error": str(exc)})


def _receive_count(message: dict[str, Any]) -> int:
    raw = (message.get("Attributes") or {}).get("ApproximateReceiveCount")
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


__all__ = [
    "ComprehendNLPClient",
    "CompletionNotice",
    "S3ObjectStore",
    "SQSCompletionListener",
    "TextractOCRClient",
    "client_config",
    "create_session",
    "parse_completion_notice",
]
