"""Shared interfaces used across the extraction services."""

from __future__ import annotations

from typing import Protocol

from ..models.extraction import (
    Entity,
    JobHandle,
    JobResult,
    JobStatus,
    NotificationChannel,
    Sentiment,
    StorageKey,
)


class ObjectStore(Protocol):
    """Write-only view of the object storage bucket."""

    async def put(
        self, bucket: str, key: str, data: bytes, content_type: str | None = None
    ) -> None: ...


class OCRClient(Protocol):
    """Asynchronous text-detection job API."""

    async def start_job(
        self, source: StorageKey, notification: NotificationChannel | None = None
    ) -> str | None: ...

    async def get_job_result(self, job_id: str) -> JobResult: ...


class NLPClient(Protocol):
    """Sentiment and entity detection API."""

    async def detect_sentiment(self, text: str, language_code: str) -> Sentiment: ...

    async def detect_entities(self, text: str, language_code: str) -> list[Entity]: ...


class CompletionListener(Protocol):
    """Receives pushed job completion notifications."""

    async def wait_for(self, job_id: str, *, timeout: float) -> JobStatus | None: ...


class JobCompletionStrategy(Protocol):
    """Turns a started OCR job into its extracted text."""

    @property
    def notification_channel(self) -> NotificationChannel | None: ...

    async def wait(self, job: JobHandle) -> str: ...


class MetricsClient(Protocol):
    """Interface for emitting metrics to Prometheus."""

    def observe_latency(self, name: str, value: float, **labels: str) -> None: ...

    def increment(self, name: str, amount: int = 1, **labels: str) -> None: ...


__all__ = [
    "CompletionListener",
    "JobCompletionStrategy",
    "MetricsClient",
    "NLPClient",
    "OCRClient",
    "ObjectStore",
]
