"""Starts asynchronous text-detection jobs for stored documents."""

from __future__ import annotations

import logging

from ..errors import JobStartError
from ..models.extraction import JobHandle, NotificationChannel, StorageKey
from .interfaces import OCRClient

_LOG = logging.getLogger("docextract.submitter")


class JobSubmitter:
    """Requests that OCR processing begin; says nothing about progress."""

    def __init__(self, *, ocr_client: OCRClient) -> None:
        self.ocr_client = ocr_client

    async def submit(
        self, source: StorageKey, notification: NotificationChannel | None = None
    ) -> JobHandle:
        try:
            job_id = await self.ocr_client.start_job(source, notification)
        except JobStartError:
            raise
        except Exception as exc:
            raise JobStartError(f"Failed to start text detection for {source.uri}: {exc}") from exc
        if not job_id:
            raise JobStartError("Failed to start Textract job")
        _LOG.info(
            "ocr_job_started",
            extra={
                "job_id": job_id,
                "key": source.key,
                "notify": notification is not None,
            },
        )
        return JobHandle(job_id=job_id, source=source)


__all__ = ["JobSubmitter"]
