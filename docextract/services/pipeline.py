"""Upload -> OCR job -> completion -> analysis pipeline and its factory."""

from __future__ import annotations

import logging
import time

from ..config import AppConfig
from ..models.extraction import ExtractionResult, NotificationChannel, UploadedFile
from ..utils.logging_utils import log_stage_skipped, stage_marker, structured_log
from .analyzer import TextAnalyzer
from .aws_clients import (
    ComprehendNLPClient,
    S3ObjectStore,
    SQSCompletionListener,
    TextractOCRClient,
    client_config,
    create_session,
)
from .completion import NotificationCompletion
from .interfaces import JobCompletionStrategy, MetricsClient
from .job_submitter import JobSubmitter
from .metrics import NullMetrics
from .poller import CompletionPoller
from .uploader import BlobUploader

_LOG = logging.getLogger("docextract.pipeline")
_COMPONENT = "extract_pipeline"


class DocumentPipeline:
    """Runs one uploaded document through every stage, sequentially."""

    def __init__(
        self,
        *,
        uploader: BlobUploader,
        submitter: JobSubmitter,
        completion: JobCompletionStrategy,
        analyzer: TextAnalyzer | None = None,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.uploader = uploader
        self.submitter = submitter
        self.completion = completion
        self.analyzer = analyzer
        self.metrics = metrics or NullMetrics()

    @property
    def analysis_enabled(self) -> bool:
        return self.analyzer is not None

    async def process(self, file: UploadedFile) -> ExtractionResult:
        started = time.perf_counter()
        try:
            result = await self._run(file)
        except Exception as exc:
            self.metrics.increment("pipeline_failures_total", stage="pipeline")
            structured_log(
                _LOG,
                logging.ERROR,
                "pipeline_failed",
                upload_name=file.filename,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        self.metrics.observe_latency(
            "pipeline_latency_seconds", time.perf_counter() - started, stage="pipeline"
        )
        return result

    async def _run(self, file: UploadedFile) -> ExtractionResult:
        async with stage_marker(
            _LOG, stage="upload", component=_COMPONENT, upload_name=file.filename, bytes=file.size
        ) as upload_stage:
            storage_key = await self.uploader.upload(file)
            upload_stage.add_completion_fields(key=storage_key.key)
        self.metrics.observe_latency("stage_latency_seconds", upload_stage.elapsed, stage="upload")

        async with stage_marker(_LOG, stage="submit", component=_COMPONENT, key=storage_key.key) as submit_stage:
            job = await self.submitter.submit(storage_key, self.completion.notification_channel)
            submit_stage.add_completion_fields(job_id=job.job_id)
        self.metrics.observe_latency("stage_latency_seconds", submit_stage.elapsed, stage="submit")

        async with stage_marker(_LOG, stage="completion", component=_COMPONENT, job_id=job.job_id) as wait_stage:
            text = await self.completion.wait(job)
            wait_stage.add_completion_fields(text_length=len(text))
        self.metrics.observe_latency("stage_latency_seconds", wait_stage.elapsed, stage="completion")

        if self.analyzer is None:
            log_stage_skipped(_LOG, stage="analysis", reason="disabled", job_id=job.job_id)
            return ExtractionResult(extracted_text=text)

        async with stage_marker(_LOG, stage="analysis", component=_COMPONENT, job_id=job.job_id) as analysis_stage:
            analysis = await self.analyzer.analyze(text)
            analysis_stage.add_completion_fields(
                sentiment=analysis.sentiment.label, entity_count=len(analysis.entities)
            )
        self.metrics.observe_latency("stage_latency_seconds", analysis_stage.elapsed, stage="analysis")
        return ExtractionResult(extracted_text=text, analysis=analysis)


def build_pipeline(cfg: AppConfig, *, metrics: MetricsClient | None = None) -> DocumentPipeline:
    """Construct the AWS-backed pipeline described by ``cfg``."""
    metrics = metrics or NullMetrics()
    session = create_session(cfg)
    botocore_config = client_config()
    ocr_client = TextractOCRClient(session.client("textract", config=botocore_config))

    completion: JobCompletionStrategy
    if cfg.notification_mode:
        completion = NotificationCompletion(
            ocr_client=ocr_client,
            listener=SQSCompletionListener(
                session.client("sqs", config=botocore_config),
                queue_url=cfg.notification_queue_url or "",
            ),
            channel=NotificationChannel(
                topic_arn=cfg.sns_topic_arn or "", role_arn=cfg.sns_role_arn or ""
            ),
            timeout_seconds=cfg.poll_timeout_seconds,
            metrics=metrics,
        )
    else:
        completion = CompletionPoller(
            ocr_client=ocr_client,
            initial_delay=cfg.poll_initial_delay_seconds,
            max_delay=cfg.poll_max_delay_seconds,
            max_attempts=cfg.poll_max_attempts,
            timeout_seconds=cfg.poll_timeout_seconds,
            metrics=metrics,
        )

    analyzer: TextAnalyzer | None = None
    if cfg.enable_analysis:
        analyzer = TextAnalyzer(
            nlp_client=ComprehendNLPClient(session.client("comprehend", config=botocore_config)),
            language_code=cfg.language_code,
            max_text_bytes=cfg.max_analysis_bytes,
        )

    return DocumentPipeline(
        uploader=BlobUploader(
            store=S3ObjectStore(session.client("s3", config=botocore_config)),
            bucket=cfg.s3_bucket,
            prefix=cfg.upload_prefix,
        ),
        submitter=JobSubmitter(ocr_client=ocr_client),
        completion=completion,
        analyzer=analyzer,
        metrics=metrics,
    )


__all__ = ["DocumentPipeline", "build_pipeline"]
