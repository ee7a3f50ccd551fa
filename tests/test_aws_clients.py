import json

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from docextract.errors import AnalysisError, JobFailedError, JobStartError, OCRQueryError, StorageError
from docextract.models.extraction import JobStatus, NotificationChannel, StorageKey, join_line_text
from docextract.services.aws_clients import (
    ComprehendNLPClient,
    S3ObjectStore,
    SQSCompletionListener,
    TextractOCRClient,
    parse_completion_notice,
)

SOURCE = StorageKey(bucket="intake", key="uploads/abc-doc.pdf")


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} raised"}}, operation)


class _RecordingClient:
    """Minimal boto3-client double: returns queued responses per operation."""

    def __init__(self, **responses):
        self.responses = {name: list(items) for name, items in responses.items()}
        self.calls: list[tuple[str, dict]] = []

    def _respond(self, operation, kwargs):
        self.calls.append((operation, kwargs))
        queue = self.responses.get(operation) or [{}]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def __getattr__(self, operation):
        if operation.startswith("_"):
            raise AttributeError(operation)
        return lambda **kwargs: self._respond(operation, kwargs)


# S3 -------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_s3_put_sends_body_and_content_type():
    client = _RecordingClient()
    await S3ObjectStore(client).put("intake", "uploads/k", b"data", "image/png")
    assert client.calls == [
        ("put_object", {"Bucket": "intake", "Key": "uploads/k", "Body": b"data", "ContentType": "image/png"})
    ]


@pytest.mark.asyncio
async def test_s3_put_error_maps_to_storage_error():
    client = _RecordingClient(put_object=[_client_error("AccessDenied", "PutObject")])
    with pytest.raises(StorageError, match="AccessDenied"):
        await S3ObjectStore(client).put("intake", "uploads/k", b"data")


# Textract -------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_job_points_at_stored_object():
    client = _RecordingClient(start_document_text_detection=[{"JobId": "job-9"}])
    job_id = await TextractOCRClient(client).start_job(SOURCE)
    assert job_id == "job-9"
    _, params = client.calls[0]
    assert params == {"DocumentLocation": {"S3Object": {"Bucket": "intake", "Name": "uploads/abc-doc.pdf"}}}


@pytest.mark.asyncio
async def test_start_job_includes_notification_channel():
    client = _RecordingClient(start_document_text_detection=[{"JobId": "job-9"}])
    channel = NotificationChannel(topic_arn="arn:topic", role_arn="arn:role")
    await TextractOCRClient(client).start_job(SOURCE, channel)
    _, params = client.calls[0]
    assert params["NotificationChannel"] == {"SNSTopicArn": "arn:topic", "RoleArn": "arn:role"}


@pytest.mark.asyncio
async def test_start_job_without_id_returns_none():
    client = _RecordingClient(start_document_text_detection=[{}])
    assert await TextractOCRClient(client).start_job(SOURCE) is None


@pytest.mark.asyncio
async def test_start_job_error_maps_to_job_start_error():
    client = _RecordingClient(
        start_document_text_detection=[_client_error("UnsupportedDocumentException", "StartDocumentTextDetection")]
    )
    with pytest.raises(JobStartError):
        await TextractOCRClient(client).start_job(SOURCE)


@pytest.mark.asyncio
async def test_succeeded_result_is_paged_to_completion():
    client = _RecordingClient(
        get_document_text_detection=[
            {
                "JobStatus": "SUCCEEDED",
                "NextToken": "t1",
                "Blocks": [
                    {"BlockType": "PAGE", "Page": 1},
                    {"BlockType": "LINE", "Text": "Hello", "Page": 1},
                    {"BlockType": "WORD", "Text": "Hello", "Page": 1},
                ],
            },
            {
                "JobStatus": "SUCCEEDED",
                "Blocks": [{"BlockType": "LINE", "Text": "World", "Page": 2}],
            },
        ]
    )
    result = await TextractOCRClient(client, page_size=2).get_job_result("job-9")
    assert result.status is JobStatus.SUCCEEDED
    assert join_line_text(result.blocks) == "Hello World"
    assert [params for _, params in client.calls] == [
        {"JobId": "job-9", "MaxResults": 2},
        {"JobId": "job-9", "MaxResults": 2, "NextToken": "t1"},
    ]


@pytest.mark.asyncio
async def test_running_result_is_not_paged():
    client = _RecordingClient(
        get_document_text_detection=[
            {"JobStatus": "IN_PROGRESS", "NextToken": "t1", "Blocks": [{"BlockType": "LINE", "Text": "Hel"}]}
        ]
    )
    result = await TextractOCRClient(client).get_job_result("job-9")
    assert result.status is JobStatus.RUNNING
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_failed_result_carries_status_message():
    client = _RecordingClient(
        get_document_text_detection=[{"JobStatus": "FAILED", "StatusMessage": "Unsupported format"}]
    )
    result = await TextractOCRClient(client).get_job_result("job-9")
    assert result.status is JobStatus.FAILED
    assert result.status_message == "Unsupported format"


@pytest.mark.asyncio
async def test_transient_query_error_maps_to_ocr_query_error():
    client = _RecordingClient(
        get_document_text_detection=[EndpointConnectionError(endpoint_url="https://textract")]
    )
    with pytest.raises(OCRQueryError):
        await TextractOCRClient(client).get_job_result("job-9")


@pytest.mark.asyncio
async def test_invalid_job_id_is_a_job_failure():
    client = _RecordingClient(
        get_document_text_detection=[_client_error("InvalidJobIdException", "GetDocumentTextDetection")]
    )
    with pytest.raises(JobFailedError):
        await TextractOCRClient(client).get_job_result("job-9")


# Comprehend -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_comprehend_sentiment_and_entities():
    client = _RecordingClient(
        detect_sentiment=[
            {
                "Sentiment": "NEUTRAL",
                "SentimentScore": {"Positive": 0.1, "Negative": 0.02, "Neutral": 0.85, "Mixed": 0.03},
            }
        ],
        detect_entities=[
            {"Entities": [{"Text": "Acme", "Type": "ORGANIZATION", "Score": 0.987654}]}
        ],
    )
    nlp = ComprehendNLPClient(client)
    sentiment = await nlp.detect_sentiment("Acme invoice", "en")
    entities = await nlp.detect_entities("Acme invoice", "en")
    assert sentiment.label == "NEUTRAL"
    assert sentiment.scores["Neutral"] == pytest.approx(0.85)
    assert entities[0].text == "Acme"
    assert entities[0].score == pytest.approx(0.987654)
    assert client.calls[0] == ("detect_sentiment", {"Text": "Acme invoice", "LanguageCode": "en"})


@pytest.mark.asyncio
async def test_comprehend_error_maps_to_analysis_error():
    client = _RecordingClient(detect_sentiment=[_client_error("TextSizeLimitExceededException", "DetectSentiment")])
    with pytest.raises(AnalysisError):
        await ComprehendNLPClient(client).detect_sentiment("x", "en")


# Completion notices ---------------------------------------------------------


def _notice(job_id: str, status: str = "SUCCEEDED", *, enveloped: bool = True) -> str:
    message = json.dumps({"JobId": job_id, "Status": status, "API": "StartDocumentTextDetection"})
    if not enveloped:
        return message
    return json.dumps({"Type": "Notification", "Message": message})


def test_parse_notice_with_sns_envelope():
    notice = parse_completion_notice(_notice("job-1"))
    assert notice.job_id == "job-1"
    assert notice.status is JobStatus.SUCCEEDED


def test_parse_raw_notice():
    notice = parse_completion_notice(_notice("job-2", "FAILED", enveloped=False))
    assert notice.job_id == "job-2"
    assert notice.status is JobStatus.FAILED


@pytest.mark.parametrize("body", [None, "", "not json", "[]", json.dumps({"Status": "SUCCEEDED"})])
def test_unparseable_notices_are_ignored(body):
    assert parse_completion_notice(body) is None


class _FakeClock:
    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


@pytest.mark.asyncio
async def test_listener_returns_matching_status_and_releases_others():
    client = _RecordingClient(
        receive_message=[
            {
                "Messages": [
                    {"ReceiptHandle": "r-other", "Body": _notice("job-other")},
                    {"ReceiptHandle": "r-mine", "Body": _notice("job-1", "FAILED")},
                ]
            }
        ]
    )
    listener = SQSCompletionListener(client, queue_url="https://sqs/queue", clock=_FakeClock(0.1))
    status = await listener.wait_for("job-1", timeout=60)

    assert status is JobStatus.FAILED
    operations = [name for name, _ in client.calls]
    assert operations == ["receive_message", "change_message_visibility", "delete_message"]
    assert client.calls[1][1]["ReceiptHandle"] == "r-other"
    assert client.calls[1][1]["VisibilityTimeout"] == 0
    assert client.calls[2][1]["ReceiptHandle"] == "r-mine"


@pytest.mark.asyncio
async def test_listener_gives_up_at_deadline():
    client = _RecordingClient(receive_message=[{"Messages": []}])
    listener = SQSCompletionListener(client, queue_url="https://sqs/queue", clock=_FakeClock(5.0))
    assert await listener.wait_for("job-1", timeout=12) is None
    assert all(name == "receive_message" for name, _ in client.calls)
    assert all(1 <= params["WaitTimeSeconds"] <= 20 for _, params in client.calls)


@pytest.mark.asyncio
async def test_listener_survives_receive_errors():
    client = _RecordingClient(
        receive_message=[
            _client_error("ServiceUnavailable", "ReceiveMessage"),
            {"Messages": [{"ReceiptHandle": "r1", "Body": _notice("job-1")}]},
        ]
    )
    listener = SQSCompletionListener(
        client, queue_url="https://sqs/queue", error_backoff_seconds=0, clock=_FakeClock(0.1)
    )
    assert await listener.wait_for("job-1", timeout=60) is JobStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_listener_ignores_delete_failure():
    client = _RecordingClient(
        receive_message=[{"Messages": [{"ReceiptHandle": "r1", "Body": _notice("job-1")}]}],
        delete_message=[_client_error("ReceiptHandleIsInvalid", "DeleteMessage")],
    )
    listener = SQSCompletionListener(client, queue_url="https://sqs/queue", clock=_FakeClock(0.1))
    assert await listener.wait_for("job-1", timeout=60) is JobStatus.SUCCEEDED


class _SteppedTime:
    """Clock that only moves when the listener sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _foreign_message(receive_count: int = 1) -> dict:
    return {
        "ReceiptHandle": "r-orphan",
        "Body": _notice("orphan-job"),
        "Attributes": {"ApproximateReceiveCount": str(receive_count)},
    }


@pytest.mark.asyncio
async def test_listener_backs_off_when_only_foreign_notices_arrive():
    client = _RecordingClient(receive_message=[{"Messages": [_foreign_message()]}])
    stepped = _SteppedTime()
    listener = SQSCompletionListener(
        client,
        queue_url="https://sqs/queue",
        idle_backoff_seconds=1.0,
        clock=stepped.clock,
        sleep_fn=stepped.sleep,
    )

    assert await listener.wait_for("job-1", timeout=10) is None

    receives = [params for name, params in client.calls if name == "receive_message"]
    assert len(receives) == 10
    assert receives[0]["AttributeNames"] == ["ApproximateReceiveCount"]
    assert stepped.sleeps == [1.0] * 10


@pytest.mark.asyncio
async def test_listener_deletes_notice_nobody_claims():
    client = _RecordingClient(receive_message=[{"Messages": [_foreign_message(receive_count=10)]}])
    stepped = _SteppedTime()
    listener = SQSCompletionListener(
        client,
        queue_url="https://sqs/queue",
        max_foreign_receives=10,
        clock=stepped.clock,
        sleep_fn=stepped.sleep,
    )

    assert await listener.wait_for("job-1", timeout=1) is None

    operations = [name for name, _ in client.calls]
    assert operations == ["receive_message", "delete_message"]
    assert client.calls[1][1]["ReceiptHandle"] == "r-orphan"
