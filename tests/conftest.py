from __future__ import annotations

import pytest

from docextract.config import get_config
from tests.stubs.aws_stub import RecordingSleep

_APP_ENV = {
    "S3_BUCKET": "unit-intake-bucket",
    "AWS_REGION": "us-east-1",
    "AWS_ACCESS_KEY_ID": "testing",
    "AWS_SECRET_ACCESS_KEY": "testing",
    "COMPLETION_MODE": "poll",
    "ENABLE_ANALYSIS": "true",
    "ENABLE_METRICS": "false",
}


@pytest.fixture
def app_env(monkeypatch):
    for key, value in _APP_ENV.items():
        monkeypatch.setenv(key, value)
    for key in ("SNS_TOPIC_ARN", "SNS_ROLE_ARN", "NOTIFICATION_QUEUE_URL", "MAX_UPLOAD_BYTES"):
        monkeypatch.delenv(key, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
