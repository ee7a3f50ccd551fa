"""Service configuration.

Environment variables (env names in parentheses):
 - AWS credentials (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_SESSION_TOKEN);
   when unset boto3 falls back to its default credential chain
 - AWS_REGION (alias AWS_DEFAULT_REGION)
 - S3_BUCKET, UPLOAD_PREFIX
 - COMPLETION_MODE ("poll" or "notification")
 - SNS_TOPIC_ARN, SNS_ROLE_ARN, NOTIFICATION_QUEUE_URL (notification mode only)
 - ENABLE_ANALYSIS, LANGUAGE_CODE, MAX_ANALYSIS_BYTES
 - POLL_* backoff and ceiling settings
 - PORT (default 3000)
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

COMPLETION_MODES = ("poll", "notification")


def parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


class AppConfig(BaseSettings):
    aws_access_key_id: str | None = Field(None, validation_alias='AWS_ACCESS_KEY_ID')
    aws_secret_access_key: str | None = Field(None, validation_alias='AWS_SECRET_ACCESS_KEY')
    aws_session_token: str | None = Field(None, validation_alias='AWS_SESSION_TOKEN')
    aws_region: str = Field('us-east-1', validation_alias=AliasChoices('AWS_REGION', 'AWS_DEFAULT_REGION'))
    s3_bucket: str = Field('', validation_alias='S3_BUCKET')
    upload_prefix: str = Field('uploads', validation_alias='UPLOAD_PREFIX')

    completion_mode: str = Field('poll', validation_alias='COMPLETION_MODE')
    # Push-notification variant: Textract publishes completion to the SNS topic,
    # which fans out to the SQS queue we read from.
    sns_topic_arn: str | None = Field(None, validation_alias='SNS_TOPIC_ARN')
    sns_role_arn: str | None = Field(None, validation_alias='SNS_ROLE_ARN')
    notification_queue_url: str | None = Field(None, validation_alias='NOTIFICATION_QUEUE_URL')

    enable_analysis_raw: str | bool | None = Field(True, validation_alias='ENABLE_ANALYSIS')
    language_code: str = Field('en', validation_alias='LANGUAGE_CODE')
    max_analysis_bytes: int = Field(5000, validation_alias='MAX_ANALYSIS_BYTES')

    poll_initial_delay_seconds: float = Field(1.0, validation_alias='POLL_INITIAL_DELAY_SECONDS')
    poll_max_delay_seconds: float = Field(10.0, validation_alias='POLL_MAX_DELAY_SECONDS')
    poll_max_attempts: int = Field(60, validation_alias='POLL_MAX_ATTEMPTS')
    poll_timeout_seconds: float = Field(300.0, validation_alias='POLL_TIMEOUT_SECONDS')
    disconnect_check_interval_seconds: float = Field(
        0.5, validation_alias='DISCONNECT_CHECK_INTERVAL_SECONDS'
    )

    enable_metrics_raw: str | bool | None = Field(True, validation_alias='ENABLE_METRICS')
    port: int = Field(3000, validation_alias='PORT')

    # Hard (safe) defaults
    max_upload_bytes: int = Field(10 * 1024 * 1024, validation_alias='MAX_UPLOAD_BYTES')
    model_config = SettingsConfigDict(env_file='.env', extra='ignore', case_sensitive=False)

    @property
    def enable_analysis(self) -> bool:
        raw = self.enable_analysis_raw
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw))

    @property
    def enable_metrics(self) -> bool:
        raw = self.enable_metrics_raw
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw))

    @property
    def notification_mode(self) -> bool:
        return self.completion_mode.strip().lower() == "notification"

    def validate_required(self) -> None:
        mode = self.completion_mode.strip().lower()
        if mode not in COMPLETION_MODES:
            raise RuntimeError(
                f"COMPLETION_MODE must be one of {', '.join(COMPLETION_MODES)}; got {self.completion_mode!r}"
            )
        required_pairs = [("s3_bucket", self.s3_bucket, "S3_BUCKET")]
        if mode == "notification":
            required_pairs.extend(
                [
                    ("sns_topic_arn", self.sns_topic_arn, "SNS_TOPIC_ARN"),
                    ("sns_role_arn", self.sns_role_arn, "SNS_ROLE_ARN"),
                    ("notification_queue_url", self.notification_queue_url, "NOTIFICATION_QUEUE_URL"),
                ]
            )
        missing = [env_name for _name, value, env_name in required_pairs if not (value or "").strip()]
        if missing:
            raise RuntimeError("Missing required configuration values: " + ", ".join(sorted(missing)))

        if self.poll_max_attempts < 1:
            raise RuntimeError("POLL_MAX_ATTEMPTS must be at least 1")
        if self.poll_timeout_seconds <= 0:
            raise RuntimeError("POLL_TIMEOUT_SECONDS must be positive")
        if self.poll_initial_delay_seconds < 0 or self.poll_max_delay_seconds < self.poll_initial_delay_seconds:
            raise RuntimeError(
                "POLL_INITIAL_DELAY_SECONDS must be >= 0 and not exceed POLL_MAX_DELAY_SECONDS"
            )


@lru_cache
def get_config() -> AppConfig:
    return AppConfig()  # type: ignore[call-arg]


__all__ = ["AppConfig", "get_config", "parse_bool", "COMPLETION_MODES"]
