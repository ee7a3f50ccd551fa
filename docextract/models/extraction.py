"""Typed records passed between the extraction pipeline stages."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping

LINE_BLOCK = "LINE"


class JobStatus(str, enum.Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING

    @classmethod
    def from_provider(cls, raw: str | None) -> "JobStatus":
        """Collapse the provider's job states onto the three we act on.

        PARTIAL_SUCCESS still carries usable text so it counts as success;
        anything unrecognised keeps the job in the polling loop.
        """
        value = (raw or "").strip().upper()
        if value in {"SUCCEEDED", "PARTIAL_SUCCESS"}:
            return cls.SUCCEEDED
        if value == "FAILED":
            return cls.FAILED
        return cls.RUNNING


@dataclass(slots=True, frozen=True)
class UploadedFile:
    filename: str
    data: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(slots=True, frozen=True)
class StorageKey:
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


@dataclass(slots=True, frozen=True)
class JobHandle:
    job_id: str
    source: StorageKey


@dataclass(slots=True, frozen=True)
class NotificationChannel:
    topic_arn: str
    role_arn: str


@dataclass(slots=True, frozen=True)
class TextBlock:
    block_type: str
    text: str | None = None
    page: int | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "TextBlock":
        return cls(
            block_type=str(payload.get("BlockType") or ""),
            text=payload.get("Text"),
            page=payload.get("Page"),
        )


@dataclass(slots=True, frozen=True)
class JobResult:
    status: JobStatus
    blocks: tuple[TextBlock, ...] = ()
    status_message: str | None = None


def join_line_text(blocks: tuple[TextBlock, ...] | list[TextBlock]) -> str:
    """Concatenate LINE block text in result order, single-space separated."""
    lines = [block.text for block in blocks if block.block_type == LINE_BLOCK and block.text]
    return " ".join(lines).strip()


@dataclass(slots=True, frozen=True)
class Sentiment:
    label: str
    scores: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"sentiment": self.label, "score": dict(self.scores)}


@dataclass(slots=True, frozen=True)
class Entity:
    text: str
    type: str
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "type": self.type, "score": self.score}


@dataclass(slots=True, frozen=True)
class AnalysisResult:
    sentiment: Sentiment
    entities: tuple[Entity, ...] = ()


@dataclass(slots=True, frozen=True)
class ExtractionResult:
    extracted_text: str
    analysis: AnalysisResult | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"extractedText": self.extracted_text}
        if self.analysis is not None:
            payload["sentiment"] = self.analysis.sentiment.to_dict()
            payload["entities"] = [entity.to_dict() for entity in self.analysis.entities]
        return payload


__all__ = [
    "AnalysisResult",
    "Entity",
    "ExtractionResult",
    "JobHandle",
    "JobResult",
    "JobStatus",
    "NotificationChannel",
    "Sentiment",
    "StorageKey",
    "TextBlock",
    "UploadedFile",
    "join_line_text",
    "LINE_BLOCK",
]
