"""Sentiment and entity analysis over extracted text."""

from __future__ import annotations

import asyncio
import logging

from ..errors import AnalysisError
from ..models.extraction import AnalysisResult, Entity
from .interfaces import NLPClient

_LOG = logging.getLogger("docextract.analyzer")

DEFAULT_LANGUAGE_CODE = "en"
# Comprehend's synchronous DetectSentiment limit (UTF-8 bytes).
MAX_TEXT_BYTES = 5000


class TextAnalyzer:
    def __init__(
        self,
        *,
        nlp_client: NLPClient,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        max_text_bytes: int = MAX_TEXT_BYTES,
    ) -> None:
        self.nlp_client = nlp_client
        self.language_code = language_code
        self.max_text_bytes = max_text_bytes

    async def analyze(self, text: str) -> AnalysisResult:
        """Return one sentiment label plus entities scored to two decimals.

        Raises AnalysisError for blank or oversized input, or when the NLP
        service rejects the request.
        """
        payload = (text or "").strip()
        if not payload:
            raise AnalysisError("Cannot analyze empty text")
        size = len(payload.encode("utf-8"))
        if size > self.max_text_bytes:
            raise AnalysisError(
                f"Text is {size} bytes; analysis accepts at most {self.max_text_bytes}"
            )
        sentiment, raw_entities = await asyncio.gather(
            self.nlp_client.detect_sentiment(payload, self.language_code),
            self.nlp_client.detect_entities(payload, self.language_code),
        )
        if not sentiment.label:
            raise AnalysisError("Sentiment detection returned no label")
        entities = tuple(
            Entity(text=item.text, type=item.type, score=round(item.score, 2))
            for item in raw_entities
        )
        if not entities:
            _LOG.warning("no_entities_detected", extra={"text_length": len(payload)})
        return AnalysisResult(sentiment=sentiment, entities=entities)


__all__ = ["TextAnalyzer"]
