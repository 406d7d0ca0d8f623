"""
Pydantic models shared across the analysis core and the web layer.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

#: Default and maximum page size for searches.
DEFAULT_SEARCH_LIMIT = 50
MAX_SEARCH_LIMIT = 100


class Sentiment(str, Enum):
    """Overall tone of an analysed text."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class AnalysisResult(BaseModel):
    """Raw output of an analysis provider, before or after normalisation."""

    summary: str = ""
    title: str = ""
    topics: list[str] = Field(default_factory=list)
    sentiment: str = ""

    @field_validator("summary", "title", "sentiment", mode="before")
    @classmethod
    def null_to_empty_string(cls, v: Optional[str]) -> str:
        return "" if v is None else v

    @field_validator("topics", mode="before")
    @classmethod
    def null_to_empty_list(cls, v: Optional[list[str]]) -> list[str]:
        return [] if v is None else v


class AnalysisMetadata(BaseModel):
    """Structured metadata stored alongside each record as a JSON blob."""

    title: str = ""
    topics: list[str] = Field(default_factory=list, max_length=3)
    sentiment: Sentiment = Sentiment.NEUTRAL
    keywords: list[str] = Field(default_factory=list)


class AnalysisRecord(BaseModel):
    """One persisted outcome of the analysis pipeline."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str = Field(min_length=1)
    summary: str
    metadata: AnalysisMetadata
    confidence: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processing_ms: int = Field(default=0, ge=0)

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return max(0.0, min(1.0, v))


class SearchQuery(BaseModel):
    """Filters and pagination for a record search.

    ``limit`` and ``offset`` are resolved on construction: a non-positive limit
    becomes the default, anything above the cap is clamped, and a negative
    offset becomes zero.
    """

    topic: str = ""
    keyword: str = ""
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0

    @field_validator("topic", "keyword", mode="before")
    @classmethod
    def strip_filter(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @field_validator("limit")
    @classmethod
    def resolve_limit(cls, v: int) -> int:
        if v <= 0:
            return DEFAULT_SEARCH_LIMIT
        return min(v, MAX_SEARCH_LIMIT)

    @field_validator("offset")
    @classmethod
    def resolve_offset(cls, v: int) -> int:
        return max(v, 0)


class AnalysisStats(BaseModel):
    """Aggregate view over all stored records."""

    total_analyses: int = 0
    average_confidence: float = 0.0
    average_processing_ms: float = 0.0
    last_analysis: Optional[datetime] = None


# ── Boundary shapes ────────────────────────────────────────────────────────


class AnalyzeRequest(BaseModel):
    text: Optional[str] = None


class BatchAnalyzeRequest(BaseModel):
    texts: list[str] = Field(default_factory=list)


class AnalyzeResponse(BaseModel):
    id: str
    summary: str
    metadata: AnalysisMetadata
    confidence: float

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> AnalyzeResponse:
        return cls(
            id=record.id,
            summary=record.summary,
            metadata=record.metadata,
            confidence=record.confidence,
        )


class BatchError(BaseModel):
    """A single failed item of a batch, identified by its submission index."""

    index: int
    error: str


class BatchAnalyzeResponse(BaseModel):
    results: list[AnalyzeResponse] = Field(default_factory=list)
    failed: list[BatchError] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: str = ""
