"""Pydantic models shared across grouping, enhancement, and persistence layers."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class Commit(BaseModel):
    """A single commit as reported by the source-control provider."""

    model_config = ConfigDict(frozen=True)

    hash: str
    author_name: str
    author_email: str = ""
    timestamp: datetime
    message: str


class DayBucket(BaseModel):
    """Commits attributed to one calendar day, sorted by timestamp."""

    day: date
    commits: list[Commit]

    @property
    def hashes(self) -> frozenset[str]:
        return frozenset(commit.hash for commit in self.commits)


class GenerationConfig(BaseModel):
    """Settings forwarded to a text-generation provider for one call."""

    model: str
    max_tokens: int = Field(default=1000, gt=0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    timeout_ms: int = Field(default=30000, gt=0)


class CachedEnhancement(BaseModel):
    """Provider-generated prose cached per (author, day).

    ``commit_hashes`` is ``None`` when the stored hash set could not be decoded.
    """

    id: int | None = None
    author_name: str
    day: date
    commit_hashes: frozenset[str] | None
    enhanced_text: str
    model_identifier: str
    created_at: datetime
    updated_at: datetime


class DailySummaryRecord(BaseModel):
    """Persisted daily summary, optionally linked to a cached enhancement."""

    id: str
    author_name: str
    day: date
    basic_text: str
    repository: str
    has_enhancement: bool = False
    enhancement_id: int | None = None
    enhanced_text: str | None = None
    model_identifier: str | None = None
    created_at: datetime
    updated_at: datetime


class UsageRecord(BaseModel):
    """Append-only log entry for one enhancement attempt."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    model: str
    tokens_used: int = Field(ge=0)
    duration_ms: int = Field(ge=0)
    status: Literal["success", "error"]
    error_message: str | None = None
    author_name: str


class UsageStats(BaseModel):
    """Aggregate of usage records over a time window."""

    requests: int = 0
    tokens: int = 0
    errors: int = 0
    average_latency: float = 0.0
    success_rate: float = 0.0
