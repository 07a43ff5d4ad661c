"""Capability contracts for the collaborators the pipeline depends on."""

from __future__ import annotations

from datetime import date, tzinfo
from typing import Protocol

from worklog_digest.models import (
    CachedEnhancement,
    Commit,
    DailySummaryRecord,
    GenerationConfig,
    UsageRecord,
    UsageStats,
)


class SourceControlProvider(Protocol):
    def get_commits(self, author: str, since: date, location: str) -> list[Commit]:
        """Return the author's commits since ``since``.

        An unknown author yields ``[]``; an invalid ``location`` raises a
        ``WorklogError`` of kind ``REPOSITORY``.
        """
        ...


class TextGenerationProvider(Protocol):
    def generate_summary(self, commits: list[Commit], config: GenerationConfig) -> str:
        """Turn a day's commits into prose. May raise or return an empty string."""
        ...


class PersistenceGateway(Protocol):
    def get_daily_summaries(self, author: str, since: date, repository: str) -> list[DailySummaryRecord]: ...

    def save_daily_summary(
        self,
        author: str,
        day: date,
        basic_text: str,
        repository: str,
        enhancement_id: int | None = None,
    ) -> DailySummaryRecord: ...

    def get_cached_enhancement(self, author: str, day: date) -> CachedEnhancement | None: ...

    def save_cached_enhancement(
        self,
        author: str,
        day: date,
        commit_hashes: frozenset[str],
        enhanced_text: str,
        model_identifier: str,
    ) -> CachedEnhancement: ...

    def delete_cached_enhancements(self, author: str, since: date, until: date | None = None) -> int: ...

    def record_usage(self, entry: UsageRecord) -> None: ...

    def get_today_usage_stats(self, tz: tzinfo) -> UsageStats: ...
