"""Compose grouping, caching, enhancement and persistence into one request."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone, tzinfo

from worklog_digest.enhancer import EnhancementOrchestrator, EnhancementState
from worklog_digest.errors import ErrorKind, WorklogError
from worklog_digest.grouping import group_by_day
from worklog_digest.interfaces import PersistenceGateway, SourceControlProvider
from worklog_digest.models import DailySummaryRecord
from worklog_digest.summarizer import DateStyle, format_date, render

logger = logging.getLogger(__name__)

MAX_AUTHOR_LENGTH = 255


def validate_request(author: str | None, since: date | None, today: date, max_lookback_days: int) -> tuple[str, date]:
    """Normalize and check the request inputs.

    Raises:
        WorklogError: ``VALIDATION`` when the author is blank or too long, or when
            ``since`` is missing, in the future, or outside the lookback window.
    """
    name = (author or "").strip()
    if not name:
        raise WorklogError(ErrorKind.VALIDATION, "Author name is required", context={"field": "author"})
    if len(name) > MAX_AUTHOR_LENGTH:
        raise WorklogError(
            ErrorKind.VALIDATION,
            f"Author name must be less than {MAX_AUTHOR_LENGTH} characters",
            context={"field": "author"},
        )
    if since is None:
        raise WorklogError(ErrorKind.VALIDATION, "Since date is required", context={"field": "since"})
    if since > today:
        raise WorklogError(
            ErrorKind.VALIDATION,
            "Date cannot be in the future",
            context={"field": "since", "since": since.isoformat()},
        )
    if since < today - timedelta(days=max_lookback_days):
        raise WorklogError(
            ErrorKind.VALIDATION,
            f"Date must be within last {max_lookback_days} days",
            context={"field": "since", "since": since.isoformat()},
        )
    return name, since


class PipelineOrchestrator:
    """Run generate/refresh requests for one repository.

    Collaborators are passed in explicitly. Buckets are processed one at a time,
    so at most one provider call is in flight per request. Passing
    ``enhancer=None`` disables enhancement entirely.
    """

    def __init__(
        self,
        source: SourceControlProvider,
        gateway: PersistenceGateway,
        enhancer: EnhancementOrchestrator | None,
        location: str,
        repository_id: str | None = None,
        tz: tzinfo = timezone.utc,
        date_style: DateStyle = "thai",
        max_lookback_days: int = 31,
        reuse_stored_summaries: bool = True,
        today: Callable[[], date] | None = None,
    ):
        self.source = source
        self.gateway = gateway
        self.enhancer = enhancer
        self.location = location
        self.repository_id = repository_id or location
        self.tz = tz
        self.date_style = date_style
        self.max_lookback_days = max_lookback_days
        self.reuse_stored_summaries = reuse_stored_summaries
        self._today = today or (lambda: datetime.now(self.tz).date())

    def generate(
        self,
        author: str,
        since: date,
        force_refresh: bool = False,
        use_enhancement: bool = True,
    ) -> list[DailySummaryRecord]:
        author, since = validate_request(author, since, self._today(), self.max_lookback_days)
        enhance = use_enhancement and self.enhancer is not None

        if force_refresh:
            self.gateway.delete_cached_enhancements(author, since)
        elif self.reuse_stored_summaries and enhance:
            stored = self._stored_summaries(author, since)
            if stored:
                return stored

        commits = self.source.get_commits(author, since, self.location)
        buckets = group_by_day(commits, self.tz)
        logger.info(
            "[pipeline] processing author=%s since=%s commits=%d days=%d refresh=%s enhance=%s",
            author,
            since,
            len(commits),
            len(buckets),
            force_refresh,
            enhance,
        )

        records: list[DailySummaryRecord] = []
        failures: list[str] = []
        for day, bucket in buckets.items():
            if day < since:
                logger.debug("[pipeline] skipping day before range author=%s day=%s", author, day)
                continue

            basic_text = render(day, bucket.commits, self.date_style)
            enhancement_id = None
            if enhance:
                outcome = self.enhancer.enhance(author, bucket, force_refresh=force_refresh)
                enhancement_id = outcome.enhancement_id
                if outcome.state is EnhancementState.FAILED_FALLBACK:
                    failures.append(f"{format_date(day, self.date_style)}: {outcome.error}")

            records.append(
                self.gateway.save_daily_summary(author, day, basic_text, self.repository_id, enhancement_id)
            )

        if failures:
            logger.warning(
                "[pipeline] %d day(s) fell back to basic summaries author=%s: %s",
                len(failures),
                author,
                failures[:3],
            )

        records.sort(key=lambda record: record.day)
        logger.info(
            "[pipeline] completed author=%s days=%d enhanced=%d",
            author,
            len(records),
            sum(1 for record in records if record.has_enhancement),
        )
        return records

    def refresh(self, author: str, since: date, use_enhancement: bool = True) -> list[DailySummaryRecord]:
        """Drop cached enhancements from ``since`` on and regenerate every day."""
        return self.generate(author, since, force_refresh=True, use_enhancement=use_enhancement)

    def _stored_summaries(self, author: str, since: date) -> list[DailySummaryRecord]:
        """Every stored day in range, or ``[]`` when none of them carries an enhancement."""
        stored = self.gateway.get_daily_summaries(author, since, self.repository_id)
        if not any(record.has_enhancement for record in stored):
            return []
        logger.info("[pipeline] returning %d stored summaries author=%s since=%s", len(stored), author, since)
        return sorted(stored, key=lambda record: record.day)
