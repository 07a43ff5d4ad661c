from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable

from worklog_digest.models import Commit, DayBucket


def day_key(timestamp: datetime, tz: tzinfo) -> date:
    """Return the calendar day of ``timestamp`` in ``tz``.

    Naive timestamps are taken to be UTC.
    """
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(tz).date()


def group_by_day(commits: Iterable[Commit], tz: tzinfo) -> dict[date, DayBucket]:
    """Partition commits into day buckets ordered by ascending day.

    Every input commit lands in exactly one bucket; nothing is deduplicated.
    Within a bucket commits are sorted by timestamp, ties broken by hash so the
    result does not depend on input order. Days without commits get no bucket.
    """
    by_day: dict[date, list[Commit]] = defaultdict(list)
    for commit in commits:
        by_day[day_key(commit.timestamp, tz)].append(commit)

    return {
        day: DayBucket(day=day, commits=sorted(items, key=lambda c: (_utc(c.timestamp), c.hash)))
        for day, items in sorted(by_day.items())
    }


def _utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)
