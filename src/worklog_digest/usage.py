from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Iterable

from worklog_digest.interfaces import PersistenceGateway
from worklog_digest.models import UsageRecord, UsageStats

logger = logging.getLogger(__name__)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return len(text) // 4


def aggregate_usage(records: Iterable[UsageRecord]) -> UsageStats:
    """Aggregate usage records into request, token, error and latency totals."""
    requests = 0
    tokens = 0
    errors = 0
    total_duration = 0
    for record in records:
        requests += 1
        tokens += record.tokens_used
        total_duration += record.duration_ms
        if record.status == "error":
            errors += 1
    return build_stats(requests, tokens, errors, total_duration / requests if requests else 0.0)


def build_stats(requests: int, tokens: int, errors: int, average_latency: float) -> UsageStats:
    success_rate = (requests - errors) / requests * 100 if requests else 0.0
    return UsageStats(
        requests=requests,
        tokens=tokens,
        errors=errors,
        average_latency=float(average_latency),
        success_rate=success_rate,
    )


class UsageRecorder:
    """Append usage entries without ever failing the caller."""

    def __init__(self, gateway: PersistenceGateway, tz: tzinfo):
        self.gateway = gateway
        self.tz = tz

    def record(self, entry: UsageRecord) -> bool:
        """Persist ``entry``; returns ``False`` when the store rejected it."""
        try:
            self.gateway.record_usage(entry)
        except Exception as exc:
            logger.warning(
                "[usage] failed to record usage author=%s model=%s status=%s: %s",
                entry.author_name,
                entry.model,
                entry.status,
                exc,
            )
            return False
        return True

    def get_today_stats(self) -> UsageStats:
        return self.gateway.get_today_usage_stats(self.tz)
