"""Decide whether a cached enhancement still matches a day's commit set."""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Iterable

from worklog_digest.models import CachedEnhancement

logger = logging.getLogger(__name__)


class CacheDecision(str, Enum):
    HIT = "hit"
    MISS = "miss"
    STALE = "stale"


def evaluate(
    author_name: str,
    day: date,
    current_hashes: Iterable[str],
    existing: CachedEnhancement | None,
) -> CacheDecision:
    """Compare the cached commit set with the current one.

    Set equality only; order and duplicates do not matter. An entry whose stored
    hash set could not be decoded is reported as STALE so the caller evicts it.
    The caller owns eviction on STALE.
    """
    if existing is None:
        return CacheDecision.MISS

    if existing.commit_hashes is None:
        logger.warning("[cache] undecodable hash set author=%s day=%s, treating as stale", author_name, day)
        return CacheDecision.STALE

    if existing.commit_hashes == frozenset(current_hashes):
        return CacheDecision.HIT

    logger.info("[cache] commit set changed author=%s day=%s", author_name, day)
    return CacheDecision.STALE
