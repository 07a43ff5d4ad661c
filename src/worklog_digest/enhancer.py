"""Per-day enhancement: cache check, one bounded provider call, graceful fallback.

Each bucket moves through a small state machine::

    PENDING -> CACHED_RESULT                    (cache hit, no provider call)
    PENDING -> GENERATING -> SUCCEEDED          (non-empty text within timeout)
    PENDING -> GENERATING -> FAILED_FALLBACK    (exception, timeout, empty text)

Provider failures never escape ``enhance``; persistence failures do.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from worklog_digest.cache_gate import CacheDecision, evaluate
from worklog_digest.errors import ErrorKind, ProviderFailure, WorklogError, provider_error
from worklog_digest.interfaces import PersistenceGateway, TextGenerationProvider
from worklog_digest.models import CachedEnhancement, Commit, DayBucket, GenerationConfig, UsageRecord
from worklog_digest.usage import UsageRecorder, estimate_tokens

logger = logging.getLogger(__name__)


class EnhancementState(str, Enum):
    PENDING = "pending"
    CACHED_RESULT = "cached_result"
    GENERATING = "generating"
    SUCCEEDED = "succeeded"
    FAILED_FALLBACK = "failed_fallback"


@dataclass
class EnhancementOutcome:
    state: EnhancementState
    enhancement: CachedEnhancement | None = None
    error: WorklogError | None = None
    attempts: int = 0

    @property
    def enhancement_id(self) -> int | None:
        if self.state in (EnhancementState.CACHED_RESULT, EnhancementState.SUCCEEDED) and self.enhancement:
            return self.enhancement.id
        return None


class EnhancementOrchestrator:
    """Produce or reuse the cached enhancement for one day bucket.

    ``fallback_config`` enables a single extra attempt against another model
    after the primary attempt fails. Without it there is exactly one attempt.
    """

    def __init__(
        self,
        provider: TextGenerationProvider,
        gateway: PersistenceGateway,
        usage: UsageRecorder,
        config: GenerationConfig,
        fallback_config: GenerationConfig | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.provider = provider
        self.gateway = gateway
        self.usage = usage
        self.config = config
        self.fallback_config = fallback_config
        self._now = now or (lambda: datetime.now(timezone.utc))

    def enhance(self, author_name: str, bucket: DayBucket, force_refresh: bool = False) -> EnhancementOutcome:
        day = bucket.day
        if force_refresh:
            self.gateway.delete_cached_enhancements(author_name, day, until=day)
        else:
            existing = self.gateway.get_cached_enhancement(author_name, day)
            decision = evaluate(author_name, day, bucket.hashes, existing)
            if decision is CacheDecision.HIT:
                logger.debug("[enhance] cache hit author=%s day=%s", author_name, day)
                return EnhancementOutcome(state=EnhancementState.CACHED_RESULT, enhancement=existing)
            if decision is CacheDecision.STALE:
                self.gateway.delete_cached_enhancements(author_name, day, until=day)

        return self._generate(author_name, bucket)

    def _generate(self, author_name: str, bucket: DayBucket) -> EnhancementOutcome:
        configs = [self.config]
        if self.fallback_config is not None and self.fallback_config.model != self.config.model:
            configs.append(self.fallback_config)

        last_error: WorklogError | None = None
        for attempt, config in enumerate(configs, start=1):
            logger.info(
                "[enhance] generating author=%s day=%s commits=%d model=%s attempt=%d",
                author_name,
                bucket.day,
                len(bucket.commits),
                config.model,
                attempt,
            )
            started = time.perf_counter()
            try:
                text = self._call_provider(bucket.commits, config)
            except WorklogError as exc:
                duration_ms = _elapsed_ms(started)
                last_error = exc
                logger.warning(
                    "[enhance] generation failed author=%s day=%s model=%s: %s",
                    author_name,
                    bucket.day,
                    config.model,
                    exc,
                )
                self.usage.record(
                    UsageRecord(
                        timestamp=self._now(),
                        model=config.model,
                        tokens_used=0,
                        duration_ms=duration_ms,
                        status="error",
                        error_message=str(exc),
                        author_name=author_name,
                    )
                )
                continue

            duration_ms = _elapsed_ms(started)
            saved = self.gateway.save_cached_enhancement(
                author_name,
                bucket.day,
                bucket.hashes,
                text,
                config.model,
            )
            self.usage.record(
                UsageRecord(
                    timestamp=self._now(),
                    model=config.model,
                    tokens_used=estimate_tokens(text),
                    duration_ms=duration_ms,
                    status="success",
                    author_name=author_name,
                )
            )
            logger.info(
                "[enhance] generated author=%s day=%s model=%s duration_ms=%d length=%d",
                author_name,
                bucket.day,
                config.model,
                duration_ms,
                len(text),
            )
            return EnhancementOutcome(state=EnhancementState.SUCCEEDED, enhancement=saved, attempts=attempt)

        return EnhancementOutcome(state=EnhancementState.FAILED_FALLBACK, error=last_error, attempts=len(configs))

    def _call_provider(self, commits: list[Commit], config: GenerationConfig) -> str:
        """Run the provider under ``config.timeout_ms`` and validate its text.

        Every failure is normalized to a provider ``WorklogError``.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="worklog-enhance")
        future = executor.submit(self.provider.generate_summary, list(commits), config)
        try:
            text = future.result(timeout=config.timeout_ms / 1000)
        except FutureTimeoutError as exc:
            future.cancel()
            raise provider_error(
                ProviderFailure.TIMEOUT,
                f"generation exceeded {config.timeout_ms} ms",
                model=config.model,
            ) from exc
        except WorklogError as exc:
            if exc.kind is ErrorKind.PROVIDER:
                raise
            raise provider_error(ProviderFailure.UNAVAILABLE, exc.message, model=config.model) from exc
        except Exception as exc:
            raise provider_error(
                ProviderFailure.UNAVAILABLE,
                f"{type(exc).__name__}: {exc}",
                model=config.model,
            ) from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if not isinstance(text, str) or not text.strip():
            raise provider_error(ProviderFailure.INVALID_RESPONSE, "empty response from provider", model=config.model)
        return text.strip()


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
