from __future__ import annotations

import time
from datetime import date, timezone

from conftest import FakeProvider, at, make_commit

from worklog_digest.enhancer import EnhancementOrchestrator, EnhancementState
from worklog_digest.errors import ErrorKind, ProviderFailure, WorklogError, provider_error
from worklog_digest.models import DayBucket, GenerationConfig, UsageRecord
from worklog_digest.store import Store
from worklog_digest.usage import UsageRecorder

DAY = date(2026, 1, 14)


def _bucket(*hashes: str) -> DayBucket:
    commits = [make_commit(h, f"feat: change {h}", at(14, 9 + index)) for index, h in enumerate(hashes)]
    return DayBucket(day=DAY, commits=commits)


def _orchestrator(provider, store: Store, config: GenerationConfig, fallback: GenerationConfig | None = None):
    return EnhancementOrchestrator(
        provider=provider,
        gateway=store,
        usage=UsageRecorder(store, timezone.utc),
        config=config,
        fallback_config=fallback,
    )


class SlowProvider:
    def __init__(self, delay: float):
        self.delay = delay

    def generate_summary(self, commits, config) -> str:
        time.sleep(self.delay)
        return "too late"


class FailingUsageStore(Store):
    def record_usage(self, entry: UsageRecord) -> None:
        raise WorklogError(ErrorKind.PERSISTENCE, "usage table is locked")


def test_enhance_given_cache_miss_when_provider_succeeds_then_enhancement_and_usage_are_saved(
    store, generation_config
) -> None:
    # Given
    provider = FakeProvider(script=["  Built the login flow.  "])
    orchestrator = _orchestrator(provider, store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1", "c2"))

    # Then
    assert outcome.state is EnhancementState.SUCCEEDED
    assert outcome.enhancement is not None
    assert outcome.enhancement.enhanced_text == "Built the login flow."
    assert outcome.enhancement.commit_hashes == frozenset({"c1", "c2"})
    assert outcome.enhancement.model_identifier == "gemini-test"
    assert outcome.enhancement_id == outcome.enhancement.id
    stats = store.get_today_usage_stats(timezone.utc)
    assert stats.requests == 1
    assert stats.errors == 0
    assert stats.tokens == len("Built the login flow.") // 4


def test_enhance_given_matching_cached_hashes_when_enhanced_then_provider_is_not_called(
    store, generation_config
) -> None:
    # Given
    store.save_cached_enhancement("alice", DAY, frozenset({"c1", "c2"}), "cached text", "gemini-test")
    provider = FakeProvider()
    orchestrator = _orchestrator(provider, store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c2", "c1"))

    # Then
    assert outcome.state is EnhancementState.CACHED_RESULT
    assert outcome.enhancement.enhanced_text == "cached text"
    assert provider.calls == []
    assert store.get_today_usage_stats(timezone.utc).requests == 0


def test_enhance_given_stale_cached_hashes_when_enhanced_then_entry_is_regenerated(store, generation_config) -> None:
    # Given
    original = store.save_cached_enhancement("alice", DAY, frozenset({"c1"}), "old text", "gemini-test")
    provider = FakeProvider(script=["new text"])
    orchestrator = _orchestrator(provider, store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1", "c2"))

    # Then
    assert outcome.state is EnhancementState.SUCCEEDED
    assert provider.calls == [(("c1", "c2"), "gemini-test")]
    cached = store.get_cached_enhancement("alice", DAY)
    assert cached.enhanced_text == "new text"
    assert cached.commit_hashes == frozenset({"c1", "c2"})
    assert cached.id != original.id


def test_enhance_given_force_refresh_when_cache_matches_then_provider_is_still_called(
    store, generation_config
) -> None:
    # Given
    store.save_cached_enhancement("alice", DAY, frozenset({"c1"}), "old text", "gemini-test")
    provider = FakeProvider(script=["fresh text"])
    orchestrator = _orchestrator(provider, store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1"), force_refresh=True)

    # Then
    assert outcome.state is EnhancementState.SUCCEEDED
    assert len(provider.calls) == 1
    assert store.get_cached_enhancement("alice", DAY).enhanced_text == "fresh text"


def test_enhance_given_provider_raises_when_enhanced_then_falls_back_without_raising(
    store, generation_config
) -> None:
    # Given
    provider = FakeProvider(script=[RuntimeError("connection reset")])
    orchestrator = _orchestrator(provider, store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1"))

    # Then
    assert outcome.state is EnhancementState.FAILED_FALLBACK
    assert outcome.enhancement_id is None
    assert outcome.error.kind is ErrorKind.PROVIDER
    assert outcome.error.failure is ProviderFailure.UNAVAILABLE
    assert "connection reset" in str(outcome.error)
    assert store.get_cached_enhancement("alice", DAY) is None
    stats = store.get_today_usage_stats(timezone.utc)
    assert stats.requests == 1
    assert stats.errors == 1
    assert store.get_last_error_today(timezone.utc) is not None


def test_enhance_given_whitespace_only_response_when_enhanced_then_invalid_response_is_reported(
    store, generation_config
) -> None:
    # Given
    provider = FakeProvider(script=["   \n  "])
    orchestrator = _orchestrator(provider, store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1"))

    # Then
    assert outcome.state is EnhancementState.FAILED_FALLBACK
    assert outcome.error.failure is ProviderFailure.INVALID_RESPONSE
    assert store.get_cached_enhancement("alice", DAY) is None
    stats = store.get_today_usage_stats(timezone.utc)
    assert stats.requests == 1
    assert stats.errors == 1
    assert stats.tokens == 0


def test_enhance_given_rate_limited_provider_when_enhanced_then_failure_kind_is_preserved(
    store, generation_config
) -> None:
    # Given
    provider = FakeProvider(script=[provider_error(ProviderFailure.RATE_LIMITED, "quota exceeded")])
    orchestrator = _orchestrator(provider, store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1"))

    # Then
    assert outcome.state is EnhancementState.FAILED_FALLBACK
    assert outcome.error.failure is ProviderFailure.RATE_LIMITED


def test_enhance_given_slow_provider_when_timeout_elapses_then_timeout_failure_is_returned(store) -> None:
    # Given
    config = GenerationConfig(model="gemini-test", timeout_ms=50)
    orchestrator = _orchestrator(SlowProvider(delay=0.5), store, config)

    # When
    started = time.perf_counter()
    outcome = orchestrator.enhance("alice", _bucket("c1"))
    elapsed = time.perf_counter() - started

    # Then
    assert outcome.state is EnhancementState.FAILED_FALLBACK
    assert outcome.error.failure is ProviderFailure.TIMEOUT
    assert elapsed < 0.4
    assert store.get_cached_enhancement("alice", DAY) is None


def test_enhance_given_fallback_model_when_primary_fails_then_fallback_model_is_used(
    store, generation_config
) -> None:
    # Given
    fallback = GenerationConfig(model="gemini-fallback", timeout_ms=2000)
    provider = FakeProvider(script=[RuntimeError("primary down"), "from fallback"])
    orchestrator = _orchestrator(provider, store, generation_config, fallback=fallback)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1"))

    # Then
    assert outcome.state is EnhancementState.SUCCEEDED
    assert outcome.attempts == 2
    assert [model for _, model in provider.calls] == ["gemini-test", "gemini-fallback"]
    assert outcome.enhancement.model_identifier == "gemini-fallback"
    stats = store.get_today_usage_stats(timezone.utc)
    assert stats.requests == 2
    assert stats.errors == 1


def test_enhance_given_fallback_with_same_model_when_primary_fails_then_single_attempt_is_made(
    store, generation_config
) -> None:
    # Given
    provider = FakeProvider(script=[RuntimeError("down")])
    orchestrator = _orchestrator(provider, store, generation_config, fallback=generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1"))

    # Then
    assert outcome.state is EnhancementState.FAILED_FALLBACK
    assert outcome.attempts == 1
    assert len(provider.calls) == 1


def test_enhance_given_usage_store_failure_when_generation_succeeds_then_result_is_still_returned(
    tmp_path, generation_config
) -> None:
    # Given
    store = FailingUsageStore(tmp_path / "worklog.db")
    store.init_db()
    orchestrator = _orchestrator(FakeProvider(script=["summary"]), store, generation_config)

    # When
    outcome = orchestrator.enhance("alice", _bucket("c1"))

    # Then
    assert outcome.state is EnhancementState.SUCCEEDED
    assert store.get_cached_enhancement("alice", DAY).enhanced_text == "summary"
