from __future__ import annotations

import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from worklog_digest.enhancer import EnhancementOrchestrator
from worklog_digest.models import Commit, GenerationConfig
from worklog_digest.pipeline import PipelineOrchestrator
from worklog_digest.store import Store
from worklog_digest.usage import UsageRecorder

TODAY = date(2026, 1, 20)
SINCE = date(2026, 1, 13)
REPO = "file:///tmp/demo-repo"


def make_commit(
    hash: str,
    message: str,
    when: datetime,
    author: str = "alice",
) -> Commit:
    return Commit(
        hash=hash,
        author_name=author,
        author_email=f"{author}@example.com",
        timestamp=when,
        message=message,
    )


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, day, hour, minute, tzinfo=timezone.utc)


class FakeSource:
    """Source-control provider that returns a mutable commit list."""

    def __init__(self, commits: list[Commit] | None = None):
        self.commits = list(commits or [])
        self.calls: list[tuple[str, date, str]] = []

    def get_commits(self, author: str, since: date, location: str) -> list[Commit]:
        self.calls.append((author, since, location))
        return list(self.commits)


class FakeProvider:
    """Text-generation provider driven by a script of results.

    Each script item is either a string to return or an exception to raise.
    Once the script runs out, a summary naming the call number is returned.
    """

    def __init__(self, script: list[object] | None = None, events: list[str] | None = None):
        self.script = list(script or [])
        self.calls: list[tuple[tuple[str, ...], str]] = []
        self.events = events

    def generate_summary(self, commits: list[Commit], config: GenerationConfig) -> str:
        self.calls.append((tuple(commit.hash for commit in commits), config.model))
        if self.events is not None:
            self.events.append("generate")
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item  # type: ignore[return-value]
        return f"enhanced summary #{len(self.calls)}"


class RecordingStore(Store):
    """Store that notes cache deletions in a shared event log."""

    def __init__(self, db_path: Path, events: list[str]):
        super().__init__(db_path)
        self.events = events

    def delete_cached_enhancements(self, author: str, since: date, until: date | None = None) -> int:
        self.events.append("delete")
        return super().delete_cached_enhancements(author, since, until=until)


@pytest.fixture
def store(tmp_path) -> Store:
    db = Store(tmp_path / "worklog.db")
    db.init_db()
    return db


@pytest.fixture
def generation_config() -> GenerationConfig:
    return GenerationConfig(model="gemini-test", max_tokens=500, temperature=0.3, timeout_ms=2000)


@pytest.fixture
def sample_commits() -> list[Commit]:
    return [
        make_commit("c3", "docs: update readme", at(15, 9)),
        make_commit("c2", "fix: login bug", at(14, 14)),
        make_commit("c1", "feat: add login", at(14, 10)),
    ]


@pytest.fixture
def build_pipeline(store, generation_config) -> Callable[..., PipelineOrchestrator]:
    """Factory wiring a pipeline around the shared SQLite store."""

    def _build(
        source: FakeSource,
        provider: FakeProvider | None,
        gateway: Store | None = None,
        reuse_stored_summaries: bool = True,
        fallback_config: GenerationConfig | None = None,
    ) -> PipelineOrchestrator:
        backend = gateway or store
        enhancer = None
        if provider is not None:
            enhancer = EnhancementOrchestrator(
                provider=provider,
                gateway=backend,
                usage=UsageRecorder(backend, timezone.utc),
                config=generation_config,
                fallback_config=fallback_config,
            )
        return PipelineOrchestrator(
            source=source,
            gateway=backend,
            enhancer=enhancer,
            location="/tmp/demo-repo",
            repository_id=REPO,
            tz=timezone.utc,
            date_style="iso",
            reuse_stored_summaries=reuse_stored_summaries,
            today=lambda: TODAY,
        )

    return _build
