"""Text-generation providers: Gemini over the network and a local offline writer."""

from __future__ import annotations

import os
import re
from datetime import timezone, tzinfo
from pathlib import Path

from worklog_digest.errors import ProviderFailure, provider_error
from worklog_digest.grouping import day_key
from worklog_digest.models import Commit, GenerationConfig
from worklog_digest.prompting import build_system_prompt, build_user_prompt
from worklog_digest.summarizer import DateStyle, format_date

DEFAULT_GEMINI_KEY_FILE = Path(".api_keys/Gemini.md")

CONVENTIONAL_RE = re.compile(r"^(?P<type>[a-zA-Z]+)(?:\([^)]*\))?!?:\s*(?P<subject>.+)$")

TYPE_LABELS = {
    "feat": "Features",
    "fix": "Fixes",
    "perf": "Performance",
    "refactor": "Refactoring",
    "docs": "Documentation",
    "test": "Tests",
    "build": "Build",
    "ci": "CI",
    "style": "Style",
    "chore": "Maintenance",
}


def resolve_gemini_api_key(key_file: Path = DEFAULT_GEMINI_KEY_FILE) -> str | None:
    """Resolve the Gemini API key from environment or fallback file.

    Resolution order:
    1. ``GEMINI_API_KEY`` environment variable.
    2. ``key_file`` plaintext contents.

    Returns:
        The non-empty API key when found, otherwise ``None``.
    """
    api_key = (os.getenv("GEMINI_API_KEY") or "").strip()
    if api_key:
        return api_key

    if key_file.exists():
        fallback_key = key_file.read_text(encoding="utf-8").strip()
        if fallback_key:
            return fallback_key

    return None


def _date_label(commits: list[Commit], tz: tzinfo, style: DateStyle) -> str:
    if not commits:
        return ""
    return format_date(day_key(commits[0].timestamp, tz), style)


def _failure_for_status(code: int | None) -> ProviderFailure:
    if code == 429:
        return ProviderFailure.RATE_LIMITED
    if code in (408, 504):
        return ProviderFailure.TIMEOUT
    return ProviderFailure.UNAVAILABLE


class GeminiSummaryProvider:
    """Thin adapter around Google GenAI content generation."""

    def __init__(self, tz: tzinfo = timezone.utc, date_style: DateStyle = "thai"):
        self.tz = tz
        self.date_style = date_style

    def generate_summary(self, commits: list[Commit], config: GenerationConfig) -> str:
        """Generate a prose work summary for one day's commits.

        Args:
            commits: The day's commits in ascending timestamp order.
            config: Model, token budget, temperature and timeout for the call.

        Returns:
            Stripped response text, possibly empty.

        Raises:
            WorklogError: Provider error when credentials are missing or the
                API call fails.
        """
        api_key = resolve_gemini_api_key()
        if not api_key:
            raise provider_error(
                ProviderFailure.UNAVAILABLE,
                "Missing GEMINI_API_KEY (set env var or .api_keys/Gemini.md)",
                model=config.model,
            )

        from google import genai
        from google.genai import errors, types

        user_prompt = build_user_prompt(commits, _date_label(commits, self.tz, self.date_style))

        client = genai.Client(api_key=api_key, http_options=types.HttpOptions(timeout=config.timeout_ms))
        try:
            response = client.models.generate_content(
                model=config.model,
                contents=user_prompt,
                config=types.GenerateContentConfig(
                    system_instruction=build_system_prompt(),
                    temperature=config.temperature,
                    max_output_tokens=config.max_tokens,
                ),
            )
        except errors.APIError as exc:
            raise provider_error(
                _failure_for_status(exc.code),
                f"Gemini API error {exc.code}: {exc.message}",
                model=config.model,
            ) from exc

        return (response.text or "").strip()


class LocalSummaryProvider:
    """Deterministic summary writer that never leaves the process.

    Groups conventional-commit subjects (``feat: ...``) by type in order of
    first appearance; anything else lands under "Other".
    """

    def __init__(self, tz: tzinfo = timezone.utc, date_style: DateStyle = "thai"):
        self.tz = tz
        self.date_style = date_style

    def generate_summary(self, commits: list[Commit], config: GenerationConfig) -> str:
        groups: dict[str, list[str]] = {}
        for commit in commits:
            label, subject = _classify(commit.message)
            groups.setdefault(label, []).append(subject)

        lines = [_date_label(commits, self.tz, self.date_style)]
        for label, subjects in groups.items():
            lines.append(f"- {label}: {'; '.join(subjects)}")
        return "\n".join(lines)


def _classify(message: str) -> tuple[str, str]:
    match = CONVENTIONAL_RE.match(message.strip())
    if match:
        label = TYPE_LABELS.get(match.group("type").lower())
        if label:
            return label, match.group("subject").strip()
    return "Other", message.strip()
