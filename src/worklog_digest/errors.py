"""Error kinds raised across the summary pipeline."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    REPOSITORY = "repository"
    PROVIDER = "provider"
    PERSISTENCE = "persistence"


class ProviderFailure(str, Enum):
    UNAVAILABLE = "unavailable"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"


class WorklogError(Exception):
    """Single error type for the pipeline, discriminated by ``kind``.

    ``context`` carries identifying fields (author, day, operation) and never the
    request payload. ``failure`` is only set for ``ErrorKind.PROVIDER``.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        context: dict[str, Any] | None = None,
        failure: ProviderFailure | None = None,
    ):
        self.kind = kind
        self.message = message
        self.context = dict(context or {})
        self.failure = failure
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = " ".join(f"{key}={value}" for key, value in sorted(self.context.items()))
        return f"{self.message} ({details})"

    @property
    def is_fatal(self) -> bool:
        """Provider errors degrade to fallback; every other kind aborts the request."""
        return self.kind is not ErrorKind.PROVIDER


def provider_error(failure: ProviderFailure, message: str, **context: Any) -> WorklogError:
    return WorklogError(ErrorKind.PROVIDER, message, context=context, failure=failure)
