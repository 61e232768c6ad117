"""Custom exceptions for goodcommit."""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Optional

_SECRET_RE = re.compile(r"\b(sk-[A-Za-z0-9_\-]{6,}|Bearer\s+[A-Za-z0-9_\-\.]{6,})")


def redact(text: str, secrets: Iterable[Optional[str]] = ()) -> str:
    """Scrub API keys and bearer tokens out of ``text``."""
    out = _SECRET_RE.sub("[redacted]", text)
    for secret in secrets:
        if secret and len(secret) >= 4:
            out = out.replace(secret, "[redacted]")
    return out


class GoodCommitError(Exception):
    """Base exception for goodcommit."""

    def __init__(self, message: str = "", *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class ConfigError(GoodCommitError):
    """Raised when configuration values are invalid."""


class GitError(GoodCommitError):
    """Raised when a git command fails."""


class CollectionError(GoodCommitError):
    """Raised when no diffable content is left for the prompt."""

    def __init__(
        self,
        message: str = "",
        *,
        nothing_staged: bool = False,
        stage: Optional[str] = "collect",
    ) -> None:
        super().__init__(message, stage=stage)
        self.nothing_staged = nothing_staged


class ProviderErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    MALFORMED = "malformed"
    UNAVAILABLE = "unavailable"


_RETRIABLE = {
    ProviderErrorKind.RATE_LIMIT,
    ProviderErrorKind.NETWORK,
    ProviderErrorKind.UNAVAILABLE,
}


class ProviderError(GoodCommitError):
    """A backend call failed.

    ``kind`` decides whether the retry dispatcher tries again; ``retry_after``
    carries a server-provided delay hint (seconds) for rate limits.
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        *,
        provider: str = "",
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        stage: Optional[str] = "generate",
    ) -> None:
        prefix = f"{provider} " if provider else ""
        super().__init__(f"{prefix}{kind.value} error: {message}", stage=stage)
        self.kind = kind
        self.provider = provider
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def retriable(self) -> bool:
        return self.kind in _RETRIABLE


class ValidationError(GoodCommitError):
    """Raised when a message does not follow the commit grammar."""

    def __init__(self, message: str, reasons: Iterable[str] = ()) -> None:
        super().__init__(message, stage="validate")
        self.reasons = list(reasons)


class EmptyMessageError(GoodCommitError):
    """Raised when nothing usable is left after sanitizing a response."""


class PipelineTimeoutError(GoodCommitError, TimeoutError):
    """Raised once the overall wall-clock ceiling is exceeded."""


class GenerationCancelledError(GoodCommitError):
    """Raised when the caller cancels a run."""
