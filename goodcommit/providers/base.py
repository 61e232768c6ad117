from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import Config


@dataclass(frozen=True)
class ProviderRequest:
    """One rendered prompt pair ready to send."""

    system: str
    user: str
    max_output_tokens: int
    temperature: float = 0.2
    purpose: str = "commit"


@dataclass(frozen=True)
class ProviderResponse:
    text: str
    provider: str
    model: str
    mode: Optional[str] = None


class ProviderContext:
    """Per-run provider state, created by the pipeline before any request.

    Holds the model availability cache (so a model is checked once per run)
    and the progress callback used while a local model is pulled.
    """

    def __init__(self, on_progress: Optional[Callable[[str], None]] = None) -> None:
        self.on_progress = on_progress
        self._ready: set[str] = set()
        self._lock = threading.Lock()

    def progress(self, line: str) -> None:
        if self.on_progress is not None:
            self.on_progress(line)

    def is_ready(self, key: str) -> bool:
        with self._lock:
            return key in self._ready

    def mark_ready(self, key: str) -> None:
        with self._lock:
            self._ready.add(key)


class BaseProvider(ABC):
    """Abstract base for one backend.

    A provider turns a :class:`ProviderRequest` into raw model text. Each
    ``complete`` call is one logical request (a request rebuilt after a
    rejected parameter counts as the same one) and raises
    :class:`~goodcommit.exceptions.ProviderError` with a classified kind on
    failure; retrying is the dispatcher's job, never the provider's.
    """

    name: str = ""

    def __init__(self, config: Config) -> None:
        self.config = config

    @property
    def model(self) -> str:
        return self.config.model

    def prepare(self, context: ProviderContext) -> None:  # noqa: D401
        """Make sure the backend can serve ``self.model`` (default: no-op)."""
        return None

    @abstractmethod
    def complete(self, request: ProviderRequest, timeout: float) -> ProviderResponse:
        """Send ``request`` once, waiting at most ``timeout`` seconds."""
        raise NotImplementedError
