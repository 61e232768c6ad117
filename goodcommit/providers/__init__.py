"""Backends that turn a rendered prompt into raw model text."""

from __future__ import annotations

from typing import Any, Callable, Optional

from ..config import Config
from ..exceptions import ConfigError
from .base import BaseProvider, ProviderContext, ProviderRequest, ProviderResponse
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "BaseProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "ProviderContext",
    "ProviderRequest",
    "ProviderResponse",
    "build_provider",
]


def build_provider(
    config: Config, *, client_factory: Optional[Callable[..., Any]] = None
) -> BaseProvider:
    """Return the backend named by ``config.provider``."""
    if config.provider == "openai":
        return OpenAIProvider(config, client_factory=client_factory)
    if config.provider == "ollama":
        return OllamaProvider(config)
    raise ConfigError(f"Unsupported provider: {config.provider!r}")
