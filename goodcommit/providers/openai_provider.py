from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import openai
from openai import OpenAI

from ..config import Config
from ..exceptions import ProviderError, ProviderErrorKind, redact
from .base import BaseProvider, ProviderContext, ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)

# Parameter a server may reject -> field to send the value as instead (None: drop).
_PARAM_FALLBACKS: dict[str, Optional[str]] = {
    "temperature": None,
    "max_tokens": "max_completion_tokens",
    "max_output_tokens": "max_completion_tokens",
}


def is_gpt5_model(model: str) -> bool:
    return model.strip().lower().startswith("gpt-5")


def _retry_after(headers: Any) -> Optional[float]:
    if headers is None:
        return None
    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        try:
            return float(raw_ms) / 1000.0
        except (TypeError, ValueError):
            pass
    raw = headers.get("retry-after")
    if raw:
        try:
            return float(raw)
        except (TypeError, ValueError):
            return None
    return None


def classify_openai_error(
    err: Exception, *, provider: str = "openai", secrets: tuple = ()
) -> ProviderError:
    """Map an ``openai`` SDK exception onto a :class:`ProviderError` kind."""
    detail = redact(str(err), secrets)
    if isinstance(err, openai.APITimeoutError):
        return ProviderError(
            ProviderErrorKind.NETWORK, f"request timed out: {detail}", provider=provider
        )
    if isinstance(err, openai.APIConnectionError):
        return ProviderError(
            ProviderErrorKind.NETWORK, f"connection failed: {detail}", provider=provider
        )
    if isinstance(err, openai.APIStatusError):
        status = int(err.status_code)
        if status in (401, 403):
            kind = ProviderErrorKind.AUTH
        elif status == 429:
            kind = ProviderErrorKind.RATE_LIMIT
        elif status == 408 or status >= 500:
            kind = ProviderErrorKind.UNAVAILABLE
        else:
            kind = ProviderErrorKind.MALFORMED
        headers = getattr(getattr(err, "response", None), "headers", None)
        return ProviderError(
            kind,
            f"HTTP {status}: {detail}",
            provider=provider,
            status_code=status,
            retry_after=_retry_after(headers) if kind is ProviderErrorKind.RATE_LIMIT else None,
        )
    return ProviderError(ProviderErrorKind.MALFORMED, detail, provider=provider)


def _rejected_param(err: Exception, kwargs: dict[str, Any]) -> Optional[str]:
    message = str(err).lower()
    if "unsupported_parameter" not in message and "unsupported parameter" not in message:
        return None
    for param in _PARAM_FALLBACKS:
        if param in kwargs and param in message:
            return param
    return None


def _text_of(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, dict):
        value = part.get("text") or part.get("content") or ""
    else:
        value = getattr(part, "text", "") or ""
    return value if isinstance(value, str) else ""


def parse_responses_output(resp: Any) -> str:
    """Extract text from a Responses API result (``output_text`` or blocks)."""
    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text.strip():
        return text
    output = getattr(resp, "output", None)
    if output is None and isinstance(resp, dict):
        output = resp.get("output")
    if not isinstance(output, list):
        raise ProviderError(
            ProviderErrorKind.MALFORMED,
            "responses payload has no output",
            provider="openai",
        )
    fragments: list[str] = []
    for item in output:
        content = item.get("content") if isinstance(item, dict) else getattr(item, "content", None)
        if isinstance(content, list):
            fragments.extend(_text_of(part) for part in content)
        elif isinstance(content, str):
            fragments.append(content)
    return "".join(fragments)


def parse_chat_output(resp: Any) -> str:
    """Extract ``choices[0].message.content`` (string or list of parts)."""
    try:
        message = resp.choices[0].message
    except (AttributeError, IndexError, TypeError):
        raise ProviderError(
            ProviderErrorKind.MALFORMED,
            "chat payload has no choices",
            provider="openai",
        ) from None
    content = getattr(message, "content", None)
    if content is None:
        return ""
    if isinstance(content, list):
        return "".join(_text_of(part) for part in content)
    return str(content)


class OpenAIProvider(BaseProvider):
    """Cloud backend on the official ``openai`` SDK.

    ``gpt-5*`` models always go through the Responses API (minimal reasoning,
    no temperature). Other models follow ``openai_mode``: ``auto`` and
    ``chat`` use Chat Completions, ``responses`` the Responses API. SDK
    retries are disabled; the dispatcher owns retrying.
    """

    name = "openai"

    def __init__(
        self, config: Config, client_factory: Optional[Callable[..., Any]] = None
    ) -> None:
        super().__init__(config)
        self._client_factory = client_factory or OpenAI
        self._client: Any = None
        self._api_key = config.resolve_api_key()

    @property
    def mode(self) -> str:
        if is_gpt5_model(self.model) or self.config.openai_mode == "responses":
            return "responses"
        return "chat"

    def _get_client(self) -> Any:
        if not self._api_key:
            raise ProviderError(
                ProviderErrorKind.AUTH,
                f"missing API key (set {self.config.api_key_env})",
                provider=self.name,
            )
        if self._client is None:
            self._client = self._client_factory(
                api_key=self._api_key,
                base_url=self.config.openai_base_url,
                timeout=self.config.timeout_secs,
                max_retries=0,
            )
        return self._client

    def prepare(self, context: ProviderContext) -> None:
        self._get_client()

    def build_chat_kwargs(self, request: ProviderRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.user},
            ],
            "max_tokens": request.max_output_tokens,
        }
        if not is_gpt5_model(self.model):
            kwargs["temperature"] = request.temperature
        return kwargs

    def build_responses_kwargs(self, request: ProviderRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "input": [
                {
                    "role": "system",
                    "content": [{"type": "input_text", "text": request.system}],
                },
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": request.user}],
                },
            ],
            "max_output_tokens": request.max_output_tokens,
        }
        if is_gpt5_model(self.model):
            kwargs["reasoning"] = {"effort": "minimal"}
            kwargs["text"] = {"format": {"type": "text"}}
        else:
            kwargs["temperature"] = request.temperature
        return kwargs

    def _create(
        self, create: Callable[..., Any], kwargs: dict[str, Any], timeout: float
    ) -> Any:
        """Call ``create``, rebuilding once per parameter the server rejects."""
        while True:
            try:
                return create(timeout=timeout, **kwargs)
            except openai.OpenAIError as err:
                param = _rejected_param(err, kwargs)
                if param is None:
                    raise classify_openai_error(
                        err, provider=self.name, secrets=(self._api_key,)
                    ) from err
                value = kwargs.pop(param)
                replacement = _PARAM_FALLBACKS[param]
                if replacement is not None:
                    kwargs[replacement] = value
                logger.debug(
                    "openai rejected %s; retrying request%s",
                    param,
                    f" with {replacement}" if replacement else " without it",
                )

    def complete(self, request: ProviderRequest, timeout: float) -> ProviderResponse:
        client = self._get_client()
        mode = self.mode
        if mode == "responses":
            resp = self._create(
                client.responses.create, self.build_responses_kwargs(request), timeout
            )
            text = parse_responses_output(resp)
        else:
            resp = self._create(
                client.chat.completions.create, self.build_chat_kwargs(request), timeout
            )
            text = parse_chat_output(resp)
        return ProviderResponse(text=text, provider=self.name, model=self.model, mode=mode)
