from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from ..config import Config
from ..exceptions import ProviderError, ProviderErrorKind
from .base import BaseProvider, ProviderContext, ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)


def _status_error(status: int, body: str, retry_after: Optional[float]) -> ProviderError:
    if status == 429:
        kind = ProviderErrorKind.RATE_LIMIT
    elif status == 408 or status >= 500:
        kind = ProviderErrorKind.UNAVAILABLE
    else:
        kind = ProviderErrorKind.MALFORMED
    return ProviderError(
        kind,
        f"HTTP {status}: {body[:200]}",
        provider="ollama",
        status_code=status,
        retry_after=retry_after if kind is ProviderErrorKind.RATE_LIMIT else None,
    )


class OllamaProvider(BaseProvider):
    """Local backend speaking the Ollama REST API through ``httpx``."""

    name = "ollama"

    def __init__(self, config: Config) -> None:
        super().__init__(config)
        self.endpoint = config.ollama_endpoint

    @property
    def base_url(self) -> str:
        url = self.endpoint.rstrip("/")
        if url.endswith("/api/chat"):
            url = url[: -len("/api/chat")]
        return url.rstrip("/")

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.user},
            ],
            "stream": False,
            "options": {
                "temperature": request.temperature,
                "num_predict": request.max_output_tokens,
            },
        }

    def complete(self, request: ProviderRequest, timeout: float) -> ProviderResponse:
        try:
            response = httpx.post(
                self.endpoint, json=self.build_payload(request), timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise ProviderError(
                ProviderErrorKind.NETWORK, f"request timed out: {e}", provider=self.name
            ) from e
        except httpx.TransportError as e:
            raise ProviderError(
                ProviderErrorKind.NETWORK, f"connection failed: {e}", provider=self.name
            ) from e

        status = int(getattr(response, "status_code", 200))
        if status >= 400:
            retry_after = None
            headers = getattr(response, "headers", None) or {}
            header = headers.get("retry-after")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            raise _status_error(status, response.text, retry_after)

        try:
            data = response.json()
            content = data["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(
                ProviderErrorKind.MALFORMED,
                "response has no message.content",
                provider=self.name,
            ) from e
        return ProviderResponse(
            text=str(content or ""), provider=self.name, model=self.model
        )

    # Model availability -------------------------------------------------

    def _has_model(self, models: list[Any]) -> bool:
        wanted = {self.model}
        if ":" not in self.model:
            wanted.add(f"{self.model}:latest")
        for item in models:
            if not isinstance(item, dict):
                continue
            if item.get("name") in wanted or item.get("model") in wanted:
                return True
        return False

    def list_models(self) -> list[dict[str, Any]]:
        url = f"{self.base_url}/api/tags"
        try:
            response = httpx.get(url, timeout=self.config.timeout_secs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE,
                f"cannot list models at {url}: {e}",
                provider=self.name,
            ) from e
        except ValueError as e:
            raise ProviderError(
                ProviderErrorKind.MALFORMED,
                f"model list at {url} is not JSON",
                provider=self.name,
            ) from e
        models = data.get("models") if isinstance(data, dict) else None
        return models if isinstance(models, list) else []

    def prepare(self, context: ProviderContext) -> None:
        """Pull ``self.model`` once per run when the server does not have it."""
        key = f"{self.name}:{self.base_url}:{self.model}"
        if context.is_ready(key):
            return
        if not self._has_model(self.list_models()):
            self.pull(context)
        context.mark_ready(key)

    def pull(self, context: ProviderContext) -> None:
        url = f"{self.base_url}/api/pull"
        context.progress(f"pulling {self.model} ...")
        timeout = httpx.Timeout(self.config.timeout_secs, read=None)
        try:
            with httpx.stream(
                "POST", url, json={"model": self.model, "stream": True}, timeout=timeout
            ) as response:
                if response.status_code >= 400:
                    response.read()
                    raise ProviderError(
                        ProviderErrorKind.UNAVAILABLE,
                        f"pull of {self.model} failed with HTTP {response.status_code}",
                        provider=self.name,
                        status_code=response.status_code,
                    )
                for line in response.iter_lines():
                    if line.strip():
                        self._report_pull_line(line, context)
        except httpx.HTTPError as e:
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE,
                f"pull of {self.model} failed: {e}",
                provider=self.name,
            ) from e
        logger.debug("pulled model %s from %s", self.model, self.base_url)

    def _report_pull_line(self, line: str, context: ProviderContext) -> None:
        try:
            event = json.loads(line)
        except ValueError:
            context.progress(line.strip())
            return
        if not isinstance(event, dict):
            return
        if event.get("error"):
            raise ProviderError(
                ProviderErrorKind.UNAVAILABLE,
                f"pull of {self.model} failed: {event['error']}",
                provider=self.name,
            )
        status = str(event.get("status", "")).strip()
        total = event.get("total")
        completed = event.get("completed")
        if isinstance(total, int) and total > 0 and isinstance(completed, int):
            status = f"{status} {completed * 100 // total}%"
        if status:
            context.progress(status)
