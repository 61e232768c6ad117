import os
from collections.abc import Generator
from pathlib import Path

import httpx
import pytest

from goodcommit.config import Config
from goodcommit.diff import RawFileDiff
from goodcommit.exceptions import ProviderError, ProviderErrorKind
from goodcommit.providers.base import BaseProvider, ProviderRequest, ProviderResponse


@pytest.fixture(autouse=True)
def isolated_env(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    for name in list(os.environ):
        if name.startswith("GOODCOMMIT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    # Keep persisted configuration of the developer's checkout out of tests
    monkeypatch.chdir(tmp_path)
    yield


# No real HTTP leaves the test process unless a test patches httpx itself.
@pytest.fixture(autouse=True)
def _no_network(monkeypatch):
    def blocked(*args, **kwargs):  # noqa: D401
        raise httpx.ConnectError("network disabled in tests")

    monkeypatch.setattr(httpx, "post", blocked)
    monkeypatch.setattr(httpx, "get", blocked)
    monkeypatch.setattr(httpx, "stream", blocked)


class ScriptedProvider(BaseProvider):
    """Provider double answering from a script of texts or exceptions."""

    name = "scripted"

    def __init__(self, config, script):
        super().__init__(config)
        self.script = list(script)
        self.requests: list[ProviderRequest] = []
        self.timeouts: list[float] = []
        self.prepared = 0

    def prepare(self, context):  # noqa: D401
        self.prepared += 1

    def complete(self, request, timeout):  # noqa: D401
        self.requests.append(request)
        self.timeouts.append(timeout)
        if not self.script:
            raise AssertionError("provider called more often than scripted")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return ProviderResponse(text=item, provider=self.name, model=self.model)


@pytest.fixture
def scripted_provider():
    def factory(*script, config=None):
        return ScriptedProvider(config or Config(), script)

    return factory


@pytest.fixture
def network_error():
    def factory(message="connection reset"):
        return ProviderError(ProviderErrorKind.NETWORK, message, provider="scripted")

    return factory


def make_record(path, added=3, removed=1, status="M"):
    lines = [f"diff --git a/{path} b/{path}", f"--- a/{path}", f"+++ b/{path}"]
    lines.append(f"@@ -1,{removed} +1,{added} @@")
    lines.extend(f"-old line {i} in {path}" for i in range(removed))
    lines.extend(f"+new line {i} in {path}" for i in range(added))
    return RawFileDiff(path=path, status=status, diff="\n".join(lines))


@pytest.fixture
def record_factory():
    return make_record
