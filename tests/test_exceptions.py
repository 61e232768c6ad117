import pytest

from goodcommit.exceptions import (
    CollectionError,
    GoodCommitError,
    PipelineTimeoutError,
    ProviderError,
    ProviderErrorKind,
    ValidationError,
    redact,
)


def test_exception_hierarchy():
    assert issubclass(CollectionError, GoodCommitError)
    assert issubclass(ProviderError, GoodCommitError)
    assert issubclass(PipelineTimeoutError, TimeoutError)


@pytest.mark.parametrize(
    "kind, retriable",
    [
        (ProviderErrorKind.AUTH, False),
        (ProviderErrorKind.MALFORMED, False),
        (ProviderErrorKind.RATE_LIMIT, True),
        (ProviderErrorKind.NETWORK, True),
        (ProviderErrorKind.UNAVAILABLE, True),
    ],
)
def test_provider_error_retriable_kinds(kind, retriable):
    err = ProviderError(kind, "boom", provider="openai")
    assert err.retriable is retriable
    assert str(err) == f"openai {kind.value} error: boom"
    assert err.stage == "generate"


def test_validation_error_keeps_reasons():
    err = ValidationError("bad", ["subject must be lowercase"])
    assert err.reasons == ["subject must be lowercase"]
    assert err.stage == "validate"


def test_collection_error_flags_nothing_staged():
    assert CollectionError("x", nothing_staged=True).nothing_staged
    assert CollectionError("x").stage == "collect"


def test_redact_scrubs_keys_and_bearer_tokens():
    text = "auth failed for sk-abcdef123456 with Bearer tok_987654321"
    out = redact(text)
    assert "sk-abcdef123456" not in out
    assert "tok_987654321" not in out
    assert out.count("[redacted]") == 2


def test_redact_scrubs_configured_secret():
    assert redact("key=hunter2-secret", ["hunter2-secret"]) == "key=[redacted]"
    # short or empty secrets are ignored
    assert redact("abc", ["", None, "ab"]) == "abc"
