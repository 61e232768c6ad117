import threading
import time

import pytest

from goodcommit.budget import estimate_tokens
from goodcommit.diff import RawFileDiff, build_diff_context
from goodcommit.exceptions import ConfigError, ProviderError, ProviderErrorKind
from goodcommit.summarize import (
    SUMMARY_FLOOR_TOKENS,
    Summarizer,
    local_summary,
    omission_marker,
    per_file_budget,
    reduce_summaries,
)


def _big_context(record_factory, n_files=50, lines=100):
    return build_diff_context(
        [record_factory(f"src/module_{i:02d}.py", added=lines, removed=lines // 4) for i in range(n_files)],
        max_files=n_files,
    )


def test_per_file_budget_has_a_floor():
    assert per_file_budget(6000, 50) == 120
    assert per_file_budget(1000, 100) == SUMMARY_FLOOR_TOKENS
    # floor never exceeds what is available
    assert per_file_budget(20, 100) == 20
    assert per_file_budget(0, 3) == 0


def test_local_summary_respects_budget(record_factory):
    ctx = build_diff_context([record_factory("a.py", added=40, removed=10)])
    file_diff = ctx.files[0]
    text = local_summary(file_diff, 30)
    assert text.splitlines()[0] == "modified a.py: +40 -10"
    assert estimate_tokens(text) <= 30
    # a header that alone is too long is cut by characters
    assert estimate_tokens(local_summary(file_diff, 2)) <= 2


def test_local_summary_for_binary_and_stub():
    binary = build_diff_context(
        [RawFileDiff(path="img.png", status="A", is_binary=True)]
    ).files[0]
    assert local_summary(binary, 50) == "binary img.png"

    stub = build_diff_context(
        [RawFileDiff(path="dump.sql", diff="+x", additions=5000, deletions=0)]
    ).files[0]
    assert local_summary(stub, 50).endswith("(diff omitted due to size)")


def test_reduce_drops_earliest_and_appends_marker():
    texts = ["a" * 200, "b" * 200, "c" * 200]
    joined, omitted = reduce_summaries(texts, 10_000)
    assert omitted == 0
    assert joined == "\n\n".join(texts)

    joined, omitted = reduce_summaries(texts, 120)
    assert omitted == 1
    assert joined.startswith("b" * 200)
    assert joined.endswith(omission_marker(1))
    assert estimate_tokens(joined) <= 120


def test_reduce_cuts_a_single_oversized_summary():
    text = "\n".join(f"line {i} " + "x" * 30 for i in range(50))
    joined, omitted = reduce_summaries([text], 60)
    assert omitted == 0
    assert estimate_tokens(joined) <= 60
    assert joined.startswith("line 0 ")


def test_summarized_fifty_files_fits_budget(record_factory):
    # Given ~40k tokens of diff across 50 files
    ctx = _big_context(record_factory)
    assert estimate_tokens(ctx.render()) > 30_000

    # When summarized into what a 6000-token prompt leaves for the diff
    result = Summarizer().summarize(ctx, 5800)

    # Then every file got a ~115 token share and the result fits
    assert 100 <= result.per_file_tokens <= 120
    assert result.token_estimate <= 5800
    assert len(result.summaries) == 50


def test_summaries_keep_file_order_under_any_completion_order(record_factory):
    ctx = _big_context(record_factory, n_files=8, lines=5)
    delays = [0.08, 0.0, 0.05, 0.01, 0.07, 0.0, 0.03, 0.02]

    def model_call(system, user):
        path = user.splitlines()[0].removeprefix("Summarize changes for ").rstrip(":")
        index = int(path[-5:-3])
        time.sleep(delays[index])
        return f"- touched {path}"

    result = Summarizer(mode="model", model_call=model_call, concurrency=4).summarize(ctx, 4000)
    paths = [s.path for s in result.summaries]
    assert paths == [f.path for f in ctx.files]
    lines = [ln for ln in result.text.splitlines() if ln.startswith("- touched")]
    assert lines == [f"- touched {f.path}" for f in ctx.files]


def test_map_is_bounded_by_concurrency(record_factory):
    ctx = _big_context(record_factory, n_files=10, lines=3)
    lock = threading.Lock()
    active = {"now": 0, "peak": 0}

    def model_call(system, user):
        with lock:
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
        time.sleep(0.01)
        with lock:
            active["now"] -= 1
        return "- ok"

    Summarizer(mode="model", model_call=model_call, concurrency=2).summarize(ctx, 4000)
    assert active["peak"] <= 2


def test_failed_model_summary_falls_back_to_local(record_factory):
    ctx = _big_context(record_factory, n_files=2, lines=3)

    def model_call(system, user):
        if "module_00" in user:
            raise ProviderError(ProviderErrorKind.UNAVAILABLE, "503", provider="ollama")
        return "   "

    result = Summarizer(mode="model", model_call=model_call).summarize(ctx, 4000)
    assert result.summaries[0].text.startswith("modified src/module_00.py")
    assert "model summary failed for src/module_00.py" in result.summaries[0].warning
    assert "model summary was empty for src/module_01.py" in result.warnings


def test_tiny_budget_is_rejected(record_factory):
    ctx = _big_context(record_factory, n_files=2, lines=3)
    with pytest.raises(ConfigError):
        Summarizer().summarize(ctx, 5)


def test_model_mode_needs_a_call():
    with pytest.raises(ConfigError):
        Summarizer(mode="model")
