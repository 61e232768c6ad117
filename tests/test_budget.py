import pytest

from goodcommit.budget import (
    StrategyDecision,
    StrategyKind,
    TokenBudget,
    estimate_context,
    estimate_prompt,
    estimate_tokens,
    select_strategy,
)
from goodcommit.diff import build_diff_context
from goodcommit.exceptions import ConfigError


@pytest.mark.parametrize(
    "text, expected",
    [("", 0), ("a", 1), ("abcd", 1), ("abcde", 2), ("é" * 8, 2)],
)
def test_estimate_tokens_is_ceil_chars_over_four(text, expected):
    assert estimate_tokens(text) == expected


def test_estimate_is_monotonic_in_length():
    previous = 0
    for n in range(0, 200, 7):
        current = estimate_tokens("x" * n)
        assert current >= previous
        previous = current


def test_estimate_prompt_sums_parts():
    assert estimate_prompt("abcd", "abcde") == 3


def test_select_strategy_boundary_is_inclusive():
    budget = TokenBudget(max_input_tokens=6000, max_output_tokens=2048)
    assert select_strategy(6000, budget) is StrategyKind.FULL
    assert select_strategy(6001, budget) is StrategyKind.SUMMARIZED
    assert select_strategy(0, budget) is StrategyKind.FULL


def test_token_budget_rejects_non_positive():
    with pytest.raises(ConfigError):
        TokenBudget(max_input_tokens=0, max_output_tokens=10)
    with pytest.raises(ConfigError):
        TokenBudget(max_input_tokens=10, max_output_tokens=-1)


def test_decision_diff_text_follows_strategy(record_factory):
    ctx = build_diff_context([record_factory("a.py")])
    assert estimate_context(ctx) == estimate_tokens(ctx.render())

    full = StrategyDecision(StrategyKind.FULL, ctx, estimate_context(ctx))
    assert full.diff_text == ctx.render()

    summarized = StrategyDecision(StrategyKind.SUMMARIZED, ctx, 99999, summary_text="s")
    assert summarized.diff_text == "s"
