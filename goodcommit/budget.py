"""Token budget estimation and strategy selection.

Token counts are approximated from characters: ``ceil(chars / 4)``. The
heuristic is deterministic, needs no tokenizer download and is monotonic in
the number of characters, so strategy selection is reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .exceptions import ConfigError

if TYPE_CHECKING:
    from .diff import DiffContext

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimated token cost of ``text``."""
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def estimate_prompt(system: str, user: str) -> int:
    """Estimated token cost of a rendered system + user prompt pair."""
    return estimate_tokens(system) + estimate_tokens(user)


def estimate_context(context: "DiffContext") -> int:
    """Estimated token cost of the full diff text of ``context``."""
    return estimate_tokens(context.render())


@dataclass(frozen=True)
class TokenBudget:
    max_input_tokens: int
    max_output_tokens: int

    def __post_init__(self) -> None:
        if int(self.max_input_tokens) <= 0:
            raise ConfigError("max_input_tokens must be a positive integer")
        if int(self.max_output_tokens) <= 0:
            raise ConfigError("max_output_tokens must be a positive integer")

    def fits(self, estimate: int) -> bool:
        return estimate <= self.max_input_tokens


class StrategyKind(str, Enum):
    FULL = "full"
    SUMMARIZED = "summarized"


@dataclass(frozen=True)
class StrategyDecision:
    """Exactly one strategy per run, with the diff content it carries."""

    kind: StrategyKind
    context: "DiffContext"
    estimate: int
    summary_text: Optional[str] = None

    @property
    def diff_text(self) -> str:
        if self.kind is StrategyKind.SUMMARIZED and self.summary_text is not None:
            return self.summary_text
        return self.context.render()


def select_strategy(estimate: int, budget: TokenBudget) -> StrategyKind:
    """Full when the estimate fits the input budget (inclusive), else Summarized."""
    if budget.fits(estimate):
        return StrategyKind.FULL
    return StrategyKind.SUMMARIZED
