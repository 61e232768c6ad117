"""Prompt rendering for commit messages and per-file summaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .config import Config

COMMIT_TYPES = (
    "feat",
    "fix",
    "build",
    "chore",
    "ci",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
)
MAX_SUBJECT_LENGTH = 50


@dataclass(frozen=True)
class PromptOptions:
    conventional: bool = True
    one_line: bool = True
    emoji: bool = False
    lang: Optional[str] = None

    @classmethod
    def from_config(cls, config: "Config") -> "PromptOptions":
        return cls(
            conventional=config.conventional,
            one_line=config.one_line,
            emoji=config.emoji,
            lang=config.lang,
        )


def commit_system_prompt(
    options: PromptOptions, corrective: Optional[Sequence[str]] = None
) -> str:
    """System instruction describing the output grammar.

    ``corrective`` lists what was wrong with a previous answer; it is
    appended as an extra instruction for the single regeneration.
    """
    lines = [
        "You are a Git commit message generator.",
        "",
    ]
    if options.conventional:
        lines.extend(
            [
                "TASK: Generate a commit message in Conventional Commits format.",
                "FORMAT: <type>(<scope>): <subject>",
                "<type> MUST be one of: " + ", ".join(COMMIT_TYPES),
                "(<scope>) is optional and should be a short noun.",
            ]
        )
    else:
        lines.append("TASK: Generate a concise commit message.")

    if options.one_line:
        lines.append("OUTPUT: Single line only. No body.")
    else:
        lines.append(
            "OUTPUT: A short subject line, optional blank line, and short body."
        )

    if options.emoji:
        if options.conventional:
            lines.append(
                "Start the subject (right after ': ') with one emoji that fits "
                "the change type."
            )
        else:
            lines.append("Prefix the subject with one emoji that fits the change.")
    else:
        lines.append("Do not use emoji.")

    lines.extend(
        [
            "RULES:",
            "- Subject must be imperative, lowercase, and concise "
            f"(max {MAX_SUBJECT_LENGTH} chars).",
            "- Entire message should be plain text, no markdown.",
            "- Do not wrap in quotes or code fences.",
            "- Respond with only the commit message text.",
        ]
    )
    if options.lang:
        lines.append(f"- Write the subject and body in {options.lang}.")

    if corrective:
        lines.extend(
            [
                "",
                "CORRECTION: your previous answer was rejected because:",
                *[f"- {reason}" for reason in corrective],
                "Answer again and follow the FORMAT exactly.",
            ]
        )
    return "\n".join(lines) + "\n"


def commit_user_prompt(diff: str, options: PromptOptions) -> str:
    if options.lang:
        return f"Generate the commit message in {options.lang}.\n\nDiff:\n{diff}"
    return f"Generate the commit message from this diff:\n\n{diff}"


SUMMARY_SYSTEM_PROMPT = (
    "You are a code reviewer summarizing diffs. "
    "Summarize the changes briefly and factually.\n"
    "RULES:\n"
    "- Use short bullet points.\n"
    "- Mention files and key changes.\n"
    "- No markdown code blocks.\n"
)


def summary_system_prompt() -> str:
    return SUMMARY_SYSTEM_PROMPT


def summary_user_prompt(path: str, diff: str) -> str:
    return f"Summarize changes for {path}:\n\n{diff}"
