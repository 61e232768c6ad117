"""Response sanitizing and conventional commit validation.

Sanitizing only removes wrapping (whitespace, code fences, quotes, extra lines in
single-line mode); it never rewrites the model's words. Validation checks the
header against ``<type>(<scope>)?: <subject>``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .exceptions import EmptyMessageError, ValidationError
from .prompt import COMMIT_TYPES, MAX_SUBJECT_LENGTH

logger = logging.getLogger(__name__)

_HEADER_RE = re.compile(
    r"^(?P<type>[A-Za-z]+)(?:\((?P<scope>[^()\n]*)\))?: (?P<subject>\S.*)$"
)
_LANG_TAG_RE = re.compile(r"^[\w+#.-]*$")

# Base-form verbs that merely look like past tense / gerunds.
_IMPERATIVE_OK = {
    "embed",
    "exceed",
    "feed",
    "need",
    "proceed",
    "seed",
    "shed",
    "speed",
    "succeed",
    "bring",
    "ping",
    "ring",
    "string",
}
_THIRD_PERSON = {
    "adds",
    "bumps",
    "changes",
    "fixes",
    "implements",
    "improves",
    "introduces",
    "moves",
    "refactors",
    "removes",
    "renames",
    "updates",
}


@dataclass(frozen=True)
class GeneratedMessage:
    """Final pipeline output."""

    text: str
    validated: bool
    regenerated: bool = False
    strategy: Optional[str] = None


@dataclass(frozen=True)
class ConventionalHeader:
    type: str
    scope: Optional[str]
    subject: str


def _strip_fences(text: str) -> str:
    text = text.strip()
    while True:
        if len(text) >= 6 and text.startswith("```") and text.endswith("```"):
            inner = text[3:-3]
            if "\n" in inner:
                first, rest = inner.split("\n", 1)
                if _LANG_TAG_RE.match(first.strip()):
                    inner = rest
            if "```" in inner:
                return text
            text = inner.strip()
        elif _wrapped_in(text, "`") or _wrapped_in(text, '"'):
            text = text[1:-1].strip()
        else:
            return text


def _wrapped_in(text: str, mark: str) -> bool:
    return (
        len(text) >= 2
        and text.startswith(mark)
        and text.endswith(mark)
        and mark not in text[1:-1]
    )


def sanitize_message(raw: str, one_line: bool = False) -> str:
    """Trim, remove wrapping fences or quotes and, in single-line mode, extra lines.

    Idempotent: ``sanitize_message(sanitize_message(x)) == sanitize_message(x)``.
    """
    text = _strip_fences(raw or "")
    if one_line:
        first = next((line for line in text.splitlines() if line.strip()), "")
        text = _strip_fences(first)
    return text


def check_conventional(message: str) -> List[str]:
    """Return the reasons ``message`` breaks the grammar (empty list when valid)."""
    return _parse_header(message)[1]


def _parse_header(message: str) -> Tuple[Optional[re.Match[str]], List[str]]:
    header = message.strip().splitlines()[0].strip() if message.strip() else ""
    if not header:
        return None, ["message is empty"]
    match = _HEADER_RE.match(header)
    if not match:
        return None, [
            f"header {header[:60]!r} does not match '<type>(<scope>): <subject>'"
        ]
    reasons: List[str] = []
    ctype = match.group("type")
    if ctype not in COMMIT_TYPES:
        reasons.append(
            f"type {ctype!r} is not one of: {', '.join(COMMIT_TYPES)}"
        )
    scope = match.group("scope")
    if scope is not None and not scope.strip():
        reasons.append("scope must not be empty when parentheses are used")
    subject = match.group("subject").rstrip()
    if subject != subject.lower():
        reasons.append("subject must be lowercase")
    if len(subject) > MAX_SUBJECT_LENGTH:
        reasons.append(
            f"subject is {len(subject)} characters (max {MAX_SUBJECT_LENGTH})"
        )
    verb = _first_word(subject)
    if verb and not _is_imperative(verb):
        reasons.append(f"subject must be imperative (got {verb!r})")
    return match, reasons


def validate_conventional(message: str) -> ConventionalHeader:
    """Parse the header of ``message`` or raise :class:`ValidationError`."""
    match, reasons = _parse_header(message)
    if match is None or reasons:
        raise ValidationError(
            "Commit message does not follow the conventional format: "
            + "; ".join(reasons),
            reasons,
        )
    return ConventionalHeader(
        type=match.group("type"),
        scope=match.group("scope"),
        subject=match.group("subject").rstrip(),
    )


def _first_word(subject: str) -> str:
    for token in subject.split():
        word = re.sub(r"[^a-z]", "", token.lower())
        if word:
            return word
    return ""


def _is_imperative(word: str) -> bool:
    if word in _IMPERATIVE_OK:
        return True
    if word in _THIRD_PERSON:
        return False
    if len(word) > 4 and word.endswith("ed"):
        return False
    if len(word) > 5 and word.endswith("ing"):
        return False
    return True


def generate_validated(
    generate: Callable[[Optional[Sequence[str]]], str],
    *,
    conventional: bool,
    one_line: bool,
) -> GeneratedMessage:
    """Validate, regenerate once on failure, then accept regardless.

    ``generate(corrective)`` returns raw model text; ``corrective`` is None for
    the first call and the list of validation failures for the retry.

    Raises:
        EmptyMessageError: when the first response is empty after sanitizing.
    """
    first = sanitize_message(generate(None), one_line)
    if not first:
        raise EmptyMessageError("Model returned an empty commit message", stage="sanitize")
    if not conventional:
        return GeneratedMessage(text=first, validated=False)

    reasons = check_conventional(first)
    if not reasons:
        return GeneratedMessage(text=first, validated=True)

    logger.debug("validation failed (%s); regenerating once", "; ".join(reasons))
    second = sanitize_message(generate(reasons), one_line)
    if not second:
        logger.warning("regenerated message was empty; keeping first response")
        return GeneratedMessage(text=first, validated=False, regenerated=True)

    second_reasons = check_conventional(second)
    if not second_reasons:
        return GeneratedMessage(text=second, validated=True, regenerated=True)
    logger.warning(
        "accepting commit message that fails validation: %s",
        "; ".join(second_reasons),
    )
    return GeneratedMessage(text=second, validated=False, regenerated=True)
