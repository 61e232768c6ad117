"""Map-reduce summarization of a DiffContext that is too large for one prompt.

Map: every file gets its own bounded summary, produced on a small thread pool.
Reduce: summaries are joined in the original file order; when they still do
not fit, whole summaries are dropped from the front and an omission marker is
appended.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .budget import CHARS_PER_TOKEN, estimate_tokens
from .diff import ChangeKind, DiffContext, FileDiff, truncate_to_tokens
from .exceptions import ConfigError, ProviderError
from .prompt import summary_system_prompt, summary_user_prompt

logger = logging.getLogger(__name__)

SUMMARY_FLOOR_TOKENS = 48
MODEL_SUMMARY_INPUT_CAP = 2000
CHANGED_LINES_PER_HUNK = 6
SUMMARY_SEPARATOR = "\n\n"

# (system, user) -> raw model text
ModelCall = Callable[[str, str], str]


def omission_marker(count: int) -> str:
    return f"[... {count} file summaries omitted to fit the token budget]"


@dataclass(frozen=True)
class FileSummary:
    index: int
    path: str
    text: str
    warning: Optional[str] = None


@dataclass(frozen=True)
class SummaryResult:
    text: str
    summaries: Tuple[FileSummary, ...]
    omitted: int
    per_file_tokens: int
    warnings: Tuple[str, ...] = ()

    @property
    def token_estimate(self) -> int:
        return estimate_tokens(self.text)


def per_file_budget(available: int, n_files: int) -> int:
    """Even share of ``available`` per file, never below the floor.

    The floor itself never exceeds ``available``.
    """
    if available <= 0:
        return 0
    if n_files <= 0:
        return available
    floor = min(SUMMARY_FLOOR_TOKENS, available)
    return max(floor, available // n_files)


def _header(file_diff: FileDiff) -> str:
    if file_diff.kind is ChangeKind.RENAMED and file_diff.old_path:
        target = f"{file_diff.old_path} -> {file_diff.path}"
    else:
        target = file_diff.path
    if file_diff.kind is ChangeKind.BINARY:
        return f"binary {target}"
    return f"{file_diff.kind.value} {target}: +{file_diff.additions} -{file_diff.deletions}"


def _fit(text: str, max_tokens: int) -> str:
    """Cut by whole lines; a first line that alone is too long is cut by chars."""
    if estimate_tokens(text) <= max_tokens:
        return text
    cut = truncate_to_tokens(text, max_tokens)
    if cut:
        return cut
    return text.splitlines()[0][: max_tokens * CHARS_PER_TOKEN].rstrip()


def local_summary(file_diff: FileDiff, max_tokens: int) -> str:
    """Deterministic condensed description of one file diff."""
    lines = [_header(file_diff)]
    for hunk in file_diff.hunks:
        if file_diff.kind is ChangeKind.BINARY:
            break
        lines.append(hunk.header)
        changed = [ln for ln in hunk.lines if ln.startswith(("+", "-"))]
        lines.extend(changed[:CHANGED_LINES_PER_HUNK])
    if not file_diff.hunks and file_diff.truncated:
        lines.append("(diff omitted due to size)")
    return _fit("\n".join(lines), max_tokens)


def reduce_summaries(texts: Sequence[str], available: int) -> Tuple[str, int]:
    """Join ``texts`` in order and shrink the result to ``available`` tokens.

    Returns the joined text and how many summaries were dropped.
    """
    kept = list(texts)
    omitted = 0

    def render() -> str:
        parts = list(kept)
        if omitted:
            parts.append(omission_marker(omitted))
        return SUMMARY_SEPARATOR.join(parts)

    while len(kept) > 1 and estimate_tokens(render()) > available:
        kept.pop(0)
        omitted += 1

    if kept and estimate_tokens(render()) > available:
        room = available
        if omitted:
            room -= estimate_tokens(SUMMARY_SEPARATOR + omission_marker(omitted))
        kept[0] = _fit(kept[0], max(0, room))
        if not kept[0]:
            kept.pop(0)
            omitted += 1
    return render(), omitted


class Summarizer:
    """Summarize every file of a context, then reduce to a token budget.

    ``mode`` is ``"local"`` (deterministic, no network) or ``"model"`` (one
    provider call per file through ``model_call``). A model failure for one
    file falls back to its local summary.
    """

    def __init__(
        self,
        *,
        mode: str = "local",
        model_call: Optional[ModelCall] = None,
        concurrency: int = 4,
        model_input_cap: int = MODEL_SUMMARY_INPUT_CAP,
    ) -> None:
        if mode not in ("local", "model"):
            raise ConfigError(f"Unknown summary mode: {mode!r}")
        if mode == "model" and model_call is None:
            raise ConfigError("summary mode 'model' needs a model_call")
        self.mode = mode
        self.model_call = model_call
        self.concurrency = max(1, concurrency)
        self.model_input_cap = model_input_cap

    def summarize(self, context: DiffContext, available: int) -> SummaryResult:
        reserve = estimate_tokens(
            SUMMARY_SEPARATOR + omission_marker(max(1, len(context.files)))
        )
        if available <= reserve:
            raise ConfigError(
                f"token budget leaves {available} tokens for the diff summary; "
                f"at least {reserve + 1} are needed",
                stage="summarize",
            )
        n_files = len(context.files)
        per_file = per_file_budget(available - reserve, n_files)
        logger.debug(
            "summarizing %d files mode=%s available=%d per_file=%d",
            n_files,
            self.mode,
            available,
            per_file,
        )

        summaries = self._map(context.files, per_file)
        text, omitted = reduce_summaries([s.text for s in summaries], available)
        warnings = [s.warning for s in summaries if s.warning]
        if omitted:
            warnings.append(
                f"{omitted} file summaries omitted to fit the token budget"
            )
        return SummaryResult(
            text=text,
            summaries=tuple(summaries),
            omitted=omitted,
            per_file_tokens=per_file,
            warnings=tuple(warnings),
        )

    def _map(self, files: Sequence[FileDiff], per_file: int) -> List[FileSummary]:
        results: Dict[int, FileSummary] = {}
        workers = min(self.concurrency, max(1, len(files)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._summarize_one, idx, file_diff, per_file): idx
                for idx, file_diff in enumerate(files)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        # Completion order is arbitrary; the reduce step needs discovery order.
        return [results[idx] for idx in sorted(results)]

    def _summarize_one(
        self, index: int, file_diff: FileDiff, max_tokens: int
    ) -> FileSummary:
        local = self.mode == "local" or file_diff.kind is ChangeKind.BINARY
        if local or self.model_call is None:
            return FileSummary(index, file_diff.path, local_summary(file_diff, max_tokens))

        excerpt = truncate_to_tokens(file_diff.text, self.model_input_cap)
        try:
            raw = self.model_call(
                summary_system_prompt(), summary_user_prompt(file_diff.path, excerpt)
            )
        except ProviderError as err:
            warning = f"model summary failed for {file_diff.path}: {err}"
            logger.warning("%s", warning)
            return FileSummary(
                index, file_diff.path, local_summary(file_diff, max_tokens), warning
            )

        body = (raw or "").strip()
        if not body:
            warning = f"model summary was empty for {file_diff.path}"
            logger.warning("%s", warning)
            return FileSummary(
                index, file_diff.path, local_summary(file_diff, max_tokens), warning
            )
        text = _fit(f"{_header(file_diff)}\n{body}", max_tokens)
        return FileSummary(index, file_diff.path, text)
