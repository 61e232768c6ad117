"""Pipeline orchestration: staged records in, one commit message (or one error) out."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from .budget import (
    StrategyDecision,
    StrategyKind,
    estimate_prompt,
    estimate_tokens,
    select_strategy,
)
from .config import Config, load_config
from .diff import DiffContext, RawFileDiff, build_diff_context, truncate_to_tokens
from .exceptions import ConfigError, GoodCommitError, ProviderError, redact
from .ignore import IgnoreMatcher, build_ignore_matcher
from .prompt import PromptOptions, commit_system_prompt, commit_user_prompt
from .providers import BaseProvider, ProviderContext, ProviderRequest, build_provider
from .retry import AttemptEvent, Deadline, RetryingDispatcher
from .sanitize import GeneratedMessage, generate_validated
from .summarize import MODEL_SUMMARY_INPUT_CAP, Summarizer

logger = logging.getLogger(__name__)

SUMMARY_MAX_OUTPUT_TOKENS = 256


@dataclass
class PipelineResult:
    """Outcome of one run: a message or a typed error, never both."""

    run_id: str
    message: Optional[GeneratedMessage] = None
    error: Optional[GoodCommitError] = None
    error_message: Optional[str] = None
    provider: Optional[str] = None
    strategy: Optional[StrategyKind] = None
    estimate: Optional[int] = None
    events: List[AttemptEvent] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.message is not None and self.error is None

    @property
    def stage(self) -> Optional[str]:
        return self.error.stage if self.error is not None else None


class _Run:
    """State of one pipeline invocation."""

    def __init__(
        self,
        config: Config,
        provider: BaseProvider,
        result: PipelineResult,
        *,
        on_event: Optional[Callable[[AttemptEvent], None]],
        cancel_event: Optional[threading.Event],
        sleep: Optional[Callable[[float], None]],
        clock: Callable[[], float],
    ) -> None:
        self.config = config
        self.provider = provider
        self.result = result
        self.options = PromptOptions.from_config(config)
        self.budget = config.token_budget()
        self.policy = config.retry_policy()
        self.deadline = Deadline(config.overall_timeout_secs, clock)
        self._on_event = on_event
        self._cancel_event = cancel_event
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()

    def _record(self, event: AttemptEvent) -> None:
        with self._lock:
            self.result.events.append(event)
        if self._on_event is not None:
            self._on_event(event)

    def send(self, system: str, user: str, *, purpose: str, max_output_tokens: int) -> str:
        # One dispatcher per request: dispatcher state is not shared across threads.
        dispatcher = RetryingDispatcher(
            self.policy,
            provider_name=self.provider.name,
            run_id=self.result.run_id,
            attempt_timeout=self.config.timeout_secs,
            deadline=self.deadline,
            cancel_event=self._cancel_event,
            on_event=self._record,
            sleep=self._sleep,
            clock=self._clock,
        )
        request = ProviderRequest(
            system=system,
            user=user,
            max_output_tokens=max_output_tokens,
            temperature=self.config.temperature,
            purpose=purpose,
        )
        response = dispatcher.dispatch(
            lambda timeout: self.provider.complete(request, timeout), purpose
        )
        return response.text

    def summarize_with_model(self, system: str, user: str) -> str:
        return self.send(
            system,
            user,
            purpose="summary",
            max_output_tokens=min(SUMMARY_MAX_OUTPUT_TOKENS, self.budget.max_output_tokens),
        )

    def room_for_diff(self, system: str) -> int:
        """Tokens left for diff text once ``system`` and the user frame are counted."""
        return self.budget.max_input_tokens - estimate_prompt(
            system, commit_user_prompt("", self.options)
        )

    def decide(self, context: DiffContext) -> StrategyDecision:
        system = commit_system_prompt(self.options)
        estimate = estimate_prompt(
            system, commit_user_prompt(context.render(), self.options)
        )
        kind = select_strategy(estimate, self.budget)
        logger.debug(
            "run=%s strategy=%s estimate=%d budget=%d files=%d",
            self.result.run_id,
            kind.value,
            estimate,
            self.budget.max_input_tokens,
            len(context),
        )
        if kind is StrategyKind.FULL:
            return StrategyDecision(kind=kind, context=context, estimate=estimate)

        available = self.room_for_diff(system)
        if available <= 0:
            raise ConfigError(
                f"max_input_tokens={self.budget.max_input_tokens} cannot hold the "
                "commit instructions",
                stage="budget",
            )
        summarizer = Summarizer(
            mode=self.config.summary_mode,
            model_call=self.summarize_with_model,
            concurrency=self.config.summary_concurrency,
            model_input_cap=min(self.budget.max_input_tokens, MODEL_SUMMARY_INPUT_CAP),
        )
        summary = summarizer.summarize(context, available)
        self.result.warnings.extend(summary.warnings)
        return StrategyDecision(
            kind=kind, context=context, estimate=estimate, summary_text=summary.text
        )

    def generate(self, diff_text: str, corrective: Optional[Sequence[str]]) -> str:
        system = commit_system_prompt(self.options, corrective)
        room = self.room_for_diff(system)
        if estimate_tokens(diff_text) > room:
            # Only the corrective instruction can push a fitting prompt over.
            diff_text = truncate_to_tokens(diff_text, max(0, room))
        return self.send(
            system,
            commit_user_prompt(diff_text, self.options),
            purpose="commit" if corrective is None else "regenerate",
            max_output_tokens=self.budget.max_output_tokens,
        )


def generate_commit_message(
    records: Sequence[RawFileDiff],
    config: Optional[Config] = None,
    *,
    ignore: Optional[IgnoreMatcher] = None,
    provider: Optional[BaseProvider] = None,
    client_factory: Optional[Callable[..., Any]] = None,
    on_event: Optional[Callable[[AttemptEvent], None]] = None,
    on_progress: Optional[Callable[[str], None]] = None,
    run_id: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
    repo_root: Optional[Path] = None,
) -> PipelineResult:
    """Run the whole pipeline for ``records``.

    Every :class:`GoodCommitError` raised along the way is captured in
    ``PipelineResult.error``; the result then carries no message.
    ``KeyboardInterrupt`` is not captured.
    """
    config = config or Config()
    result = PipelineResult(run_id=run_id or uuid.uuid4().hex)
    stage = "collect"
    try:
        matcher = (
            ignore if ignore is not None else build_ignore_matcher(config.ignore, repo_root)
        )
        context = build_diff_context(
            records,
            matcher,
            max_files=config.max_files,
            max_file_lines=config.max_file_lines,
        )
        result.warnings.extend(context.warnings)

        stage = "prepare"
        backend = provider or build_provider(config, client_factory=client_factory)
        result.provider = backend.name
        backend.prepare(ProviderContext(on_progress))

        # The overall ceiling covers generation only; a model pull is not counted.
        run = _Run(
            config,
            backend,
            result,
            on_event=on_event,
            cancel_event=cancel_event,
            sleep=sleep,
            clock=clock,
        )

        stage = "summarize"
        decision = run.decide(context)
        result.strategy = decision.kind
        result.estimate = decision.estimate

        stage = "generate"
        diff_text = decision.diff_text
        message = generate_validated(
            lambda corrective: run.generate(diff_text, corrective),
            conventional=config.conventional,
            one_line=config.one_line,
        )
        result.message = replace(message, strategy=decision.kind.value)
    except GoodCommitError as err:
        if err.stage is None or (stage == "prepare" and isinstance(err, ProviderError)):
            err.stage = stage
        result.error = err
        result.error_message = redact(str(err), (config.resolve_api_key(),))
        logger.debug(
            "run=%s failed stage=%s provider=%s: %s",
            result.run_id,
            err.stage,
            result.provider,
            result.error_message,
        )
    return result


def generate_from_repo(
    repo_path: Optional[str] = None,
    config: Optional[Config] = None,
    **kwargs: Any,
) -> PipelineResult:
    """Collect staged changes with :class:`~goodcommit.git.GitRepo` and run the pipeline."""
    from .git import GitRepo

    try:
        repo = GitRepo(repo_path)
        root = repo.root
        config = config or load_config(repo_root=root)
        records = repo.staged_records()
    except GoodCommitError as err:
        result = PipelineResult(run_id=kwargs.get("run_id") or uuid.uuid4().hex)
        if err.stage is None:
            err.stage = "collect"
        result.error = err
        result.error_message = str(err)
        return result
    kwargs.setdefault("repo_root", root)
    return generate_commit_message(records, config, **kwargs)
