"""Retry policy and the per-request dispatch state machine."""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, TypeVar

from .exceptions import (
    ConfigError,
    GenerationCancelledError,
    PipelineTimeoutError,
    ProviderError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a request is sent and how long to wait in between.

    ``max_attempts`` counts every send, the first one included.
    """

    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 2.0
    multiplier: float = 2.0
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigError("retry max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ConfigError("retry delays must not be negative")
        if self.multiplier < 1:
            raise ConfigError("retry multiplier must be >= 1")

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay after failed attempt ``attempt`` (1-based).

        A server hint wins over the exponential schedule but is still capped
        by ``max_delay``.
        """
        if retry_after is not None and retry_after >= 0:
            return min(self.max_delay, float(retry_after))
        delay = min(self.max_delay, self.base_delay * self.multiplier ** (attempt - 1))
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    def schedule(self) -> List[float]:
        """Delays between consecutive attempts when no hint is given."""
        return [self.delay_for(n) for n in range(1, self.max_attempts)]


class Deadline:
    """Wall-clock ceiling shared by every attempt of a run."""

    def __init__(
        self, seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.seconds = seconds
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


class AttemptState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptEvent:
    """Observable record of one provider attempt."""

    run_id: str
    provider: str
    attempt: int
    state: AttemptState
    latency_ms: float
    delay: float = 0.0
    error_kind: Optional[str] = None
    error: Optional[str] = None
    purpose: str = "commit"


class RetryingDispatcher:
    """Sends one request through ``Idle → Sending → (Succeeded | Retrying | Failed)``.

    Retriable :class:`ProviderError` kinds are retried up to
    ``policy.max_attempts`` sends with the policy's backoff. Everything else
    fails at once. Each attempt produces an :class:`AttemptEvent`.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        provider_name: str,
        run_id: str = "",
        attempt_timeout: float = 20.0,
        deadline: Optional[Deadline] = None,
        cancel_event: Optional[threading.Event] = None,
        on_event: Optional[Callable[[AttemptEvent], None]] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy
        self.provider_name = provider_name
        self.run_id = run_id
        self.attempt_timeout = attempt_timeout
        self.deadline = deadline
        self.cancel_event = cancel_event
        self.on_event = on_event
        self._sleep = sleep
        self._clock = clock
        self.state = AttemptState.IDLE
        self.events: List[AttemptEvent] = []

    def dispatch(self, send: Callable[[float], T], purpose: str = "commit") -> T:
        """Call ``send(timeout)`` until it succeeds or the policy gives up."""
        self.state = AttemptState.IDLE
        attempt = 0
        while True:
            attempt += 1
            self._check_cancelled()
            timeout = self._attempt_timeout()
            self.state = AttemptState.SENDING
            started = self._clock()
            try:
                result = send(timeout)
            except ProviderError as err:
                latency_ms = (self._clock() - started) * 1000.0
                if not err.retriable or attempt >= self.policy.max_attempts:
                    self.state = AttemptState.FAILED
                    self._emit(attempt, latency_ms, purpose, err=err)
                    raise
                delay = self.policy.delay_for(attempt, err.retry_after)
                self.state = AttemptState.RETRYING
                self._emit(attempt, latency_ms, purpose, err=err, delay=delay)
                self._wait(delay, err)
                continue
            self.state = AttemptState.SUCCEEDED
            self._emit(attempt, (self._clock() - started) * 1000.0, purpose)
            return result

    def _attempt_timeout(self) -> float:
        if self.deadline is None:
            return self.attempt_timeout
        remaining = self.deadline.remaining()
        if remaining <= 0:
            self.state = AttemptState.FAILED
            raise PipelineTimeoutError(
                f"{self.provider_name}: no time left after "
                f"{self.deadline.seconds:g}s",
                stage="generate",
            )
        return min(self.attempt_timeout, remaining)

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.state = AttemptState.FAILED
            raise GenerationCancelledError("generation cancelled", stage="generate")

    def _wait(self, delay: float, last_error: ProviderError) -> None:
        if self.deadline is not None and delay >= self.deadline.remaining():
            self.state = AttemptState.FAILED
            raise PipelineTimeoutError(
                f"{self.provider_name}: backoff of {delay:.2f}s would pass the "
                f"{self.deadline.seconds:g}s ceiling",
                stage="generate",
            ) from last_error
        if self._sleep is not None:
            self._sleep(delay)
        elif self.cancel_event is not None:
            if self.cancel_event.wait(delay):
                self._check_cancelled()
        else:
            time.sleep(delay)

    def _emit(
        self,
        attempt: int,
        latency_ms: float,
        purpose: str,
        *,
        err: Optional[ProviderError] = None,
        delay: float = 0.0,
    ) -> None:
        event = AttemptEvent(
            run_id=self.run_id,
            provider=self.provider_name,
            attempt=attempt,
            state=self.state,
            latency_ms=latency_ms,
            delay=delay,
            error_kind=err.kind.value if err is not None else None,
            error=str(err) if err is not None else None,
            purpose=purpose,
        )
        self.events.append(event)
        logger.debug(
            "run=%s provider=%s purpose=%s attempt=%d state=%s latency_ms=%.1f delay=%.2f%s",
            self.run_id,
            self.provider_name,
            purpose,
            attempt,
            self.state.value,
            latency_ms,
            delay,
            f" error={event.error_kind}" if err is not None else "",
        )
        if self.on_event is not None:
            self.on_event(event)
