"""Exponential backoff with jitter for fallible operations, built on tenacity."""

from __future__ import annotations

import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from chunkscribe.contracts.errors import is_retryable_error


logger = logging.getLogger(__name__)

T = TypeVar("T")

type RetryHook = Callable[[BaseException, int, float], None]

JITTER_RATIO = 0.1


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: float = 1000
    max_delay_ms: float = 10000
    backoff_multiplier: float = 2.0
    is_retryable: Callable[[BaseException], bool] = is_retryable_error

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("retry delays must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")


STANDARD_RETRY_POLICY = RetryPolicy()
RATE_LIMITED_RETRY_POLICY = RetryPolicy(max_attempts=5, base_delay_ms=2000, max_delay_ms=30000)


def compute_delay_ms(policy: RetryPolicy, attempt: int, rng: Callable[[], float] = random.random) -> float:
    """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
    exponential = policy.base_delay_ms * policy.backoff_multiplier ** (attempt - 1)
    jitter = rng() * JITTER_RATIO * exponential
    return min(exponential + jitter, policy.max_delay_ms)


class _BackoffWithJitter(wait_base):
    def __init__(self, policy: RetryPolicy, rng: Callable[[], float]) -> None:
        self._policy = policy
        self._rng = rng

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_delay_ms(self._policy, retry_state.attempt_number, self._rng) / 1000.0


def execute(
    operation: Callable[[], T],
    policy: RetryPolicy = STANDARD_RETRY_POLICY,
    *,
    on_retry: RetryHook | None = None,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run ``operation`` until it succeeds, fails non-retryably, or attempts run out.

    The last exception is re-raised as-is. ``on_retry(error, attempt, delay_ms)``
    fires before each backoff sleep.
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        if on_retry is None or retry_state.outcome is None or retry_state.next_action is None:
            return
        error = retry_state.outcome.exception()
        delay_ms = retry_state.next_action.sleep * 1000.0
        try:
            on_retry(error, retry_state.attempt_number, delay_ms)
        except Exception:
            logger.exception("on_retry hook raised; continuing with retry")

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=_BackoffWithJitter(policy, rng),
        retry=retry_if_exception(policy.is_retryable),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    return retrying(operation)


def retry_wrapper(policy: RetryPolicy, **defaults) -> Callable[..., T]:
    """Preconfigure ``execute`` with a policy and default keyword arguments."""
    return functools.partial(execute, policy=policy, **defaults)


def logging_retry_hook(label: str, log: logging.Logger = logger) -> RetryHook:
    def _hook(error: BaseException, attempt: int, delay_ms: float) -> None:
        log.warning("%s failed on attempt %d (%s); retrying in %.0f ms", label, attempt, error, delay_ms)

    return _hook


__all__ = [
    "RATE_LIMITED_RETRY_POLICY",
    "STANDARD_RETRY_POLICY",
    "RetryHook",
    "RetryPolicy",
    "compute_delay_ms",
    "execute",
    "logging_retry_hook",
    "retry_wrapper",
]
