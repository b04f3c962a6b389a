"""Retry with exponential backoff for backend operations.

Failure classification is owned by the caller: the executor only asks the
``classify`` predicate whether an error is recoverable. Permanent errors and
exhausted budgets propagate unchanged.

Implementation: Uses tenacity's AsyncRetrying with a backoff wait strategy
that recomputes each delay from the original base, so jitter never
compounds across attempts.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import tenacity
from tenacity.wait import wait_base

from boundaries.lib.constants import (
    DEFAULT_BASE_DELAY,
    DEFAULT_JITTER,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
)
from boundaries.lib.errors import Classification, classify_error

logger = logging.getLogger(__name__)

__all__ = ["RetryOptions", "RetryExecutor", "compute_backoff"]

T = TypeVar("T")
Classifier = Callable[[BaseException], Any]
RetryObserver = Callable[[int, float, BaseException], None]

# 2**64 already dwarfs any sane max_delay
_MAX_EXPONENT = 64


def compute_backoff(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = 0.0,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay before retrying after the 0-based ``attempt`` failed.

    ``min(base_delay * 2**attempt, max_delay)`` plus uniform jitter of
    ``±jitter`` times the capped value, never below zero.

    Example:
        >>> compute_backoff(0, 1.0, 30.0)
        1.0
        >>> compute_backoff(10, 1.0, 30.0)
        30.0
    """
    exponent = min(max(attempt, 0), _MAX_EXPONENT)
    capped = min(base_delay * (2**exponent), max_delay)
    if jitter > 0:
        span = capped * jitter
        uniform = rng.uniform if rng is not None else random.uniform
        capped = capped + uniform(-span, span)
    return max(0.0, capped)


def _is_recoverable(result: Any) -> bool:
    if isinstance(result, Classification):
        return result.recoverable
    if isinstance(result, dict):
        return bool(result.get("recoverable", False))
    return bool(getattr(result, "recoverable", result))


@dataclass
class RetryOptions:
    """Configuration for RetryExecutor.

    ``max_retries`` counts retries, not attempts: an operation runs at most
    ``max_retries + 1`` times.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: float = DEFAULT_JITTER  # fraction of the capped delay (0.0-1.0)
    classify: Classifier = classify_error
    on_retry: Optional[RetryObserver] = None

    def compute_delay(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        return compute_backoff(attempt, self.base_delay, self.max_delay, self.jitter, rng)

    def should_retry(self, exc: BaseException) -> bool:
        try:
            return _is_recoverable(self.classify(exc))
        except Exception:
            logger.warning("Error classifier raised for %r; treating as permanent", exc)
            return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging.

        Note: Callables (classify, on_retry) are not serialized.
        """
        return {
            "max_retries": self.max_retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "jitter": self.jitter,
        }

    @classmethod
    def none(cls) -> "RetryOptions":
        """No retry - fail on the first error."""
        return cls(max_retries=0)


class _wait_backoff(wait_base):
    """tenacity wait strategy delegating to RetryOptions.compute_delay."""

    def __init__(self, options: RetryOptions, rng: Optional[random.Random]) -> None:
        self.options = options
        self.rng = rng

    def __call__(self, retry_state: tenacity.RetryCallState) -> float:
        # attempt_number is 1-based; backoff exponents start at 0
        return self.options.compute_delay(retry_state.attempt_number - 1, self.rng)


class RetryExecutor:
    """Runs async operations with exponential backoff and jitter.

    Example:
        executor = RetryExecutor(RetryOptions(max_retries=2))
        countries = await executor.execute(
            lambda: backend.get_boundaries_in_bbox(kind, zoom, bbox),
            operation_name="countries_bbox",
        )
    """

    def __init__(
        self,
        options: Optional[RetryOptions] = None,
        *,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        self.options = options or RetryOptions()
        self._rng = rng
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        options: Optional[RetryOptions] = None,
        *,
        operation_name: Optional[str] = None,
    ) -> T:
        """Run ``operation`` until it succeeds or fails permanently.

        Args:
            operation: Zero-argument callable returning an awaitable
            options: Per-call override of the executor's options
            operation_name: Name for logging

        Returns:
            The operation's result

        Raises:
            The last error raised by the operation, unchanged
        """
        opts = options or self.options
        name = operation_name or getattr(operation, "__name__", "operation")
        max_attempts = max(opts.max_retries, 0) + 1

        def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
            """Log and report the upcoming retry."""
            exception = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.2fs...",
                name,
                retry_state.attempt_number,
                max_attempts,
                exception,
                delay,
            )
            if opts.on_retry is not None and exception is not None:
                try:
                    opts.on_retry(retry_state.attempt_number, delay, exception)
                except Exception:
                    logger.exception("on_retry observer for %s raised", name)

        retrying = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(max_attempts),
            wait=_wait_backoff(opts, self._rng),
            retry=tenacity.retry_if_exception(opts.should_retry),
            before_sleep=before_sleep_handler,
            sleep=self._sleep,
            reraise=True,
        )

        # tenacity only awaits coroutine functions; callers often pass a
        # lambda returning a coroutine
        async def attempt() -> T:
            return await operation()

        try:
            return await retrying(attempt)
        except BaseException as exc:
            attempts = retrying.statistics.get("attempt_number", 1)
            if opts.should_retry(exc):
                logger.error("%s failed after %d attempt(s): %s", name, attempts, exc)
            else:
                logger.debug("%s failed permanently: %s", name, exc)
            raise
