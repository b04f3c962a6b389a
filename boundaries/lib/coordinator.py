"""Request coordination: deduplication, debouncing and a TTL result cache.

A RequestCoordinator sits between callers and the spatial backend. For any
cache key there is at most one in-flight backend operation; concurrent
callers for that key share its outcome. Results are cached for ``max_age``
seconds (expiry is evaluated lazily on read) and bursts of calls for the
same debounce key collapse into the last one.

All state is private to one instance. Everything runs on a single event
loop, so no locking is needed.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from boundaries.lib.constants import (
    DEFAULT_CACHE_MAX_AGE,
    DEFAULT_DEBOUNCE_DELAY,
    DEFAULT_KEY_PRECISION,
    DEFAULT_MAX_CACHE_ENTRIES,
    DEFAULT_MAX_PENDING,
)
from boundaries.lib.errors import RequestCancelled, RequestSuperseded
from boundaries.lib.resilience import RetryExecutor

logger = logging.getLogger(__name__)

__all__ = [
    "CacheEntry",
    "CoordinatorStats",
    "DebounceSlot",
    "PendingRequest",
    "RequestCoordinator",
    "generate_cache_key",
]

Operation = Callable[[], Awaitable[Any]]
Clock = Callable[[], float]


def _format_value(value: Any, precision: int) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        number = float(value)
        if math.isnan(number) or math.isinf(number):
            return str(number)
        text = f"{number:.{precision}f}"
        # -0.00001 rounds to "-0.0000"; fold it onto "0.0000"
        if float(text) == 0:
            text = f"{0.0:.{precision}f}"
        return text
    return str(value)


def generate_cache_key(
    prefix: str,
    params: Optional[Mapping[str, Any]] = None,
    precision: int = DEFAULT_KEY_PRECISION,
) -> str:
    """Build a deterministic cache key from a prefix and parameters.

    Numbers are rounded to ``precision`` decimals so floating-point jitter
    from continuous pan gestures maps onto the same key. ``None`` values are
    dropped and the remaining parameters are joined in name order.

    Example:
        >>> generate_cache_key("countries", {"zoom": 5, "north": 10.123456})
        'countries_north:10.1235_zoom:5.0000'
    """
    parts = [
        f"{name}:{_format_value(value, precision)}"
        for name, value in sorted((params or {}).items())
        if value is not None
    ]
    if not parts:
        return prefix
    return f"{prefix}_{'_'.join(parts)}"


@dataclass
class CacheEntry:
    key: str
    data: Any
    timestamp: float

    def is_expired(self, now: float, max_age: float) -> bool:
        return now - self.timestamp >= max_age


@dataclass
class PendingRequest:
    """An in-flight backend operation shared by every caller of ``key``."""

    key: str
    task: "asyncio.Future[Any]"
    started_at: float


@dataclass
class DebounceSlot:
    """A debounced call waiting out its delay window."""

    key: str
    request_key: str
    operation: Operation
    handle: asyncio.TimerHandle
    future: "asyncio.Future[Any]"
    created_at: float


@dataclass
class CoordinatorStats:
    pending: int = 0
    cached: int = 0
    debounced: int = 0
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    superseded: int = 0
    evicted: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pending": self.pending,
            "cached": self.cached,
            "debounced": self.debounced,
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "superseded": self.superseded,
            "evicted": self.evicted,
        }


def _consume_signal(future: "asyncio.Future[Any]") -> None:
    # A superseded call nobody awaits must not log "exception never retrieved"
    if not future.cancelled():
        future.exception()


def _transfer(source: "asyncio.Future[Any]", target: "asyncio.Future[Any]") -> None:
    if target.done():
        if not source.cancelled():
            source.exception()
        return
    if source.cancelled():
        target.cancel()
        return
    exc = source.exception()
    if exc is not None:
        target.set_exception(exc)
    else:
        target.set_result(source.result())


class RequestCoordinator:
    """Deduplicates, debounces, retries and caches backend requests.

    Example:
        coordinator = RequestCoordinator(RetryExecutor())
        key = coordinator.key("countries", {"zoom": 5, **bbox.as_params()})
        features = await coordinator.execute_request(
            key, lambda: backend.get_boundaries_in_bbox(kind, 5, bbox)
        )
    """

    def __init__(
        self,
        executor: Optional[RetryExecutor] = None,
        *,
        max_age: float = DEFAULT_CACHE_MAX_AGE,
        max_pending: int = DEFAULT_MAX_PENDING,
        max_entries: int = DEFAULT_MAX_CACHE_ENTRIES,
        debounce_delay: float = DEFAULT_DEBOUNCE_DELAY,
        key_precision: int = DEFAULT_KEY_PRECISION,
        clock: Optional[Clock] = None,
    ) -> None:
        self.executor = executor or RetryExecutor()
        self.max_age = max_age
        self.max_pending = max(1, max_pending)
        self.max_entries = max(1, max_entries)
        self.debounce_delay = debounce_delay
        self.key_precision = key_precision
        self._clock = clock or time.monotonic

        self._cache: Dict[str, CacheEntry] = {}
        self._pending: Dict[str, PendingRequest] = {}
        self._debounced: Dict[str, DebounceSlot] = {}
        self._stats = CoordinatorStats()

    def key(self, prefix: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return generate_cache_key(prefix, params, self.key_precision)

    # ------------------------------------------------------------------
    # Deduplicated, cached execution
    # ------------------------------------------------------------------

    async def execute_request(
        self,
        key: str,
        operation: Operation,
        *,
        skip_cache: bool = False,
        cache_result: bool = True,
    ) -> Any:
        """Run ``operation`` for ``key`` at most once at a time.

        Args:
            key: Cache/deduplication key
            operation: Zero-argument coroutine function, retried on
                recoverable failures
            skip_cache: Ignore any cached result (an in-flight request for
                the key is still shared)
            cache_result: Store a successful non-None result

        Returns:
            The cached, shared or freshly fetched result
        """
        if not skip_cache:
            entry = self._cache_lookup(key)
            if entry is not None:
                self._stats.hits += 1
                logger.debug("Cache hit for %s", key)
                return entry.data

        pending = self._pending.get(key)
        if pending is not None:
            self._stats.coalesced += 1
            logger.debug("Joining in-flight request for %s", key)
            return await asyncio.shield(pending.task)

        self._stats.misses += 1
        if len(self._pending) >= self.max_pending:
            self._evict_oldest_pending()

        task = asyncio.ensure_future(self._run(key, operation, cache_result))
        self._pending[key] = PendingRequest(key=key, task=task, started_at=self._clock())
        task.add_done_callback(partial(self._settle, key))
        return await asyncio.shield(task)

    async def _run(self, key: str, operation: Operation, cache_result: bool) -> Any:
        result = await self.executor.execute(operation, operation_name=key)
        if cache_result and result is not None:
            self._store(key, result)
        return result

    def _settle(self, key: str, task: "asyncio.Future[Any]") -> None:
        pending = self._pending.get(key)
        if pending is not None and pending.task is task:
            del self._pending[key]
        if not task.cancelled():
            # Marks the exception retrieved when every caller went away
            task.exception()

    def _evict_oldest_pending(self) -> None:
        oldest = next(iter(self._pending))
        del self._pending[oldest]
        self._stats.evicted += 1
        logger.debug("Pending map full (%d); no longer tracking %s", self.max_pending, oldest)

    # ------------------------------------------------------------------
    # Debouncing
    # ------------------------------------------------------------------

    def execute_debounced(
        self,
        key: str,
        operation: Operation,
        delay: Optional[float] = None,
        *,
        request_key: Optional[str] = None,
    ) -> "asyncio.Future[Any]":
        """Schedule ``operation`` after ``delay`` seconds of quiet on ``key``.

        A newer call with the same ``key`` supersedes this one: the returned
        future then fails with RequestSuperseded, which callers should treat
        as non-fatal. When the delay elapses the call runs through
        execute_request under ``request_key`` (default ``key``).

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        delay = self.debounce_delay if delay is None else delay

        existing = self._debounced.pop(key, None)
        if existing is not None:
            existing.handle.cancel()
            if not existing.future.done():
                existing.future.set_exception(RequestSuperseded(key))
            self._stats.superseded += 1
            logger.debug("Debounced call for %s superseded", key)
        elif len(self._debounced) >= self.max_pending:
            self._evict_oldest_debounced()

        future: "asyncio.Future[Any]" = loop.create_future()
        future.add_done_callback(_consume_signal)
        slot = DebounceSlot(
            key=key,
            request_key=request_key or key,
            operation=operation,
            handle=loop.call_later(max(delay, 0.0), partial(self._fire, key)),
            future=future,
            created_at=self._clock(),
        )
        future.add_done_callback(partial(self._abandon_slot, slot))
        self._debounced[key] = slot
        return future

    def _fire(self, key: str) -> None:
        slot = self._debounced.pop(key, None)
        if slot is None or slot.future.done():
            return
        task = asyncio.ensure_future(self.execute_request(slot.request_key, slot.operation))
        task.add_done_callback(partial(_transfer, target=slot.future))

    def _abandon_slot(self, slot: DebounceSlot, future: "asyncio.Future[Any]") -> None:
        # Caller cancelled the future before the timer fired
        if future.cancelled() and self._debounced.get(slot.key) is slot:
            slot.handle.cancel()
            del self._debounced[slot.key]

    def _evict_oldest_debounced(self) -> None:
        oldest = next(iter(self._debounced))
        self._reject_slot(self._debounced.pop(oldest))
        self._stats.evicted += 1
        logger.debug("Debounce map full (%d); cancelled %s", self.max_pending, oldest)

    @staticmethod
    def _reject_slot(slot: DebounceSlot) -> None:
        slot.handle.cancel()
        if not slot.future.done():
            slot.future.set_exception(RequestCancelled(slot.key))

    def cancel_debounced(self, key: str) -> bool:
        """Cancel a waiting debounced call. Returns True if one existed."""
        slot = self._debounced.pop(key, None)
        if slot is None:
            return False
        self._reject_slot(slot)
        return True

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def _cache_lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock(), self.max_age):
            del self._cache[key]
            return None
        return entry

    def _store(self, key: str, data: Any) -> None:
        self._cache.pop(key, None)
        self._cache[key] = CacheEntry(key=key, data=data, timestamp=self._clock())
        if len(self._cache) > self.max_entries:
            self.clear_expired_cache()
            while len(self._cache) > self.max_entries:
                oldest = next(iter(self._cache))
                del self._cache[oldest]
                self._stats.evicted += 1

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def has_cached_result(self, key: str) -> bool:
        return self._cache_lookup(key) is not None

    def get_cached_result(self, key: str) -> Any:
        entry = self._cache_lookup(key)
        return entry.data if entry is not None else None

    def clear_cache(self) -> None:
        self._cache.clear()

    def clear_expired_cache(self) -> int:
        """Drop expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._cache.items() if e.is_expired(now, self.max_age)]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def cancel_all(self) -> None:
        """Reject every waiting debounced call and stop tracking in-flight requests.

        In-flight backend operations are not aborted; they may still
        populate the cache when they finish.
        """
        slots = list(self._debounced.values())
        self._debounced.clear()
        for slot in slots:
            self._reject_slot(slot)
        self._pending.clear()

    def close(self) -> None:
        self.cancel_all()
        self.clear_cache()

    def get_stats(self) -> CoordinatorStats:
        return CoordinatorStats(
            pending=len(self._pending),
            cached=len(self._cache),
            debounced=len(self._debounced),
            hits=self._stats.hits,
            misses=self._stats.misses,
            coalesced=self._stats.coalesced,
            superseded=self._stats.superseded,
            evicted=self._stats.evicted,
        )
