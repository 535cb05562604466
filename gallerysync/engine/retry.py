"""
gallerysync.engine.retry — Retry policy & bounded batch runner
===============================================================

``RetryPolicy`` wraps a coroutine function with exponential backoff plus
jitter.
``BatchRunner`` processes items in fixed-size batches with a pause
between batches so a full sync never bursts the Discord rate limits;
every item's outcome is isolated from the others.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 5.0
    jitter: float = 0.5

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        backoff = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return backoff + random.uniform(0, backoff * self.jitter)

    async def run(
        self,
        func: Callable[..., Awaitable[R]],
        *args: Any,
        retry_if: Callable[[BaseException], bool] = lambda exc: True,
        sleep: Sleep = asyncio.sleep,
        **kwargs: Any,
    ) -> R:
        """Await ``func(*args, **kwargs)``, retrying failures *retry_if* accepts.

        The last exception propagates once attempts are exhausted or when
        *retry_if* rejects it.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                if attempt >= self.max_attempts or not retry_if(exc):
                    raise
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s — retrying in %.2fs",
                    getattr(func, "__name__", "call"), attempt, self.max_attempts, exc, wait,
                )
                await sleep(wait)


@dataclass(frozen=True, slots=True)
class Settled(Generic[T, R]):
    """Outcome of one item: either ``value`` or ``error`` is set."""

    item: T
    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchRunner:
    def __init__(self, batch_size: int = 5, pause: float = 0.5, sleep: Sleep = asyncio.sleep) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.pause = pause
        self._sleep = sleep

    async def run(
        self,
        items: Iterable[T],
        func: Callable[[T], Awaitable[R]],
    ) -> list[Settled[T, R]]:
        """Apply *func* to every item; results come back in input order."""
        pending: Sequence[T] = list(items)
        results: list[Settled[T, R]] = []

        for start in range(0, len(pending), self.batch_size):
            if start and self.pause > 0:
                await self._sleep(self.pause)
            batch = pending[start:start + self.batch_size]
            outcomes = await asyncio.gather(*(func(item) for item in batch), return_exceptions=True)
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    results.append(Settled(item=item, error=outcome))
                else:
                    results.append(Settled(item=item, value=outcome))

        return results
