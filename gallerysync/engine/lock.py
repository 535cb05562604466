"""
gallerysync.engine.lock — In-process sync lock
===============================================

Guards the expensive sync path against concurrent runs inside one
process.  It is advisory: it does not survive restarts and gives no
exclusion across instances.  A holder that exceeds ``max_duration`` is
treated as abandoned and the lock may be taken over; the abandoned run's
later ``release`` is then ignored because its token no longer matches.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class ProcessingLock:
    def __init__(self, max_duration: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_duration = max_duration
        self._clock = clock
        self._tokens = itertools.count(1)
        self._token: int | None = None
        self._acquired_at: float = 0.0

    @property
    def held(self) -> bool:
        """True while a live (not expired) holder exists."""
        if self._token is None:
            return False
        return self._clock() - self._acquired_at < self.max_duration

    def try_acquire(self) -> int | None:
        """Take the lock unless a live holder exists.  Never blocks.

        Returns an ownership token for :meth:`release`, or ``None``.
        """
        if self.held:
            return None
        if self._token is not None:
            logger.warning(
                "Sync lock held for %.1fs (> %.1fs) — treating previous run as abandoned",
                self._clock() - self._acquired_at, self.max_duration,
            )
        self._token = next(self._tokens)
        self._acquired_at = self._clock()
        return self._token

    def release(self, token: int) -> None:
        if token == self._token:
            self._token = None
