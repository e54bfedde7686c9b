"""Reconnection backoff schedule.

Delays grow geometrically from ``min_ms`` by ``factor`` per attempt, are
jittered by up to ``jitter`` of their value in either direction, and never
exceed ``max_ms``.
"""

from __future__ import annotations

import random
from typing import Callable


class ReconnectionBackoff:
    """Stateful delay generator; one instance per connection.

    Args:
        min_ms: Delay before the first retry.
        max_ms: Ceiling for any single delay.
        factor: Growth multiplier per attempt.
        jitter: Randomisation factor in [0, 1]; 0 gives a deterministic schedule.
        rand: Source of uniform floats in [0, 1), injectable for tests.
    """

    def __init__(
        self,
        min_ms: int = 2000,
        max_ms: int = 10000,
        factor: float = 2.0,
        jitter: float = 0.5,
        rand: Callable[[], float] = random.random,
    ) -> None:
        if max_ms < min_ms:
            raise ValueError("max_ms must be >= min_ms")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be within [0, 1]")
        self._min_ms = min_ms
        self._max_ms = max_ms
        self._factor = factor
        self._jitter = jitter
        self._rand = rand
        self.attempts = 0

    def duration(self) -> int:
        """Return the next delay in milliseconds and advance the schedule."""
        ms = self._min_ms * (self._factor ** self.attempts)
        self.attempts += 1
        if self._jitter:
            sample = self._rand()
            deviation = int(sample * self._jitter * ms)
            # Low bit of a second digit of the same sample picks the direction.
            ms = ms - deviation if int(sample * 10) & 1 == 0 else ms + deviation
        return int(min(ms, self._max_ms))

    def reset(self) -> None:
        self.attempts = 0
