"""
Time sources and retry pacing.

The ledger clock is authoritative, so nothing in the game logic calls
time.time() directly. Components take a clock and the runners take a sleep
function; tests swap both for manual versions.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        ...


class SystemClock:
    """Whole seconds since the epoch, which is how the contract stores start times."""

    def now(self) -> int:
        return int(time.time())


class Backoff:
    """
    Capped linear backoff.

    base, base+step, base+2*step, ... up to cap. reset() after a clean
    iteration.
    """

    def __init__(self, base: float = 0.5, step: float = 0.5, cap: float = 5.0):
        self.base = base
        self.step = step
        self.cap = cap
        self.failures = 0

    def next_delay(self) -> float:
        delay = min(self.base + self.step * self.failures, self.cap)
        self.failures += 1
        return delay

    def reset(self):
        self.failures = 0
