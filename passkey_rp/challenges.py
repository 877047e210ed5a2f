"""In-memory ledger of spent ceremony challenges."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict


class ChallengeLedger:
    """Remembers challenges that have been presented for verification.

    A challenge is single-use: the first call to :meth:`spend` for a given
    value succeeds and every later call within ``ttl`` seconds fails.
    Entries older than ``ttl`` are dropped, by which point the options that
    carried the challenge have long timed out on the client.
    """

    def __init__(self, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._spent: Dict[str, float] = {}
        self._lock = threading.Lock()

    def spend(self, challenge: str) -> bool:
        now = self._clock()
        with self._lock:
            self._prune(now)
            if challenge in self._spent:
                return False
            self._spent[challenge] = now
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._spent)

    def _prune(self, now: float) -> None:
        cutoff = now - self.ttl
        expired = [key for key, spent_at in self._spent.items() if spent_at <= cutoff]
        for key in expired:
            del self._spent[key]
