"""Failed-guess limiter for emergency PIN redemption.

A 6-digit PIN is only safe while guesses are scarce. The limiter counts
failed redemptions per key in a sliding window and reports the key as locked
once the window holds too many failures. Redemption keys it by patient and
redeemer, so a caller can only lock itself out.
"""

import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Deque, Dict, Hashable

from ehealthwave.utils.logging import get_logger

logger = get_logger(__name__)


class GuessLimiter:
    """Sliding-window lockout per key."""

    def __init__(self, max_failures: int = 5, window_minutes: int = 15):
        """Initialize guess limiter.

        Args:
            max_failures: Failures inside the window that trigger a lockout
            window_minutes: Length of the sliding window, which is also the
                longest a lockout lasts
        """
        self.max_failures = max_failures
        self.window = timedelta(minutes=window_minutes)

        # Sliding window of failure times per key; keys with no recent
        # failures are dropped
        self.failures: Dict[Hashable, Deque[datetime]] = {}

        self._lock = threading.Lock()

    def _pruned_count(self, key: Hashable, now: datetime) -> int:
        window = self.failures.get(key)
        if window is None:
            return 0
        cutoff = now - self.window
        while window and window[0] <= cutoff:
            window.popleft()
        if not window:
            del self.failures[key]
        return len(window)

    def is_locked(self, key: Hashable, now: datetime) -> bool:
        """Whether ``key`` has exhausted its failures for the current window."""
        with self._lock:
            return self._pruned_count(key, now) >= self.max_failures

    def record_failure(self, key: Hashable, now: datetime) -> int:
        """Record a failed attempt.

        Returns:
            Failures currently inside the window
        """
        with self._lock:
            self._pruned_count(key, now)
            window = self.failures.setdefault(key, deque())
            window.append(now)
            if len(window) == self.max_failures:
                logger.warning("pin_guess_lockout", key=str(key), failures=len(window))
            return len(window)

    def reset(self, key: Hashable) -> None:
        """Forget the failures recorded for ``key``."""
        with self._lock:
            self.failures.pop(key, None)
