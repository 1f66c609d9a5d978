"""Request throttling and screening.

Counters are in-memory and per client address, like the pairing lockout
state of a single-process server. They reset on restart.
"""

import re
import time
from dataclasses import dataclass
from typing import Callable

# Path traversal, checked against the URL only
_URL_ONLY_PATTERNS = [re.compile(r"\.\.")]

_SUSPICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"union.*select", re.IGNORECASE | re.DOTALL),
    re.compile(r"javascript:", re.IGNORECASE),
]


def find_suspicious(url: str, body: str = "") -> str | None:
    """Return the first pattern a request matches, or None if it looks clean."""
    for pattern in _URL_ONLY_PATTERNS:
        if pattern.search(url):
            return pattern.pattern
    for pattern in _SUSPICIOUS_PATTERNS:
        if pattern.search(url) or pattern.search(body):
            return pattern.pattern
    return None


@dataclass
class WindowState:
    started_at: float = 0.0
    hits: int = 0


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int = 0


class RateLimiter:
    """Fixed-window counter: at most `max_requests` per key per window."""

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, WindowState] = {}

    def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        state = self._windows.get(key)
        if state is None or now - state.started_at >= self.window_seconds:
            self._prune(now)
            state = self._windows[key] = WindowState(started_at=now)

        if state.hits >= self.max_requests:
            retry_after = max(1, int(state.started_at + self.window_seconds - now + 0.999))
            return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)

        state.hits += 1
        return RateLimitResult(allowed=True, remaining=self.max_requests - state.hits)

    def reset(self) -> None:
        self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, s in self._windows.items() if now - s.started_at >= self.window_seconds]
        for key in expired:
            del self._windows[key]
