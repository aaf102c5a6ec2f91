"""In-process fixed-window rate limiter.

Counters live in a dict keyed by ``bucket:identifier:window_index``. A
window index is ``now // window_sec`` so every client shares the same window
boundaries. Expired windows are pruned on access; nothing runs in the
background.

This is per-process state: behind several workers each one counts on its own.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from app.core.config import settings


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_sec: int


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: Optional[int] = None

    def headers(self) -> Dict[str, str]:
        h = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed and self.retry_after is not None:
            h["Retry-After"] = str(self.retry_after)
        return h


def default_rules() -> Dict[str, RateLimitRule]:
    return {
        "chat": RateLimitRule(int(settings.RATE_LIMIT_CHAT_PER_MIN), 60),
        "api": RateLimitRule(int(settings.RATE_LIMIT_API_PER_MIN), 60),
        "auth": RateLimitRule(int(settings.RATE_LIMIT_AUTH_ATTEMPTS), int(settings.RATE_LIMIT_AUTH_WINDOW_SEC)),
        "admin": RateLimitRule(int(settings.RATE_LIMIT_ADMIN_PER_MIN), 60),
    }


class RateLimiter:
    def __init__(
        self,
        rules: Optional[Dict[str, RateLimitRule]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rules = dict(rules or default_rules())
        self._clock = clock
        self._counts: Dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [k for k, (_, reset_at) in self._counts.items() if reset_at <= now]
        for k in expired:
            del self._counts[k]

    def check(self, identifier: str, bucket: str = "api") -> RateLimitResult:
        rule = self.rules.get(bucket)
        if rule is None:
            raise KeyError(f"unknown rate limit bucket: {bucket}")

        now = self._clock()
        window = int(now // rule.window_sec)
        reset_at = float((window + 1) * rule.window_sec)
        key = f"{bucket}:{identifier}:{window}"

        with self._lock:
            self._prune(now)
            count, _ = self._counts.get(key, (0, reset_at))
            count += 1
            self._counts[key] = (count, reset_at)

        allowed = count <= rule.max_requests
        return RateLimitResult(
            allowed=allowed,
            limit=rule.max_requests,
            remaining=max(0, rule.max_requests - count),
            reset_at=reset_at,
            retry_after=None if allowed else max(1, math.ceil(reset_at - now)),
        )

    def reset(self, identifier: Optional[str] = None) -> None:
        """Drop counters of one identifier in every bucket, or everything."""
        with self._lock:
            if identifier is None:
                self._counts.clear()
                return
            # key = bucket:identifier:window, identifier có thể chứa ':'
            for k in [k for k in self._counts if k.split(":", 1)[1].rsplit(":", 1)[0] == identifier]:
                del self._counts[k]

    def __len__(self) -> int:
        return len(self._counts)


rate_limiter = RateLimiter()
