"""
Per-client fixed-window request throttle.

The in-memory store is the only shared in-process state in the service. It
is guarded by a lock, resets on restart and is only accurate per instance.
Deployments running several instances should use the Redis store.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    limited: bool
    remaining: int
    reset_in_ms: int

    @property
    def retry_after_seconds(self) -> int:
        return max(1, -(-self.reset_in_ms // 1000))


class InMemoryCounterStore:
    def __init__(self):
        self._windows: Dict[str, Tuple[int, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_ms: int, now_ms: int) -> Tuple[int, int]:
        """
        Count a request for `key` and return (count, reset_at_ms).

        A request that arrives at the ceiling is not counted, so the stored
        count never exceeds `limit`.
        """
        with self._lock:
            record = self._windows.get(key)
            if record is None or now_ms > record[1]:
                record = (1, now_ms + window_ms)
                self._prune(now_ms)
            elif record[0] < limit:
                record = (record[0] + 1, record[1])
            else:
                return limit + 1, record[1]
            self._windows[key] = record
            return record

    def _prune(self, now_ms: int) -> None:
        expired = [k for k, (_, reset_at) in self._windows.items() if now_ms > reset_at]
        for k in expired:
            del self._windows[k]

    def __len__(self) -> int:
        return len(self._windows)


class RedisCounterStore:
    """Counter store shared between instances through Redis."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, client):
        self.client = client

    def hit(self, key: str, limit: int, window_ms: int, now_ms: int) -> Tuple[int, int]:
        redis_key = f"{self.KEY_PREFIX}{key}"
        pipe = self.client.pipeline()
        pipe.incr(redis_key)
        pipe.pttl(redis_key)
        count, ttl = pipe.execute()
        if count == 1 or ttl < 0:
            self.client.pexpire(redis_key, window_ms)
            ttl = window_ms
        return int(count), now_ms + int(ttl)


class RateLimiter:
    def __init__(
        self,
        store,
        limit: int,
        window_ms: int,
        clock: Callable[[], int] = monotonic_ms,
    ):
        self.store = store
        self.limit = limit
        self.window_ms = window_ms
        self.clock = clock

    def check(self, key: str) -> RateLimitResult:
        now_ms = self.clock()
        count, reset_at = self.store.hit(key, self.limit, self.window_ms, now_ms)
        reset_in = max(0, reset_at - now_ms)
        if count > self.limit:
            logger.debug("Rate limited %s", key)
            return RateLimitResult(limited=True, remaining=0, reset_in_ms=reset_in)
        return RateLimitResult(limited=False, remaining=self.limit - count, reset_in_ms=reset_in)


def client_ip(headers: Mapping[str, str], fallback: Optional[str] = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return fallback or "unknown"
