import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, Tuple

from fastapi import HTTPException, Request, status

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    scope: str
    limit: int
    window_seconds: int


class SlidingWindowLimiter:
    """In-memory request log per (scope, client). Single-process only."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        # key -> (window seconds, request times)
        self._requests: Dict[str, Tuple[int, Deque[float]]] = {}
        self._lock = asyncio.Lock()

    def _evict_idle(self, now: float) -> None:
        idle = [
            key
            for key, (window_seconds, times) in self._requests.items()
            if not times or now - times[-1] > window_seconds
        ]
        for key in idle:
            del self._requests[key]

    async def check(self, rule: RateLimitRule, client: str) -> float:
        """Record a request and return 0, or the seconds to wait when over the limit."""
        now = self._clock()
        key = f"{rule.scope}:{client}"
        async with self._lock:
            self._evict_idle(now)
            _, window = self._requests.setdefault(key, (rule.window_seconds, deque()))
            while window and now - window[0] > rule.window_seconds:
                window.popleft()
            if len(window) >= rule.limit:
                return max(rule.window_seconds - (now - window[0]), 0.001)
            window.append(now)
            return 0.0

    def tracked_clients(self) -> int:
        return len(self._requests)

    def reset(self) -> None:
        self._requests.clear()


limiter = SlidingWindowLimiter()


def client_address(request: Request) -> str:
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "anonymous"


def rate_limit_dependency(rule: RateLimitRule) -> Callable[[Request], Awaitable[None]]:
    async def dependency(request: Request) -> None:
        client = client_address(request)
        retry_after = await limiter.check(rule, client)
        if retry_after:
            logger.warning("Rate limit hit for %s from %s", rule.scope, client)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please wait a moment and try again.",
                headers={"Retry-After": str(int(retry_after) or rule.window_seconds)},
            )

    return dependency
