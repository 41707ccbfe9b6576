import asyncio
import logging
import math
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


class RateLimiter:
    """In-memory sliding window limiter. State is per process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: Dict[str, Tuple[int, Deque[float]]] = {}
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        for key in list(self._windows):
            window_seconds, hits = self._windows[key]
            while hits and now - hits[0] >= window_seconds:
                hits.popleft()
            if not hits:
                del self._windows[key]

    async def check(self, key: str, limit: int, window_seconds: int) -> float:
        """Record a hit for key; return 0 when allowed, otherwise seconds until a slot frees."""
        now = self._clock()
        async with self._lock:
            self._prune(now)
            _, hits = self._windows.setdefault(key, (window_seconds, deque()))
            if len(hits) >= limit:
                return window_seconds - (now - hits[0])
            hits.append(now)
            return 0.0

    def tracked_keys(self) -> int:
        return len(self._windows)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)


limiter = RateLimiter()


def client_address(request: Request) -> str:
    # Forwarding headers are client-controlled; only the socket peer is trusted.
    return request.client.host if request.client else "anonymous"


def rate_limit_dependency(
    scope: str,
    limit: int,
    window_seconds: int,
    message: str = "Too many requests.",
) -> Callable[[Request], None]:
    async def enforce(request: Request) -> None:
        address = client_address(request)
        wait = await limiter.check(f"{scope}:{address}", limit, window_seconds)
        if wait:
            logger.warning("Rate limit hit for %s from %s", scope, address)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=message,
                headers={"Retry-After": str(max(1, math.ceil(wait)))},
            )

    return enforce
