"""In-memory rate limiter applied to every ``/api/`` request."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware


class InMemoryRateLimiter:
    """Sliding window limiter keyed by client.

    Clients idle for a whole window are dropped on the next sweep.
    """

    def __init__(self):
        self._hits = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_sweep = 0.0

    def allow(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        cutoff = now - window_seconds
        retry_after = 0
        with self._lock:
            if now - self._last_sweep >= window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            q = self._hits[key]
            while q and q[0] < cutoff:
                q.popleft()
            if len(q) >= max_requests:
                retry_after = max(1, int(window_seconds - (now - q[0])))
                return False, retry_after
            q.append(now)
        return True, retry_after

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, q in self._hits.items() if not q or q[-1] < cutoff]
        for key in stale:
            del self._hits[key]

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._last_sweep = 0.0


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: InMemoryRateLimiter, max_requests: int, window_seconds: int, prefix: str = "/api/"):
        super().__init__(app)
        self.limiter = limiter
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.prefix):
            return await call_next(request)
        client = request.client.host if request.client else "anonymous"
        allowed, retry_after = self.limiter.allow(client, self.max_requests, self.window_seconds)
        if not allowed:
            return JSONResponse(
                status_code=429,
                content={"detail": "Demasiadas solicitudes desde esta IP, intenta de nuevo más tarde."},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
