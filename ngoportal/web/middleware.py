"""Request ID propagation and per-IP rate limiting."""

from __future__ import annotations

import time
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limit of ``max_requests`` per client IP on paths under ``prefix``.

    Payment webhooks are exempt: the provider retries from a small set of
    addresses and must not be throttled into redelivery storms.
    """

    def __init__(
        self,
        app: object,
        max_requests: int = 120,
        window_seconds: int = 60,
        prefix: str = "/api/",
        exempt: tuple[str, ...] = ("/api/donations/webhook", "/api/stripe/webhook"),
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._max_requests = max_requests
        self._window = window_seconds
        self._prefix = prefix
        self._exempt = exempt
        self._hits: dict[str, list[float]] = defaultdict(list)
        self._last_sweep = 0.0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not path.startswith(self._prefix) or path in self._exempt:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        if now - self._last_sweep >= self._window:
            self._evict_idle(now)
        hits = [t for t in self._hits[client_ip] if now - t < self._window]
        self._hits[client_ip] = hits

        if len(hits) >= self._max_requests:
            logger.warning("rate_limit_exceeded", ip=client_ip, path=path)
            return JSONResponse(
                {"error": "rate_limited", "message": "Rate limit exceeded. Try again later."},
                status_code=429,
                headers={"Retry-After": str(self._window)},
            )

        hits.append(now)
        return await call_next(request)

    def _evict_idle(self, now: float) -> None:
        """Forget clients with no hits inside the current window."""
        idle = [ip for ip, hits in self._hits.items() if not hits or now - hits[-1] >= self._window]
        for ip in idle:
            del self._hits[ip]
        self._last_sweep = now
