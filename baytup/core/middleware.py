"""Custom middleware and rate limiting."""

import logging
import time

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

import redis.asyncio as redis

from baytup.config import settings
from baytup.core.exceptions import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


def _client_ip(request: Request) -> str:
    """Extract client IP, honouring proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


async def _hit_window(client: redis.Redis, key: str) -> int:
    """Record one hit in a sliding window and return the prior hit count."""
    now = time.time()
    async with client.pipeline(transaction=True) as pipe:
        pipe.zremrangebyscore(key, 0, now - WINDOW_SECONDS)
        pipe.zcard(key)
        pipe.zadd(key, {f"{now:.6f}": now})
        pipe.expire(key, WINDOW_SECONDS)
        results = await pipe.execute()
    return results[1]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Global per-IP rate limiting using a Redis sliding window."""

    def __init__(self, app, requests_per_minute: int = 100, redis_url: str | None = None):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self._redis = redis.from_url(
            redis_url or settings.redis_url, encoding="utf-8", decode_responses=True
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # Provider callbacks are signature-checked and must never be throttled
        if request.url.path == "/health" or "/webhooks/" in request.url.path:
            return await call_next(request)

        try:
            count = await _hit_window(self._redis, f"rate_limit:{_client_ip(request)}")
        except redis.RedisError:
            logger.warning("Rate limiter unavailable, allowing request")
            return await call_next(request)

        if count >= self.requests_per_minute:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please try again later."},
                headers={"Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(
            max(0, self.requests_per_minute - count - 1)
        )
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its status and duration."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(time.time_ns())
        request.state.request_id = request_id

        response = await call_next(request)

        duration = time.perf_counter() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration:.3f}s"

        log = logger.warning if duration > 1.0 else logger.info
        log(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"in {duration:.3f}s [{request_id}]"
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if not settings.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


class RateLimiter:
    """Per-endpoint rate limiter used as a FastAPI dependency."""

    def __init__(self, requests_per_minute: int = 10, key_prefix: str = "api"):
        self.requests_per_minute = requests_per_minute
        self.key_prefix = key_prefix
        self._redis: redis.Redis | None = None

    async def get_redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(
                settings.redis_url, encoding="utf-8", decode_responses=True
            )
        return self._redis

    async def __call__(self, request: Request) -> None:
        """Raise RateLimitExceeded when the caller is over its limit."""
        if settings.environment == "development":
            return

        client_id = _client_ip(request)
        if hasattr(request.state, "actor_id"):
            client_id = str(request.state.actor_id)

        try:
            count = await _hit_window(
                await self.get_redis(), f"rate:{self.key_prefix}:{client_id}"
            )
        except redis.RedisError:
            logger.warning(f"Rate limiter '{self.key_prefix}' unavailable, allowing request")
            return

        if count >= self.requests_per_minute:
            raise RateLimitExceeded()


booking_limiter = RateLimiter(requests_per_minute=10, key_prefix="booking")
payout_limiter = RateLimiter(requests_per_minute=5, key_prefix="payout")
