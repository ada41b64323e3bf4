import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from deaddrop.core.errors import RateLimitedError
from deaddrop.core.rate_limit import RateLimitResult, client_ip

logger = logging.getLogger(__name__)


def rate_limit_headers(limiter, result: RateLimitResult) -> dict:
    return {
        "X-RateLimit-Limit": str(limiter.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.retry_after_seconds),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client throttle for the API routes."""

    def __init__(self, app, get_limiter, path_prefix: str = "/api/"):
        super().__init__(app)
        self.get_limiter = get_limiter
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        limiter = self.get_limiter()
        fallback = request.client.host if request.client else None
        # The Redis store does blocking I/O, keep it off the event loop
        result = await run_in_threadpool(limiter.check, client_ip(request.headers, fallback))
        headers = rate_limit_headers(limiter, result)

        if result.limited:
            error = RateLimitedError(result.retry_after_seconds)
            logger.debug("Rejected %s %s: rate limited", request.method, request.url.path)
            return JSONResponse(
                status_code=error.status_code,
                content=error.to_dict(),
                headers={
                    **headers,
                    "Retry-After": str(error.retry_after),
                    "Cache-Control": "no-store, private",
                },
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
