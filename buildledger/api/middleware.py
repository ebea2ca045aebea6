import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from buildledger.common.logging import get_logger

logger = get_logger("middleware")


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "%s %s %d %.1fms user=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request.headers.get("x-user-id", "-"),
        )

        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        return response
