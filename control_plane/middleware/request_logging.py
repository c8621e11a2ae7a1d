"""
Request Logging Middleware

- Assigns a unique request_id to every request
- Sets the acting admin context from the X-Actor header
- Bounds store calls by the X-Request-Timeout header (seconds)
- Logs request start & end with timing
"""

import logging
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from control_plane.config import settings
from control_plane.deadline import deadline_scope
from control_plane.logging_config import actor_ctx, generate_request_id, request_id_ctx

logger = logging.getLogger("control_plane.request")


def _request_timeout(request: Request) -> Optional[float]:
    raw = request.headers.get("x-request-timeout")
    if raw is None:
        return settings.DEFAULT_REQUEST_TIMEOUT_SECONDS
    try:
        timeout = float(raw)
    except ValueError:
        logger.warning("Ignoring malformed X-Request-Timeout %r", raw)
        return settings.DEFAULT_REQUEST_TIMEOUT_SECONDS
    return timeout if timeout > 0 else settings.DEFAULT_REQUEST_TIMEOUT_SECONDS


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        rid = request.headers.get("x-request-id") or generate_request_id()
        request_id_ctx.set(rid)
        actor_ctx.set(request.headers.get("x-actor", "-") or "-")

        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "-"

        logger.info("→ %s %s from %s", method, path, client_ip)

        start = time.perf_counter()
        try:
            with deadline_scope(_request_timeout(request)):
                response = await call_next(request)
        except Exception:
            elapsed = (time.perf_counter() - start) * 1000
            logger.exception("✗ %s %s, %.1fms (unhandled exception)", method, path, elapsed)
            raise

        elapsed = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = rid

        logger.info(
            "← %s %s %d, %.1fms",
            method, path, response.status_code, elapsed,
        )
        return response
