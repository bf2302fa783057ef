import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.shared.core.config import get_settings

logger = structlog.get_logger()

CallNext = Callable[[Request], Awaitable[Response]]

# Responses under these prefixes describe stored credentials
NO_STORE_PREFIXES = ("/api/credentials",)

DEFAULT_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)

        if request.url.scheme == "https":
            # HSTS is switched off in debug so local certificates are not pinned
            response.headers["Strict-Transport-Security"] = (
                "max-age=0"
                if get_settings().DEBUG
                else "max-age=31536000; includeSubDomains; preload"
            )

        for header, value in DEFAULT_SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)

        if request.url.path.startswith(NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"

        return response


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id, method and path into the structlog context and echoes
    the id back as X-Request-ID.

    A client-supplied X-Request-ID is reused for correlation only.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.debug(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response
