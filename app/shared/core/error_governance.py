"""
Unified Error Governance

Centrally handles exception classification, structured logging,
and OpenTelemetry span recording.
"""

from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from opentelemetry import trace

from app.shared.core.config import get_settings
from app.shared.core.exceptions import CloudManagerException
from app.shared.core.ops_metrics import API_ERRORS_TOTAL

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

# Codes whose messages are safe to show even in production
SAFE_CODES = {
    "not_found",
    "credentials_missing",
    "unsupported_provider",
    "unsupported_service",
    "deployment_failed",
}


def handle_exception(
    request: Request, exc: Exception, error_id: Optional[str] = None
) -> JSONResponse:
    """
    Classifies and records exceptions, returning a standardized JSON response.
    """
    error_id = error_id or str(uuid4())

    settings = get_settings()
    is_prod = settings.ENVIRONMENT.lower() in ("production", "staging")

    # 1. Classification & Sanitization
    if isinstance(exc, CloudManagerException):
        app_exc = exc
        if is_prod and app_exc.code not in SAFE_CODES:
            app_exc = CloudManagerException(
                message="An error occurred while processing your request",
                code=exc.code,
                status_code=exc.status_code,
            )
    elif isinstance(exc, ValueError):
        # Business validation errors are client errors
        msg = "Invalid request parameters" if is_prod else str(exc)
        app_exc = CloudManagerException(
            message=msg,
            code="value_error",
            status_code=400,
        )
        logger.warning(
            "business_validation_error",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )
    else:
        # Always sanitize unhandled exceptions to avoid leaking secrets via message bodies.
        app_exc = CloudManagerException(
            message="An unexpected internal error occurred",
            code="internal_error",
            status_code=500,
        )
        logger.exception(
            "unhandled_raw_exception",
            error=str(exc),
            error_id=error_id,
            path=request.url.path,
        )

    # 2. OTel Recording
    with tracer.start_as_current_span("handle_exception") as span:
        span.set_attribute("error.id", error_id)
        span.set_attribute("error.code", app_exc.code)
        span.set_attribute("http.path", request.url.path)
        span.set_attribute("http.method", request.method)
        span.record_exception(exc)
        span.set_status(trace.Status(trace.StatusCode.ERROR, app_exc.message))

    # 3. Metrics
    API_ERRORS_TOTAL.labels(
        path=request.url.path,
        method=request.method,
        status_code=app_exc.status_code,
    ).inc()

    # 4. Structured Logging
    logger.error(
        "api_error",
        error_id=error_id,
        code=app_exc.code,
        message=app_exc.message,
        status_code=app_exc.status_code,
        path=request.url.path,
        details=app_exc.details,
    )

    response_details: Optional[Dict[str, Any]] = app_exc.details or None
    if is_prod and app_exc.code not in SAFE_CODES:
        response_details = None

    return JSONResponse(
        status_code=app_exc.status_code,
        content={
            "success": False,
            "error": {
                "message": app_exc.message,
                "code": app_exc.code,
                "id": error_id,
                "details": response_details,
            },
        },
    )
