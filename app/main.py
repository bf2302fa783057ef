import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Sequence

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from app.modules.multicloud.domain.manager import MultiCloudManager
from app.shared.core.app_routes import register_api_routers, register_lifecycle_routes
from app.shared.core.config import get_settings, reload_settings_from_environment
from app.shared.core.error_governance import handle_exception
from app.shared.core.exceptions import CloudManagerException
from app.shared.core.http import close_http_client, init_http_client
from app.shared.core.logging import setup_logging
from app.shared.core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from app.shared.core.ops_metrics import API_ERRORS_TOTAL
from app.shared.core.security import CredentialStore, bootstrap_from_environment

setup_logging()
settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global settings
    settings = reload_settings_from_environment()

    logger.info("app_starting", app_name=settings.APP_NAME, environment=settings.ENVIRONMENT)

    store = CredentialStore.from_settings(settings)
    bootstrap_from_environment(store, settings)

    app.state.credential_store = store
    app.state.multi_cloud_manager = MultiCloudManager.from_store(store, settings=settings)

    await init_http_client()

    yield

    logger.info("Shutting down...")
    await close_http_client()


cloud_app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)
# Uvicorn looks for 'app' by default.
app: FastAPI = cloud_app  # noqa: A001

__all__ = ["app", "cloud_app", "lifespan"]


@cloud_app.exception_handler(CloudManagerException)
async def cloud_manager_exception_handler(
    request: Request, exc: CloudManagerException
) -> JSONResponse:
    """Handle custom application exceptions."""
    return handle_exception(request, exc)


@cloud_app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions with standardized format."""
    is_prod = settings.ENVIRONMENT.lower() in {"production", "staging"}
    detail_text = str(exc.detail) if isinstance(exc.detail, str) else "Request failed"
    if is_prod and exc.status_code >= 500:
        error_text = "Internal Server Error"
        message_text = "An unexpected internal error occurred"
    else:
        error_text = detail_text if isinstance(exc.detail, str) else "Error"
        message_text = detail_text

    API_ERRORS_TOTAL.labels(
        path=request.url.path, method=request.method, status_code=exc.status_code
    ).inc()
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": error_text,
            "code": "HTTP_ERROR",
            "message": message_text,
        },
    )


@cloud_app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors."""

    def _json_safe(value: Any) -> Any:
        if isinstance(value, Exception):
            return str(value)
        try:
            json.dumps(value)
            return value
        except (TypeError, ValueError):
            return str(value)

    def _sanitize_errors(errors: Sequence[Any]) -> List[Dict[str, Any]]:
        sanitized = []
        for err in errors:
            clean = dict(err)
            if "ctx" in clean and isinstance(clean["ctx"], dict):
                clean["ctx"] = {k: _json_safe(v) for k, v in clean["ctx"].items()}
            if "input" in clean:
                clean["input"] = _json_safe(clean["input"])
            sanitized.append(clean)
        return sanitized

    API_ERRORS_TOTAL.labels(
        path=request.url.path, method=request.method, status_code=422
    ).inc()
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Unprocessable Entity",
            "code": "VALIDATION_ERROR",
            "message": "The request body or parameters are invalid.",
            "details": _sanitize_errors(exc.errors()),
        },
    )


@cloud_app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle business logic ValueErrors via central governance."""
    return handle_exception(request, exc)


@cloud_app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Sanitized 500 for anything that escaped the handlers above."""
    return handle_exception(request, exc)


register_lifecycle_routes(
    cloud_app,
    app_name=settings.APP_NAME,
    version=settings.VERSION,
)

Instrumentator().instrument(cloud_app).expose(cloud_app)

# Middleware runs in reverse order of addition; CORS goes last so it runs first.
cloud_app.add_middleware(GZipMiddleware, minimum_size=1000)
cloud_app.add_middleware(SecurityHeadersMiddleware)
cloud_app.add_middleware(RequestIDMiddleware)

if settings.CORS_ORIGINS and "*" in settings.CORS_ORIGINS:
    logger.error("insecure_cors_config_detected", msg="allow_credentials=True with '*' origin is forbidden")
    cors_allowed_origins = [o for o in settings.CORS_ORIGINS if o != "*"]
else:
    cors_allowed_origins = settings.CORS_ORIGINS

cloud_app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

register_api_routers(cloud_app)
