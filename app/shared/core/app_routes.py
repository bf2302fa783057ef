from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

_REQUIRED_API_PREFIXES = {
    "/api/multi-cloud",
    "/api/credentials",
}


def _validate_router_registry(routes: list[tuple[Any, str | None]]) -> None:
    seen_prefixes: set[str] = set()
    for router, prefix in routes:
        route_list = getattr(router, "routes", None)
        if not isinstance(route_list, list) or not route_list:
            raise RuntimeError("Router registry includes an empty router definition")
        if prefix is None:
            continue
        normalized_prefix = prefix.strip()
        if not normalized_prefix.startswith("/"):
            raise RuntimeError(f"Router prefix must start with '/': {prefix!r}")
        if normalized_prefix in seen_prefixes:
            raise RuntimeError(f"Duplicate router prefix registered: {normalized_prefix}")
        seen_prefixes.add(normalized_prefix)

    missing_prefixes = sorted(_REQUIRED_API_PREFIXES - seen_prefixes)
    if missing_prefixes:
        raise RuntimeError(
            "Router registry is missing required API prefixes: "
            + ", ".join(missing_prefixes)
        )

    unexpected_prefixes = sorted(seen_prefixes - _REQUIRED_API_PREFIXES)
    if unexpected_prefixes:
        raise RuntimeError(
            "Router registry includes unexpected API prefixes: "
            + ", ".join(unexpected_prefixes)
        )


def register_lifecycle_routes(
    app: FastAPI,
    *,
    app_name: str,
    version: str,
) -> None:
    """Register lifecycle endpoints."""

    @app.get("/", tags=["Lifecycle"])
    async def root() -> dict[str, str]:
        """Root endpoint for basic reachability."""
        return {"status": "ok", "app": app_name, "version": version}

    @app.get("/health/live", tags=["Lifecycle"])
    async def liveness_check() -> dict[str, str]:
        """Fast liveness check without touching any provider."""
        return {"status": "healthy"}

    @app.get("/health/ready", tags=["Lifecycle"])
    async def readiness_check(request: Request) -> Any:
        """Ready once startup has installed the credential store and manager."""
        state = request.app.state
        checks = {
            "credential_store": getattr(state, "credential_store", None) is not None,
            "multi_cloud_manager": getattr(state, "multi_cloud_manager", None) is not None,
        }
        if not all(checks.values()):
            return JSONResponse(status_code=503, content={"status": "starting", "checks": checks})
        return {"status": "ready", "checks": checks}


def register_api_routers(app: FastAPI) -> None:
    """Register API route modules in one place to keep app entrypoint focused."""
    from app.modules.multicloud.api.v1.credentials import router as credentials_router
    from app.modules.multicloud.api.v1.multi_cloud import router as multi_cloud_router

    routes: list[tuple[Any, str | None]] = [
        (multi_cloud_router, "/api/multi-cloud"),
        (credentials_router, "/api/credentials"),
    ]

    _validate_router_registry(routes)

    for router, prefix in routes:
        if prefix is None:
            app.include_router(router)
        else:
            app.include_router(router, prefix=prefix)
