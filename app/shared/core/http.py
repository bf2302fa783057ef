"""
Shared async HTTP client for the REST-based provider adapters.

One pooled httpx.AsyncClient is created in the FastAPI lifespan and reused by
DigitalOcean, Linode, Netlify, IBM and Tencent adapters so that concurrent
fan-out refreshes do not open a fresh connection pool per call.
"""

import inspect
from typing import Optional
import httpx
import structlog

logger = structlog.get_logger()

USER_AGENT = "Instantiate-MultiCloud/0.1"

_client: Optional[httpx.AsyncClient] = None


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        http2=True,
        timeout=httpx.Timeout(20.0, connect=10.0),
        limits=httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20,
            keepalive_expiry=30.0,
        ),
        headers={"User-Agent": USER_AGENT},
    )


def get_http_client() -> httpx.AsyncClient:
    """
    Returns the shared httpx.AsyncClient, creating it lazily when the
    lifespan hook has not run (scripts, tests).
    """
    global _client
    if _client is None:
        logger.warning(
            "http_client_lazy_initialized",
            msg="Client was not pre-initialized",
        )
        _client = _build_client()
    return _client


async def init_http_client() -> None:
    """Initializes the shared client at application startup."""
    global _client
    if _client is not None:
        logger.warning("http_client_already_initialized")
        return
    _client = _build_client()
    logger.info("http_client_initialized", http2=True, max_connections=100)


async def close_http_client() -> None:
    """Gracefully shuts down the shared client, flushing its pool."""
    global _client
    if _client is None:
        return

    close_result = _client.aclose()
    if inspect.isawaitable(close_result):
        await close_result
    _client = None
    logger.info("http_client_closed")
