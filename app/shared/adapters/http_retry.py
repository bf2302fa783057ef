import asyncio
from collections.abc import Awaitable, Callable

import httpx
import structlog

from app.shared.core.exceptions import (
    AuthenticationFailedError,
    ExternalAPIError,
    VendorAPIError,
)

logger = structlog.get_logger()

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
AUTH_STATUS_CODES = {401, 403}


async def execute_with_http_retry(
    *,
    request: Callable[[], Awaitable[httpx.Response]],
    url: str,
    provider: str,
    error_prefix: str,
    max_retries: int = 3,
    retryable_status_codes: set[int] = RETRYABLE_STATUS_CODES,
    retry_sleep_base_seconds: float = 0.05,
) -> httpx.Response:
    """
    Execute a provider REST call with unified retry/error semantics.

    Retryable statuses and transport errors are retried with linear backoff.
    401/403 raise AuthenticationFailedError, other non-2xx statuses raise
    VendorAPIError, exhausted transport retries raise ExternalAPIError. All
    messages carry `error_prefix` so callers see which provider failed.
    """
    last_error: Exception | None = None
    attempts = max(1, int(max_retries))

    for attempt in range(1, attempts + 1):
        try:
            response = await request()
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            last_error = exc
            status_code = exc.response.status_code
            if status_code in AUTH_STATUS_CODES:
                raise AuthenticationFailedError(
                    f"{error_prefix}: authentication failed with status {status_code}",
                    details={"provider": provider, "status_code": status_code},
                ) from exc
            if status_code in retryable_status_codes and attempt < attempts:
                logger.warning(
                    "provider_http_retry_status",
                    provider=provider,
                    attempt=attempt,
                    max_attempts=attempts,
                    status_code=status_code,
                    url=url,
                )
                await asyncio.sleep(retry_sleep_base_seconds * attempt)
                continue
            raise VendorAPIError(
                f"{error_prefix}: API error {status_code}: {_error_body(exc.response)}",
                details={"provider": provider, "status_code": status_code},
            ) from exc
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            last_error = exc
            if attempt < attempts:
                logger.warning(
                    "provider_http_retry_transport",
                    provider=provider,
                    attempt=attempt,
                    max_attempts=attempts,
                    url=url,
                    error=str(exc),
                )
                await asyncio.sleep(retry_sleep_base_seconds * attempt)
                continue
            raise ExternalAPIError(
                f"{error_prefix}: {exc}", details={"provider": provider}
            ) from exc

    raise ExternalAPIError(
        f"{error_prefix}: {last_error or 'request failed unexpectedly'}",
        details={"provider": provider},
    )


def _error_body(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        for key in ("message", "error", "errors", "reason"):
            if key in payload:
                return str(payload[key])[:200]
    return str(payload)[:200]
