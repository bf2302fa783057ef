"""
Retry Logic with Exponential Backoff

Tenacity-based retry decorator for provider SDK calls. Only the transient
exception types named by the caller are retried; everything else propagates
on the first attempt.
"""
from functools import wraps
from typing import Any, Callable, Dict, Tuple, Type

import structlog
import tenacity

from app.shared.core.config import get_settings

logger = structlog.get_logger()

DEFAULT_ATTEMPTS = 3


def _before_sleep(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else None
    logger.warning(
        "provider_sdk_retrying",
        attempt=retry_state.attempt_number,
        wait_seconds=wait,
        error=str(exc) if exc else None,
        function=getattr(retry_state.fn, "__name__", "unknown"),
    )


def _build_retry_config(
    exceptions: Tuple[Type[BaseException], ...], attempts: int
) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "retry": tenacity.retry_if_exception_type(exceptions),
        "wait": tenacity.wait_exponential(multiplier=1, min=2, max=10),
        "stop": tenacity.stop_after_attempt(attempts),
        "before_sleep": _before_sleep,
        "reraise": True,
    }
    if get_settings().TESTING:
        # Keep retry semantics in tests without real sleeps
        async def _no_sleep(_seconds: float) -> None:
            return None

        config["sleep"] = _no_sleep
        config["wait"] = tenacity.wait_none()
    return config


def sdk_retry(
    *exceptions: Type[BaseException], attempts: int = DEFAULT_ATTEMPTS
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator retrying an async SDK call on the given transient exception types.

    Usage:
        @sdk_retry(EndpointConnectionError, ConnectTimeoutError)
        async def list_functions(self): ...
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            retrying = tenacity.AsyncRetrying(**_build_retry_config(exceptions, attempts))
            async for attempt in retrying:
                with attempt:
                    return await func(*args, **kwargs)

        return wrapper

    return decorator
