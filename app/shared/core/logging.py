import logging
import re
import sys
from typing import Any, cast

import structlog

from app.shared.core.config import get_settings

REDACTED = "[REDACTED]"

SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "authorization",
    "api_key",
    "apikey",
    "access_token",
    "client_secret",
    "private_key",
    "secret_access_key",
    "access_key_secret",
    "secret_key",
    "service_account_json",
    "credentials",
}
SENSITIVE_SUFFIXES = ("_token", "_secret", "_password", "_key", "_json")
SENSITIVE_FRAGMENTS = ("authorization", "secret", "token", "apikey", "api_key")

_EMAIL = re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+")
# Vendor error strings sometimes echo the key material that was sent
_INLINE_SECRETS = (
    re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b"),
    re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/=-]+"),
    re.compile(r"\bdop_v1_[a-f0-9]{16,}\b"),
    re.compile(r"\bnfp_[A-Za-z0-9]{16,}\b"),
)


def _is_sensitive_key(key: Any) -> bool:
    key_norm = str(key).lower().strip().replace("-", "_")
    if key_norm in SENSITIVE_FIELDS or key_norm.endswith(SENSITIVE_SUFFIXES):
        return True
    return any(fragment in key_norm for fragment in SENSITIVE_FRAGMENTS)


def _scrub_text(value: str) -> str:
    value = _EMAIL.sub("[EMAIL_REDACTED]", value)
    for pattern in _INLINE_SECRETS:
        value = pattern.sub(REDACTED, value)
    return value


def _redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: (REDACTED if _is_sensitive_key(k) else _redact(v)) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [_redact(item) for item in data]
    if isinstance(data, str):
        return _scrub_text(data)
    return data


def secret_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Structlog processor masking credential material before rendering.

    Secret-looking keys are replaced wholesale; string values are scrubbed
    of emails and inline vendor keys (AWS access key ids, bearer tokens,
    DigitalOcean and Netlify personal tokens).
    """
    redacted = _redact(event_dict)
    if isinstance(redacted, dict):
        return cast(dict[str, Any], redacted)
    return {}


def setup_logging() -> None:
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        secret_redactor,
    ]

    if settings.DEBUG:
        processors = shared_processors + [structlog.dev.ConsoleRenderer()]
        min_level = logging.DEBUG
    else:
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
        min_level = logging.INFO

    structlog.configure(
        processors=cast(Any, processors),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # uvicorn and the cloud SDKs log through the standard library
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=min_level)
    for noisy in ("botocore", "aiobotocore", "azure.core.pipeline.policies.http_logging_policy"):
        logging.getLogger(noisy).setLevel(max(min_level, logging.WARNING))


def audit_log(
    event: str,
    provider: str,
    details: dict[str, Any] | None = None,
) -> None:
    """Security-relevant events such as credential changes, on the `audit` logger."""
    logger = structlog.get_logger("audit")
    logger.info(
        event,
        provider=str(provider),
        metadata=details or {},
    )
