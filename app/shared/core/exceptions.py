from enum import Enum
from typing import Optional, Dict, Any


class ErrorKind(str, Enum):
    """Coarse classification shared by every provider adapter."""

    CREDENTIALS_MISSING = "credentials_missing"
    VENDOR_ERROR = "vendor_error"
    UNSUPPORTED = "unsupported"
    AUTHENTICATION_FAILED = "authentication_failed"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class CloudManagerException(Exception):
    """Base exception for all multi-cloud manager errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class AdapterError(CloudManagerException):
    """Raised when an external cloud adapter fails."""

    kind = ErrorKind.VENDOR_ERROR

    def __init__(self, message: str, code: str = "adapter_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)


class VendorAPIError(AdapterError):
    """Raised when a provider API answers with a non-2xx status or an SDK error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="vendor_error", details=details)


class ExternalAPIError(AdapterError):
    """Raised when a provider endpoint is unreachable or times out."""

    def __init__(self, message: str, code: str = "external_api_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)
        if code == "timeout_error":
            self.kind = ErrorKind.TIMEOUT


class CredentialsMissingError(CloudManagerException):
    """Raised when a provider is used before credentials were configured."""

    kind = ErrorKind.CREDENTIALS_MISSING

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="credentials_missing", status_code=400, details=details)


class AuthenticationFailedError(CloudManagerException):
    """Raised when a provider rejects the configured credentials."""

    kind = ErrorKind.AUTHENTICATION_FAILED

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="authentication_failed", status_code=401, details=details)


class UnsupportedProviderError(CloudManagerException):
    """Raised for provider keys that are not registered with the manager."""

    kind = ErrorKind.UNSUPPORTED

    def __init__(self, provider: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Unsupported cloud provider: {provider}",
            code="unsupported_provider",
            status_code=400,
            details=details,
        )
        self.provider = provider


class UnsupportedServiceError(CloudManagerException):
    """Raised when a provider has no deploy handler for the requested service."""

    kind = ErrorKind.UNSUPPORTED

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="unsupported_service", status_code=400, details=details)


class DeploymentError(CloudManagerException):
    """Raised when a unified deployment fails inside the provider adapter."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.INTERNAL, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="deployment_failed", status_code=500, details=details)
        self.kind = kind


class ConfigurationError(CloudManagerException):
    """Raised when application configuration is invalid or missing."""

    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=500, details=details)


class ResourceNotFoundError(CloudManagerException):
    """Raised when a requested resource is not found."""

    def __init__(self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)


def error_kind_of(exc: BaseException) -> ErrorKind:
    """Best-effort ErrorKind for any exception, including foreign ones."""
    if isinstance(exc, CloudManagerException):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    return ErrorKind.INTERNAL
