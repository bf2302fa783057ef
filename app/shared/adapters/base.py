import re
import time
from datetime import datetime, timezone
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type

import structlog
from pydantic import ValidationError

from app.schemas.multi_cloud import (
    CloudResource,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
    utcnow,
)
from app.shared.core.config import get_settings
from app.shared.core.credentials import CREDENTIAL_MODELS, CloudCredentials
from app.shared.core.exceptions import (
    AdapterError,
    CredentialsMissingError,
    UnsupportedServiceError,
    VendorAPIError,
)
from app.shared.core.provider import CloudProvider, display_name
from app.shared.core.security import CredentialStore

logger = structlog.get_logger()

PLATFORM_NAME_MARKER = "instantiate"


def parse_timestamp(value: Any) -> datetime:
    """Vendor timestamp (datetime or ISO string) as an aware datetime; now when unparseable."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return utcnow()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utcnow()


def unique_name(name: str, *, lowercase: bool = True) -> str:
    """`<name>-<epoch ms>`, stripped to characters every vendor accepts."""
    candidate = f"{name}-{int(time.time() * 1000)}"
    if lowercase:
        candidate = candidate.lower()
    return re.sub(r"[^A-Za-z0-9-]", "", candidate)


class BaseProviderAdapter(ABC):
    """
    Abstract Base Class for Multi-Cloud Provider Adapters.

    Standardizes the interface for:
    - Unified deployment (dispatched on the requested service)
    - Resource discovery filtered to platform-created resources
    - Status lookup, deletion and connection verification

    Credentials are read from the credential store on every call so that
    updates take effect without rebuilding the adapter.
    """

    provider: ClassVar[CloudProvider]
    # service key -> name of the deploy method implementing it
    SERVICES: ClassVar[Dict[str, str]] = {}
    REGIONS: ClassVar[List[str]] = []

    last_error: Optional[str] = None

    def __init__(self, store: CredentialStore):
        self.store = store
        self.settings = get_settings()

    @property
    def display_name(self) -> str:
        return display_name(self.provider)

    @property
    def credential_model(self) -> Type[CloudCredentials]:
        return CREDENTIAL_MODELS[self.provider]

    def capabilities(self) -> List[str]:
        return list(self.SERVICES)

    def _clear_last_error(self) -> None:
        self.last_error = None

    def _set_last_error_from_exception(
        self, exc: Exception, *, prefix: str | None = None
    ) -> None:
        error_text = str(exc)
        message = f"{prefix}: {error_text}" if prefix else error_text
        self.last_error = AdapterError(message).message

    def _require_credentials(self) -> Any:
        """Load and validate this provider's credentials from the store."""
        blob = self.store.get(self.provider)
        if not blob:
            raise CredentialsMissingError(f"{self.display_name} credentials not configured")
        try:
            return self.credential_model.model_validate(blob)
        except ValidationError as exc:
            raise CredentialsMissingError(
                f"{self.display_name} credentials not configured: invalid stored credentials",
                details={"errors": exc.error_count()},
            ) from exc

    def is_configured(self) -> bool:
        return self.store.has(self.provider)

    def is_platform_resource(
        self, tags: Optional[Mapping[str, Any]] = None, name: Optional[str] = None
    ) -> bool:
        """True for resources tagged `CreatedBy=Instantiate` or named after the platform."""
        if tags and tags.get(self.settings.PLATFORM_TAG_KEY) == self.settings.PLATFORM_TAG_VALUE:
            return True
        return bool(name) and PLATFORM_NAME_MARKER in name.lower()

    def platform_tags(self) -> Dict[str, str]:
        return {self.settings.PLATFORM_TAG_KEY: self.settings.PLATFORM_TAG_VALUE}

    async def deploy(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        """Dispatch a unified request to the deploy method for its service."""
        handler_name = self.SERVICES.get(request.service)
        if handler_name is None:
            raise UnsupportedServiceError(
                f"Service {request.service} not supported for {self.display_name}",
                details={"provider": self.provider.value, "service": request.service},
            )
        logger.info(
            "provider_deploy_started",
            provider=self.provider.value,
            service=request.service,
            region=request.region,
            name=request.name,
        )
        handler = getattr(self, handler_name)
        return await handler(request)

    def _vendor_error(self, action: str, exc: Exception) -> VendorAPIError:
        logger.error(
            "provider_call_failed",
            provider=self.provider.value,
            action=action,
            error=str(exc),
        )
        return VendorAPIError(
            f"{self.display_name} {action} failed: {exc}",
            details={"provider": self.provider.value},
        )

    @abstractmethod
    async def list_resources(self) -> List[CloudResource]:
        """Discover platform-created resources across the provider."""
        raise NotImplementedError()

    @abstractmethod
    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        raise NotImplementedError()

    @abstractmethod
    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        raise NotImplementedError()

    @abstractmethod
    async def verify_connection(self) -> bool:
        """Verify that the stored credentials are valid."""
        raise NotImplementedError()
