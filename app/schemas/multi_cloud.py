"""
Multi-Cloud Schemas

Unified request/resource/status models shared by every provider adapter,
the multi-cloud manager and the HTTP API. Wire names are camelCase.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.shared.core.provider import CloudProvider


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CodeType(str, Enum):
    JAVASCRIPT = "javascript"
    PYTHON = "python"
    HTML = "html"


class ProviderConnectionStatus(str, Enum):
    CONNECTED = "connected"
    ERROR = "error"
    NOT_CONFIGURED = "not-configured"


class DeploymentState(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"
    DEPLOYED = "deployed"


class UnifiedDeploymentRequest(CamelModel):
    """Provider-agnostic deployment request."""
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1)
    code_type: CodeType
    provider: CloudProvider
    region: str = Field(..., min_length=1)
    service: str = Field(..., min_length=1)
    environment_variables: Optional[Dict[str, str]] = None

    # Container hints, used by the container-style services only
    image: Optional[str] = None
    cpu: Optional[float] = None
    memory: Optional[float] = None
    ports: Optional[List[int]] = None
    resource_group: Optional[str] = None


class CloudResource(CamelModel):
    """Normalized representation of a vendor-specific deployed unit."""
    id: str
    name: str
    type: str
    provider: CloudProvider
    region: str
    status: str
    cost: Optional[float] = None
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    last_checked: datetime = Field(default_factory=utcnow)


class DeploymentResult(CamelModel):
    """Adapter deploy output, decorated by the manager."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    name: str
    type: str
    region: str
    status: str
    url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    logs: List[str] = Field(default_factory=list)
    provider: Optional[CloudProvider] = None
    deployment_type: Optional[str] = None

    def to_resource(self, provider: CloudProvider) -> CloudResource:
        return CloudResource(
            id=self.id,
            name=self.name,
            type=self.type,
            provider=provider,
            region=self.region,
            status=self.status,
            url=self.url,
            created_at=self.created_at,
        )


class ProviderStatus(CamelModel):
    provider: CloudProvider
    status: ProviderConnectionStatus
    resource_count: int = 0
    total_cost: Optional[float] = None
    last_sync: str = "Never"
    error: Optional[str] = None


class DeploymentStats(CamelModel):
    total_resources: int = 0
    total_cost: float = 0.0
    provider_distribution: Dict[str, int] = Field(default_factory=dict)
    status_distribution: Dict[str, int] = Field(default_factory=dict)
    region_distribution: Dict[str, int] = Field(default_factory=dict)


class ResourceStatus(CamelModel):
    status: str
    provider: CloudProvider
    details: Dict[str, Any] = Field(default_factory=dict)


class ProviderCapabilities(CamelModel):
    provider: CloudProvider
    capabilities: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)


class SyncResult(CamelModel):
    provider: CloudProvider
    success: bool
    resource_count: int = 0
    error: Optional[str] = None


class ConnectionTestResult(CamelModel):
    success: bool
    provider: CloudProvider
    error: Optional[str] = None


class CredentialUpdateResult(CamelModel):
    success: bool
    provider: CloudProvider
    message: str


class EnvironmentVariable(CamelModel):
    id: str = ""
    key: str
    value: str = ""
    is_secret: bool = False
    provider: Optional[CloudProvider] = None


class DeploymentRecord(CamelModel):
    id: str
    provider: CloudProvider
    status: DeploymentState
    service: Optional[str] = None
    url: Optional[str] = None
    resource_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DeploymentTrackerStats(CamelModel):
    total: int = 0
    ready: int = 0
    processing: int = 0
    errors: int = 0
