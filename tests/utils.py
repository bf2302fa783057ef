"""Shared test helpers: a scriptable provider adapter and resource builder."""
import asyncio
from typing import Any, Dict, List, Optional

from app.schemas.multi_cloud import (
    CloudResource,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import BaseProviderAdapter
from app.shared.core.provider import CloudProvider
from app.shared.core.security import CredentialStore

TEST_KEY = "0f" * 32


class FakeAdapter(BaseProviderAdapter):
    """
    Provider adapter driven entirely by test-supplied behaviour.

    `resources` may be a list or a callable raising/returning per call;
    every call to `list_resources` is counted in `list_calls`.
    """

    SERVICES = {"function": "deploy_function"}
    REGIONS = ["test-region-1", "test-region-2"]

    def __init__(
        self,
        provider: CloudProvider,
        store: CredentialStore,
        resources: Any = None,
        delay: float = 0.0,
    ):
        super().__init__(store)
        self.provider = provider
        self.resources = resources if resources is not None else []
        self.delay = delay
        self.list_calls = 0
        self.deploy_error: Optional[Exception] = None
        self.deleted: List[str] = []
        self.verify_result = True

    async def deploy_function(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        if self.deploy_error is not None:
            raise self.deploy_error
        return DeploymentResult(
            id=f"{self.provider.value}-{request.name}",
            name=request.name,
            type="function",
            region=request.region,
            status="active",
            url=f"https://{request.name}.example.test",
        )

    async def list_resources(self) -> List[CloudResource]:
        self.list_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if callable(self.resources):
            return self.resources()
        return list(self.resources)

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        return ResourceStatus(status="running", provider=self.provider, details={"id": resource_id})

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        self.deleted.append(resource_id)
        return True

    async def verify_connection(self) -> bool:
        if not self.verify_result:
            self.last_error = "Connection refused"
        return self.verify_result


def make_resource(provider: CloudProvider, resource_id: str, **overrides: Any) -> CloudResource:
    data: Dict[str, Any] = {
        "id": resource_id,
        "name": f"instantiate-{resource_id}",
        "type": "function",
        "provider": provider,
        "region": "test-region-1",
        "status": "active",
    }
    data.update(overrides)
    return CloudResource(**data)

