from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Tuple

import structlog
from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ResourceNotFoundError as AzureResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity.aio import ClientSecretCredential
from azure.mgmt.containerinstance.aio import ContainerInstanceManagementClient
from azure.mgmt.containerinstance.models import (
    Container,
    ContainerGroup,
    ContainerPort,
    EnvironmentVariable as ContainerEnvironmentVariable,
    IpAddress,
    Port,
    ResourceRequests,
    ResourceRequirements,
)
from azure.mgmt.resource.resources.aio import ResourceManagementClient

from app.schemas.multi_cloud import (
    CloudResource,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import BaseProviderAdapter, unique_name
from app.shared.core.credentials import AzureCredentials
from app.shared.core.exceptions import CredentialsMissingError
from app.shared.core.provider import CloudProvider
from app.shared.core.retry import sdk_retry

logger = structlog.get_logger()

# Retry decorator for Azure transient failures
azure_retry = sdk_retry(ServiceRequestError, ServiceResponseError)

DEFAULT_CONTAINER_IMAGE = "mcr.microsoft.com/azuredocs/aci-helloworld"
DEFAULT_CONTAINER_CPU = 1.0
DEFAULT_CONTAINER_MEMORY_GB = 1.5


def parse_container_group_id(resource_id: str) -> Tuple[str, str]:
    """
    (resource_group, name) from an ARM id, or from the `<group>/<name>` short form.
    """
    parts = [p for p in resource_id.split("/") if p]
    lowered = [p.lower() for p in parts]
    if "resourcegroups" in lowered and "containergroups" in lowered:
        group = parts[lowered.index("resourcegroups") + 1]
        name = parts[lowered.index("containergroups") + 1]
        return group, name
    if len(parts) == 2:
        return parts[0], parts[1]
    raise ValueError(f"Unrecognized Azure container group id: {resource_id}")


class AzureAdapter(BaseProviderAdapter):
    """
    Azure adapter using the official async management SDKs with a Service Principal.
    """

    provider = CloudProvider.AZURE
    SERVICES = {"resource_group": "deploy_resource_group", "container": "deploy_container"}
    REGIONS = ["eastus", "eastus2", "westus", "westus2", "centralus", "northeurope", "westeurope", "southeastasia"]

    def _credential(self, creds: AzureCredentials) -> ClientSecretCredential:
        return ClientSecretCredential(
            tenant_id=creds.tenant_id,
            client_id=creds.client_id,
            client_secret=creds.client_secret.get_secret_value(),
        )

    @asynccontextmanager
    async def _resource_client(self) -> AsyncIterator[ResourceManagementClient]:
        creds: AzureCredentials = self._require_credentials()
        async with self._credential(creds) as credential:
            async with ResourceManagementClient(
                credential=credential, subscription_id=creds.subscription_id
            ) as client:
                yield client

    @asynccontextmanager
    async def _container_client(self) -> AsyncIterator[ContainerInstanceManagementClient]:
        creds: AzureCredentials = self._require_credentials()
        async with self._credential(creds) as credential:
            async with ContainerInstanceManagementClient(
                credential=credential, subscription_id=creds.subscription_id
            ) as client:
                yield client

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    async def deploy_resource_group(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        group_name = request.resource_group or unique_name(request.name)
        try:
            async with self._resource_client() as client:
                group = await client.resource_groups.create_or_update(
                    group_name,
                    {"location": request.region, "tags": self.platform_tags()},
                )
        except HttpResponseError as e:
            raise self._vendor_error("resource group creation", e) from e

        return DeploymentResult(
            id=group.id,
            name=group.name,
            type="resource-group",
            region=group.location,
            status=(group.properties.provisioning_state if group.properties else None) or "Succeeded",
            url=f"https://portal.azure.com/#resource{group.id}",
            logs=[f"Azure resource group {group.name} created in {group.location}"],
        )

    async def deploy_container(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        group_name = request.resource_group or f"{unique_name(request.name)}-rg"
        container_name = unique_name(request.name)[:63]
        ports = request.ports or [80]
        env = [
            ContainerEnvironmentVariable(name=key, value=value)
            for key, value in (request.environment_variables or {}).items()
        ]
        container_group = ContainerGroup(
            location=request.region,
            os_type="Linux",
            tags=self.platform_tags(),
            containers=[
                Container(
                    name=container_name,
                    image=request.image or DEFAULT_CONTAINER_IMAGE,
                    resources=ResourceRequirements(
                        requests=ResourceRequests(
                            cpu=request.cpu or DEFAULT_CONTAINER_CPU,
                            memory_in_gb=request.memory or DEFAULT_CONTAINER_MEMORY_GB,
                        )
                    ),
                    ports=[ContainerPort(port=p) for p in ports],
                    environment_variables=env,
                )
            ],
            ip_address=IpAddress(
                type="Public",
                ports=[Port(protocol="TCP", port=p) for p in ports],
                dns_name_label=container_name,
            ),
        )
        try:
            async with self._resource_client() as resources:
                await resources.resource_groups.create_or_update(
                    group_name, {"location": request.region, "tags": self.platform_tags()}
                )
            async with self._container_client() as client:
                poller = await client.container_groups.begin_create_or_update(
                    group_name, container_name, container_group
                )
                created = await poller.result()
        except HttpResponseError as e:
            raise self._vendor_error("container deployment", e) from e

        fqdn = created.ip_address.fqdn if created.ip_address else None
        return DeploymentResult(
            id=created.id,
            name=container_name,
            type="container",
            region=request.region,
            status=created.provisioning_state or "Creating",
            url=f"http://{fqdn}" if fqdn else None,
            logs=[f"Azure container group {container_name} deployed to {group_name}"],
            resource_group=group_name,
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def list_resources(self) -> List[CloudResource]:
        self._require_credentials()
        resources: List[CloudResource] = []
        for collect in (self._list_resource_groups, self._list_container_groups):
            try:
                resources.extend(await collect())
            except (HttpResponseError, ServiceRequestError, ServiceResponseError) as e:
                logger.warning("azure_list_partial_failure", collector=collect.__name__, error=str(e))
        return resources

    @azure_retry
    async def _list_resource_groups(self) -> List[CloudResource]:
        resources: List[CloudResource] = []
        async with self._resource_client() as client:
            async for group in client.resource_groups.list():
                if not self.is_platform_resource(tags=group.tags, name=group.name):
                    continue
                resources.append(
                    CloudResource(
                        id=group.id,
                        name=group.name,
                        type="resource-group",
                        provider=self.provider,
                        region=group.location,
                        status=(group.properties.provisioning_state if group.properties else None) or "unknown",
                    )
                )
        return resources

    @azure_retry
    async def _list_container_groups(self) -> List[CloudResource]:
        resources: List[CloudResource] = []
        async with self._container_client() as client:
            async for group in client.container_groups.list():
                if not self.is_platform_resource(tags=group.tags, name=group.name):
                    continue
                fqdn = group.ip_address.fqdn if group.ip_address else None
                resources.append(
                    CloudResource(
                        id=group.id,
                        name=group.name,
                        type="container",
                        provider=self.provider,
                        region=group.location,
                        status=group.provisioning_state or "unknown",
                        url=f"http://{fqdn}" if fqdn else None,
                    )
                )
        return resources

    # ------------------------------------------------------------------
    # Status / delete / verify
    # ------------------------------------------------------------------

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        try:
            if resource_type == "resource-group":
                async with self._resource_client() as client:
                    group = await client.resource_groups.get(resource_id.rstrip("/").split("/")[-1])
                state = group.properties.provisioning_state if group.properties else None
                return ResourceStatus(
                    status=state or "unknown",
                    provider=self.provider,
                    details={"location": group.location, "tags": group.tags or {}},
                )
            if resource_type == "container":
                group_name, name = parse_container_group_id(resource_id)
                async with self._container_client() as client:
                    group = await client.container_groups.get(group_name, name)
                return ResourceStatus(
                    status=group.provisioning_state or "unknown",
                    provider=self.provider,
                    details={"resourceGroup": group_name, "ip": group.ip_address.ip if group.ip_address else None},
                )
        except AzureResourceNotFoundError:
            return ResourceStatus(status="not_found", provider=self.provider)
        except (HttpResponseError, ValueError) as e:
            return ResourceStatus(status="error", provider=self.provider, details={"error": str(e)})
        return ResourceStatus(status="unknown", provider=self.provider, details={"type": resource_type})

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        try:
            if resource_type == "resource-group":
                async with self._resource_client() as client:
                    await client.resource_groups.begin_delete(resource_id.rstrip("/").split("/")[-1])
                return True
            if resource_type == "container":
                group_name, name = parse_container_group_id(resource_id)
                async with self._container_client() as client:
                    await client.container_groups.begin_delete(group_name, name)
                return True
        except AzureResourceNotFoundError:
            return False
        except (HttpResponseError, ValueError) as e:
            raise self._vendor_error(f"delete of {resource_type} {resource_id}", e) from e
        return False

    async def verify_connection(self) -> bool:
        """
        Verify Azure Service Principal credentials by attempting to list resource groups.
        """
        self._clear_last_error()
        creds: Optional[AzureCredentials] = None
        try:
            creds = self._require_credentials()
            async with self._resource_client() as client:
                async for _ in client.resource_groups.list():
                    break
            return True
        except (AzureError, CredentialsMissingError) as e:
            self._set_last_error_from_exception(e, prefix="Azure verification failed")
            logger.error(
                "azure_verify_failed",
                error=str(e),
                tenant_id=creds.tenant_id if creds else None,
            )
            return False
