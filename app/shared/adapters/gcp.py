import asyncio
import json
import re
from typing import Any, Dict, List, Optional

import structlog
from google.api_core.exceptions import DeadlineExceeded, GoogleAPIError, ServiceUnavailable
from google.auth.credentials import Credentials as GoogleCredentials
from google.auth.exceptions import GoogleAuthError
from google.cloud import asset_v1, compute_v1
from google.oauth2 import service_account
from opentelemetry import trace

from app.schemas.multi_cloud import (
    CloudResource,
    CodeType,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import BaseProviderAdapter, parse_timestamp, unique_name
from app.shared.core.credentials import GCPCredentials
from app.shared.core.exceptions import ConfigurationError, CredentialsMissingError, VendorAPIError
from app.shared.core.provider import CloudProvider
from app.shared.core.retry import sdk_retry

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

# Retry decorator for GCP transient failures
gcp_retry = sdk_retry(ServiceUnavailable, DeadlineExceeded)

# Project ID format validation
PROJECT_ID_PATTERN = re.compile(r"^[a-z][a-z0-9\-]{4,28}[a-z0-9]$")
ZONE_PATTERN = re.compile(r"^[a-z]+-[a-z]+\d+-[a-z]$")

INSTANCE_ASSET_TYPE = "compute.googleapis.com/Instance"
DEFAULT_MACHINE_TYPE = "e2-micro"
DEFAULT_SOURCE_IMAGE = "projects/debian-cloud/global/images/family/debian-12"
OPERATION_TIMEOUT_SECONDS = 300


def validate_project_id(project_id: str) -> bool:
    """Validate GCP project ID format."""
    return bool(PROJECT_ID_PATTERN.match(project_id))


def zone_for(region: str) -> str:
    """Accept either a zone (`us-central1-a`) or a region (`us-central1` -> `us-central1-a`)."""
    return region if ZONE_PATTERN.match(region) else f"{region}-a"


class GCPAdapter(BaseProviderAdapter):
    """
    Google Cloud Platform adapter: Compute Engine for deployment and
    Cloud Asset Inventory for discovery.

    The Google client libraries are blocking, so every call runs in a worker
    thread.
    """

    provider = CloudProvider.GCP
    SERVICES = {"compute": "deploy_compute_instance"}
    REGIONS = ["us-central1", "us-east1", "us-west1", "europe-west1", "europe-west2", "asia-east1", "asia-southeast1"]

    def _load(self) -> tuple[GCPCredentials, Optional[GoogleCredentials]]:
        creds: GCPCredentials = self._require_credentials()

        # Fail-fast validation of project ID format
        if not validate_project_id(creds.project_id):
            logger.error("gcp_invalid_project_id", project_id=creds.project_id)
            raise ConfigurationError(
                f"Invalid GCP project ID format: '{creds.project_id}'. "
                "Must be 6-30 lowercase letters, digits, or hyphens."
            )

        google_creds: Optional[GoogleCredentials] = None
        if creds.service_account_json:
            try:
                info = json.loads(creds.service_account_json.get_secret_value())
                google_creds = service_account.Credentials.from_service_account_info(info)
            except (ValueError, KeyError) as e:
                logger.error("gcp_credentials_load_error", error=str(e))
                raise ConfigurationError(f"Invalid GCP service account JSON: {e}") from e
        # None falls back to application default credentials
        return creds, google_creds

    def _labels(self) -> Dict[str, str]:
        # GCP label keys and values must be lowercase
        return {k.lower(): v.lower() for k, v in self.platform_tags().items()}

    def _is_labeled(self, labels: Optional[Dict[str, Any]], name: Optional[str]) -> bool:
        expected = self._labels()
        if labels and all(str(labels.get(k, "")).lower() == v for k, v in expected.items()):
            return True
        return self.is_platform_resource(name=name)

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    async def deploy_compute_instance(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        creds, google_creds = self._load()
        zone = zone_for(request.region)
        instance_name = unique_name(request.name)[:63]

        instance = compute_v1.Instance(
            name=instance_name,
            machine_type=f"zones/{zone}/machineTypes/{DEFAULT_MACHINE_TYPE}",
            labels=self._labels(),
            disks=[
                compute_v1.AttachedDisk(
                    boot=True,
                    auto_delete=True,
                    initialize_params=compute_v1.AttachedDiskInitializeParams(
                        source_image=request.image or DEFAULT_SOURCE_IMAGE,
                        disk_size_gb=10,
                    ),
                )
            ],
            network_interfaces=[
                compute_v1.NetworkInterface(
                    name="global/networks/default",
                    access_configs=[compute_v1.AccessConfig(name="External NAT", type_="ONE_TO_ONE_NAT")],
                )
            ],
            metadata=compute_v1.Metadata(
                items=[compute_v1.Items(key="startup-script", value=self._startup_script(request))]
            ),
        )

        def _insert() -> None:
            client = compute_v1.InstancesClient(credentials=google_creds)
            operation = client.insert(project=creds.project_id, zone=zone, instance_resource=instance)
            operation.result(timeout=OPERATION_TIMEOUT_SECONDS)

        with tracer.start_as_current_span("gcp_deploy_compute") as span:
            span.set_attribute("project_id", creds.project_id)
            span.set_attribute("zone", zone)
            try:
                await asyncio.to_thread(_insert)
            except GoogleAPIError as e:
                raise self._vendor_error("Compute Engine deployment", e) from e

        return DeploymentResult(
            id=f"projects/{creds.project_id}/zones/{zone}/instances/{instance_name}",
            name=instance_name,
            type="compute-instance",
            region=zone,
            status="provisioning",
            url=(
                "https://console.cloud.google.com/compute/instancesDetail/zones/"
                f"{zone}/instances/{instance_name}?project={creds.project_id}"
            ),
            logs=[f"GCP Compute Engine instance {instance_name} created in {zone}"],
            project_id=creds.project_id,
        )

    @staticmethod
    def _startup_script(request: UnifiedDeploymentRequest) -> str:
        if request.code_type == CodeType.HTML:
            return (
                "#!/bin/bash\n"
                "apt-get update && apt-get install -y nginx\n"
                "cat > /var/www/html/index.html <<'INSTANTIATE_EOF'\n"
                f"{request.code}\n"
                "INSTANTIATE_EOF\n"
            )
        return f"#!/bin/bash\ncat > /opt/app.src <<'INSTANTIATE_EOF'\n{request.code}\nINSTANTIATE_EOF\n"

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @gcp_retry
    async def list_resources(self) -> List[CloudResource]:
        creds, google_creds = self._load()

        def _list() -> List[Any]:
            client = asset_v1.AssetServiceClient(credentials=google_creds)
            response = client.list_assets(
                request={
                    "parent": f"projects/{creds.project_id}",
                    "asset_types": [INSTANCE_ASSET_TYPE],
                    "content_type": asset_v1.ContentType.RESOURCE,
                }
            )
            return list(response)

        with tracer.start_as_current_span("gcp_list_resources") as span:
            span.set_attribute("project_id", creds.project_id)
            try:
                assets = await asyncio.to_thread(_list)
            except (ServiceUnavailable, DeadlineExceeded):
                raise
            except GoogleAPIError as e:
                raise self._vendor_error("resource discovery", e) from e

        resources: List[CloudResource] = []
        for asset in assets:
            try:
                resource = self._asset_to_resource(asset)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("gcp_asset_skipped", asset=getattr(asset, "name", None), error=str(e))
                continue
            if resource is not None:
                resources.append(resource)
        return resources

    def _asset_to_resource(self, asset: Any) -> Optional[CloudResource]:
        data = asset.resource.data
        name = asset.name.split("/")[-1]
        labels = data.get("labels") or {}
        if not self._is_labeled(dict(labels), name):
            return None
        zone = str(data.get("zone", "") or asset.resource.location or "global").split("/")[-1]
        return CloudResource(
            id=asset.name,
            name=name,
            type="compute-instance",
            provider=self.provider,
            region=zone,
            status=str(data.get("status", "unknown")).lower(),
            created_at=parse_timestamp(data.get("creationTimestamp")),
        )

    # ------------------------------------------------------------------
    # Status / delete / verify
    # ------------------------------------------------------------------

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        self._require_credentials()
        raise VendorAPIError(
            "GCP resource status lookup requires proper authentication setup",
            details={"provider": self.provider.value, "resource_id": resource_id},
        )

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        self._require_credentials()
        raise VendorAPIError(
            "GCP resource deletion requires proper authentication setup",
            details={"provider": self.provider.value, "resource_id": resource_id},
        )

    async def verify_connection(self) -> bool:
        """Verify GCP credentials with a single-page asset listing."""
        self._clear_last_error()
        try:
            creds, google_creds = self._load()

            def _list_one_asset() -> None:
                client = asset_v1.AssetServiceClient(credentials=google_creds)
                pager = client.list_assets(
                    request={"parent": f"projects/{creds.project_id}", "page_size": 1}
                )
                next(iter(pager), None)

            await asyncio.to_thread(_list_one_asset)
            return True
        except (GoogleAPIError, GoogleAuthError, ConfigurationError, CredentialsMissingError) as e:
            self._set_last_error_from_exception(e, prefix="GCP verification failed")
            logger.error("gcp_verify_failed", error=str(e))
            return False
