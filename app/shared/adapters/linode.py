import base64
import secrets
from typing import Any, Dict, List

import structlog

from app.schemas.multi_cloud import (
    CloudResource,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import parse_timestamp, unique_name
from app.shared.adapters.rest import RestProviderAdapter
from app.shared.core.provider import CloudProvider

logger = structlog.get_logger()

DEFAULT_LINODE_TYPE = "g6-nanode-1"
DEFAULT_LINODE_IMAGE = "linode/ubuntu22.04"
PAGE_SIZE = 100


class LinodeAdapter(RestProviderAdapter):
    """Linode instances via the v4 REST API."""

    provider = CloudProvider.LINODE
    BASE_URL = "https://api.linode.com/v4"
    SERVICES = {"linode": "deploy_linode"}
    REGIONS = ["us-east", "us-central", "us-west", "us-southeast", "eu-west", "eu-central", "ap-south", "ap-northeast"]

    @property
    def platform_tag(self) -> str:
        return self.settings.PLATFORM_TAG_VALUE.lower()

    async def deploy_linode(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        # Labels must start with a letter and stay within 64 chars
        label = f"i-{unique_name(request.name)}"[:64]
        user_data = f"#!/bin/bash\ncat > /opt/app.src <<'INSTANTIATE_EOF'\n{request.code}\nINSTANTIATE_EOF\n"
        response = await self._request(
            "POST",
            "/linode/instances",
            json={
                "label": label,
                "region": request.region,
                "type": DEFAULT_LINODE_TYPE,
                "image": request.image or DEFAULT_LINODE_IMAGE,
                "root_pass": secrets.token_urlsafe(24),
                "tags": [self.platform_tag],
                "metadata": {"user_data": base64.b64encode(user_data.encode("utf-8")).decode("ascii")},
            },
        )
        instance = response.json()
        return DeploymentResult(
            id=str(instance["id"]),
            name=instance.get("label", label),
            type="linode",
            region=instance.get("region", request.region),
            status=instance.get("status", "provisioning"),
            url=f"https://cloud.linode.com/linodes/{instance['id']}",
            created_at=parse_timestamp(instance.get("created")),
            logs=[f"Linode instance {label} creation initiated"],
        )

    async def list_resources(self) -> List[CloudResource]:
        creds = self._require_credentials()
        resources: List[CloudResource] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                "/linode/instances",
                creds=creds,
                params={"page": page, "page_size": PAGE_SIZE},
            )
            payload = response.json()
            for instance in payload.get("data", []):
                tags = [t.lower() for t in instance.get("tags", [])]
                if self.platform_tag in tags or self.is_platform_resource(name=instance.get("label")):
                    resources.append(self._to_resource(instance))
            if page >= int(payload.get("pages", 1)):
                break
            page += 1
        return resources

    def _to_resource(self, instance: Dict[str, Any]) -> CloudResource:
        ipv4 = instance.get("ipv4") or []
        return CloudResource(
            id=str(instance["id"]),
            name=instance.get("label", str(instance["id"])),
            type="linode",
            provider=self.provider,
            region=instance.get("region", "unknown"),
            status=instance.get("status", "unknown"),
            url=f"http://{ipv4[0]}" if ipv4 else None,
            created_at=parse_timestamp(instance.get("created")),
        )

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        response = await self._request("GET", f"/linode/instances/{resource_id}")
        instance = response.json()
        return ResourceStatus(
            status=instance.get("status", "unknown"),
            provider=self.provider,
            details={"region": instance.get("region"), "ipv4": instance.get("ipv4", [])},
        )

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        await self._request("DELETE", f"/linode/instances/{resource_id}")
        return True

    async def verify_connection(self) -> bool:
        self._clear_last_error()
        try:
            await self._request("GET", "/profile")
            return True
        except Exception as e:
            self._set_last_error_from_exception(e, prefix="Linode verification failed")
            logger.error("linode_verify_failed", error=str(e))
            return False
