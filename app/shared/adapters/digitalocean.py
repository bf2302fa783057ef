from typing import Any, Dict, List, Optional

import structlog

from app.schemas.multi_cloud import (
    CloudResource,
    CodeType,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import parse_timestamp, unique_name
from app.shared.adapters.rest import RestProviderAdapter
from app.shared.core.provider import CloudProvider

logger = structlog.get_logger()

DEFAULT_DROPLET_SIZE = "s-1vcpu-1gb"
DEFAULT_DROPLET_IMAGE = "ubuntu-22-04-x64"
PAGE_SIZE = 200


class DigitalOceanAdapter(RestProviderAdapter):
    """DigitalOcean Droplets via the v2 REST API."""

    provider = CloudProvider.DIGITALOCEAN
    BASE_URL = "https://api.digitalocean.com/v2"
    SERVICES = {"droplet": "deploy_droplet"}
    REGIONS = ["nyc1", "nyc3", "sfo3", "ams3", "sgp1", "lon1", "fra1", "tor1", "blr1"]

    @property
    def platform_tag(self) -> str:
        # Droplet tags are plain strings
        return f"{self.settings.PLATFORM_TAG_KEY}:{self.settings.PLATFORM_TAG_VALUE}".lower()

    async def deploy_droplet(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        name = unique_name(request.name)
        response = await self._request(
            "POST",
            "/droplets",
            json={
                "name": name,
                "region": request.region,
                "size": DEFAULT_DROPLET_SIZE,
                "image": request.image or DEFAULT_DROPLET_IMAGE,
                "user_data": self._user_data(request),
                "tags": [self.platform_tag],
            },
        )
        droplet = response.json()["droplet"]
        return DeploymentResult(
            id=str(droplet["id"]),
            name=droplet.get("name", name),
            type="droplet",
            region=request.region,
            status=droplet.get("status", "new"),
            url=f"https://cloud.digitalocean.com/droplets/{droplet['id']}",
            created_at=parse_timestamp(droplet.get("created_at")),
            logs=[f"DigitalOcean droplet {name} creation initiated"],
        )

    @staticmethod
    def _user_data(request: UnifiedDeploymentRequest) -> str:
        if request.code_type == CodeType.HTML:
            return (
                "#!/bin/bash\n"
                "apt-get update && apt-get install -y nginx\n"
                "cat > /var/www/html/index.html <<'INSTANTIATE_EOF'\n"
                f"{request.code}\n"
                "INSTANTIATE_EOF\n"
                "systemctl enable --now nginx\n"
            )
        return f"#!/bin/bash\ncat > /opt/app.src <<'INSTANTIATE_EOF'\n{request.code}\nINSTANTIATE_EOF\n"

    async def list_resources(self) -> List[CloudResource]:
        creds = self._require_credentials()
        resources: List[CloudResource] = []
        page = 1
        while True:
            response = await self._request(
                "GET",
                "/droplets",
                creds=creds,
                params={"tag_name": self.platform_tag, "per_page": PAGE_SIZE, "page": page},
            )
            payload = response.json()
            for droplet in payload.get("droplets", []):
                resources.append(self._to_resource(droplet))
            if not payload.get("links", {}).get("pages", {}).get("next"):
                break
            page += 1
        return resources

    def _to_resource(self, droplet: Dict[str, Any]) -> CloudResource:
        size = droplet.get("size") or {}
        return CloudResource(
            id=str(droplet["id"]),
            name=droplet.get("name", str(droplet["id"])),
            type="droplet",
            provider=self.provider,
            region=(droplet.get("region") or {}).get("slug", "unknown"),
            status=droplet.get("status", "unknown"),
            cost=size.get("price_monthly"),
            url=self._public_url(droplet),
            created_at=parse_timestamp(droplet.get("created_at")),
        )

    @staticmethod
    def _public_url(droplet: Dict[str, Any]) -> Optional[str]:
        for network in (droplet.get("networks") or {}).get("v4", []):
            if network.get("type") == "public":
                return f"http://{network['ip_address']}"
        return None

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        response = await self._request("GET", f"/droplets/{resource_id}")
        droplet = response.json()["droplet"]
        return ResourceStatus(
            status=droplet.get("status", "unknown"),
            provider=self.provider,
            details={
                "region": (droplet.get("region") or {}).get("slug"),
                "url": self._public_url(droplet),
                "memory": droplet.get("memory"),
                "vcpus": droplet.get("vcpus"),
            },
        )

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        await self._request("DELETE", f"/droplets/{resource_id}")
        return True

    async def verify_connection(self) -> bool:
        self._clear_last_error()
        try:
            await self._request("GET", "/account")
            return True
        except Exception as e:
            self._set_last_error_from_exception(e, prefix="DigitalOcean verification failed")
            logger.error("digitalocean_verify_failed", error=str(e))
            return False
