import io
import zipfile
from typing import Any, Dict, List

import structlog

from app.schemas.multi_cloud import (
    CloudResource,
    CodeType,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import PLATFORM_NAME_MARKER, parse_timestamp, unique_name
from app.shared.adapters.rest import RestProviderAdapter
from app.shared.core.exceptions import UnsupportedServiceError
from app.shared.core.provider import CloudProvider

logger = structlog.get_logger()


def build_site_archive(request: UnifiedDeploymentRequest) -> bytes:
    """Zip containing the request code as index.html."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("index.html", request.code)
    return buffer.getvalue()


class NetlifyAdapter(RestProviderAdapter):
    """
    Netlify static sites: create a site, then push a zip deploy of index.html.
    Netlify has no tags, so site names carry the platform prefix instead.
    """

    provider = CloudProvider.NETLIFY
    BASE_URL = "https://api.netlify.com/api/v1"
    SERVICES = {"static-site": "deploy_static_site"}
    REGIONS = ["global"]

    async def deploy_static_site(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        if request.code_type != CodeType.HTML:
            raise UnsupportedServiceError("Netlify static-site deploys require html code")

        creds = self._require_credentials()
        site_name = f"{PLATFORM_NAME_MARKER}-{unique_name(request.name)}"[:63]
        site = (await self._request("POST", "/sites", creds=creds, json={"name": site_name})).json()
        deploy = (
            await self._request(
                "POST",
                f"/sites/{site['id']}/deploys",
                creds=creds,
                content=build_site_archive(request),
                headers={"Content-Type": "application/zip"},
            )
        ).json()

        url = site.get("ssl_url") or site.get("url") or deploy.get("ssl_url")
        return DeploymentResult(
            id=site["id"],
            name=site.get("name", site_name),
            type="static-site",
            region="global",
            status=deploy.get("state", "uploading"),
            url=url,
            created_at=parse_timestamp(site.get("created_at")),
            logs=[f"Netlify site {site_name} deploy {deploy.get('id')} submitted"],
            deploy_id=deploy.get("id"),
        )

    async def list_resources(self) -> List[CloudResource]:
        response = await self._request("GET", "/sites", params={"filter": "all", "per_page": 100})
        return [
            self._to_resource(site)
            for site in response.json()
            if self.is_platform_resource(name=site.get("name"))
        ]

    def _to_resource(self, site: Dict[str, Any]) -> CloudResource:
        published = site.get("published_deploy") or {}
        return CloudResource(
            id=site["id"],
            name=site.get("name", site["id"]),
            type="static-site",
            provider=self.provider,
            region="global",
            status=published.get("state") or site.get("state") or "unknown",
            url=site.get("ssl_url") or site.get("url"),
            created_at=parse_timestamp(site.get("created_at")),
        )

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        site = (await self._request("GET", f"/sites/{resource_id}")).json()
        published = site.get("published_deploy") or {}
        return ResourceStatus(
            status=published.get("state") or site.get("state") or "unknown",
            provider=self.provider,
            details={"url": site.get("ssl_url") or site.get("url"), "updatedAt": site.get("updated_at")},
        )

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        await self._request("DELETE", f"/sites/{resource_id}")
        return True

    async def verify_connection(self) -> bool:
        self._clear_last_error()
        try:
            await self._request("GET", "/user")
            return True
        except Exception as e:
            self._set_last_error_from_exception(e, prefix="Netlify verification failed")
            logger.error("netlify_verify_failed", error=str(e))
            return False
