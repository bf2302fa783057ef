"""
Credential-checked adapters for providers without a live integration.

Alibaba Cloud, Huawei Cloud and Oracle Cloud accept and validate credentials
and take part in status fan-out, but every vendor operation reports that the
integration still needs authentication setup.
"""

from typing import List, NoReturn

import structlog

from app.schemas.multi_cloud import (
    CloudResource,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import BaseProviderAdapter
from app.shared.core.exceptions import VendorAPIError
from app.shared.core.provider import CloudProvider

logger = structlog.get_logger()


class CredentialCheckedAdapter(BaseProviderAdapter):
    """Every service key maps to `deploy_unavailable`."""

    def _unavailable(self, action: str) -> NoReturn:
        raise VendorAPIError(
            f"{self.display_name} {action} requires proper authentication setup",
            details={"provider": self.provider.value},
        )

    async def deploy_unavailable(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        self._require_credentials()
        self._unavailable(f"{request.service} deployment")

    async def list_resources(self) -> List[CloudResource]:
        self._require_credentials()
        logger.debug("provider_listing_unavailable", provider=self.provider.value)
        return []

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        self._require_credentials()
        self._unavailable("resource status lookup")

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        self._require_credentials()
        self._unavailable("resource deletion")

    async def verify_connection(self) -> bool:
        """Stored credentials pass model validation; no vendor call is made."""
        self._clear_last_error()
        try:
            self._require_credentials()
            return True
        except Exception as e:
            self._set_last_error_from_exception(e)
            return False


class AlibabaAdapter(CredentialCheckedAdapter):
    provider = CloudProvider.ALIBABA
    SERVICES = {
        "function-compute": "deploy_unavailable",
        "ecs": "deploy_unavailable",
        "oss": "deploy_unavailable",
        "container-service": "deploy_unavailable",
    }
    REGIONS = ["cn-hangzhou", "cn-shanghai", "cn-beijing", "cn-shenzhen", "ap-southeast-1"]


class HuaweiAdapter(CredentialCheckedAdapter):
    provider = CloudProvider.HUAWEI
    SERVICES = {
        "function-graph": "deploy_unavailable",
        "ecs": "deploy_unavailable",
        "obs": "deploy_unavailable",
    }
    REGIONS = ["cn-north-4", "cn-east-3", "cn-south-1", "ap-southeast-1"]


class OracleAdapter(CredentialCheckedAdapter):
    provider = CloudProvider.ORACLE
    SERVICES = {
        "function": "deploy_unavailable",
        "compute": "deploy_unavailable",
    }
    REGIONS = ["us-ashburn-1", "us-phoenix-1", "eu-frankfurt-1", "uk-london-1", "ap-tokyo-1"]
