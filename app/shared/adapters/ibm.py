import hashlib
from datetime import datetime, timezone
import time
from typing import Any, Dict, List, Optional, Tuple

import structlog

from app.schemas.multi_cloud import (
    CloudResource,
    CodeType,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
    utcnow,
)
from app.shared.adapters.base import unique_name
from app.shared.adapters.http_retry import execute_with_http_retry
from app.shared.adapters.rest import RestProviderAdapter
from app.shared.core.credentials import IBMCredentials
from app.shared.core.exceptions import UnsupportedServiceError
from app.shared.core.http import get_http_client
from app.shared.core.provider import CloudProvider

logger = structlog.get_logger()

IAM_TOKEN_URL = "https://iam.cloud.ibm.com/identity/token"
IAM_GRANT_TYPE = "urn:ibm:params:oauth:grant-type:apikey"
# Refresh a little before IBM's own expiry
TOKEN_EXPIRY_MARGIN_SECONDS = 60

ACTION_KINDS = {CodeType.JAVASCRIPT: "nodejs:18", CodeType.PYTHON: "python:3.11"}


class IBMAdapter(RestProviderAdapter):
    """
    IBM Cloud Functions actions, authenticated with an IAM token exchanged
    from the stored API key.
    """

    provider = CloudProvider.IBM
    SERVICES = {"cloud-function": "deploy_cloud_function"}
    REGIONS = ["us-south", "us-east", "eu-gb", "eu-de", "jp-tok", "au-syd"]

    def __init__(self, store: Any):
        super().__init__(store)
        # (api key fingerprint, token, expires at epoch seconds)
        self._token: Optional[Tuple[str, str, float]] = None

    @staticmethod
    def functions_url(region: str) -> str:
        return f"https://{region}.functions.cloud.ibm.com/api/v1"

    async def _iam_token(self, creds: IBMCredentials) -> str:
        api_key = creds.api_key.get_secret_value()
        fingerprint = hashlib.sha256(api_key.encode("utf-8")).hexdigest()
        if self._token and self._token[0] == fingerprint and self._token[2] > time.time():
            return self._token[1]

        client = get_http_client()
        response = await execute_with_http_retry(
            request=lambda: client.post(
                IAM_TOKEN_URL,
                data={"grant_type": IAM_GRANT_TYPE, "apikey": api_key},
                headers={"Accept": "application/json"},
            ),
            url=IAM_TOKEN_URL,
            provider=self.provider.value,
            error_prefix="IBM Cloud IAM token exchange",
        )
        payload = response.json()
        expires_in = float(payload.get("expires_in", 3600))
        self._token = (
            fingerprint,
            payload["access_token"],
            time.time() + expires_in - TOKEN_EXPIRY_MARGIN_SECONDS,
        )
        logger.debug("ibm_iam_token_refreshed", expires_in=expires_in)
        return payload["access_token"]

    async def _actions_request(
        self, method: str, path: str, creds: IBMCredentials, **kwargs: Any
    ) -> Any:
        token = await self._iam_token(creds)
        return await self._request(
            method,
            f"/namespaces/{creds.namespace}/actions{path}",
            creds=creds,
            base_url=self.functions_url(creds.region),
            headers={"Authorization": f"Bearer {token}"},
            **kwargs,
        )

    def _auth_headers(self, creds: Any) -> Dict[str, str]:
        # Bearer token is injected per request from the IAM exchange
        return {}

    async def deploy_cloud_function(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        kind = ACTION_KINDS.get(request.code_type)
        if kind is None:
            raise UnsupportedServiceError("IBM Cloud Functions does not run html code")

        creds: IBMCredentials = self._require_credentials()
        region = request.region or creds.region
        if region != creds.region:
            creds = creds.model_copy(update={"region": region})
        action_name = unique_name(request.name)
        await self._actions_request(
            "PUT",
            f"/{action_name}",
            creds,
            params={"overwrite": "true"},
            json={
                "exec": {"kind": kind, "code": request.code},
                "parameters": [
                    {"key": k, "value": v} for k, v in (request.environment_variables or {}).items()
                ],
                "annotations": [
                    {"key": "web-export", "value": True},
                    *({"key": k, "value": v} for k, v in self.platform_tags().items()),
                ],
            },
        )
        return DeploymentResult(
            id=action_name,
            name=action_name,
            type="cloud-function",
            region=region,
            status="active",
            url=f"{self.functions_url(region)}/namespaces/{creds.namespace}/actions/{action_name}",
            logs=[f"IBM Cloud Function {action_name} deployed successfully"],
        )

    async def list_resources(self) -> List[CloudResource]:
        creds: IBMCredentials = self._require_credentials()
        response = await self._actions_request("GET", "", creds, params={"limit": 200})
        resources: List[CloudResource] = []
        for action in response.json():
            annotations = {a.get("key"): a.get("value") for a in action.get("annotations", [])}
            if not self.is_platform_resource(tags=annotations, name=action.get("name")):
                continue
            updated = action.get("updated")
            resources.append(
                CloudResource(
                    id=action["name"],
                    name=action["name"],
                    type="cloud-function",
                    provider=self.provider,
                    region=creds.region,
                    status="active",
                    url=f"{self.functions_url(creds.region)}/namespaces/{creds.namespace}/actions/{action['name']}",
                    created_at=datetime.fromtimestamp(updated / 1000, tz=timezone.utc) if updated else utcnow(),
                )
            )
        return resources

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        creds: IBMCredentials = self._require_credentials()
        action = (await self._actions_request("GET", f"/{resource_id}", creds)).json()
        return ResourceStatus(
            status="active",
            provider=self.provider,
            details={
                "namespace": action.get("namespace"),
                "version": action.get("version"),
                "kind": (action.get("exec") or {}).get("kind"),
            },
        )

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        creds: IBMCredentials = self._require_credentials()
        await self._actions_request("DELETE", f"/{resource_id}", creds)
        return True

    async def verify_connection(self) -> bool:
        """An IAM token exchange is enough to prove the API key."""
        self._clear_last_error()
        try:
            await self._iam_token(self._require_credentials())
            return True
        except Exception as e:
            self._set_last_error_from_exception(e, prefix="IBM Cloud verification failed")
            logger.error("ibm_verify_failed", error=str(e))
            return False
