"""
Tencent Cloud Provider Adapter

Drives Serverless Cloud Function (SCF) through the Tencent Cloud API 3.0,
signing every request with TC3-HMAC-SHA256.
"""

import base64
import hashlib
import hmac
import io
import json
import time
import zipfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from app.schemas.multi_cloud import (
    CloudResource,
    CodeType,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import BaseProviderAdapter, parse_timestamp, unique_name
from app.shared.adapters.http_retry import execute_with_http_retry
from app.shared.core.credentials import TencentCredentials
from app.shared.core.exceptions import (
    AuthenticationFailedError,
    UnsupportedServiceError,
    VendorAPIError,
)
from app.shared.core.http import get_http_client
from app.shared.core.provider import CloudProvider

logger = structlog.get_logger()

SCF_HOST = "scf.tencentcloudapi.com"
SCF_SERVICE = "scf"
SCF_VERSION = "2018-04-16"
SIGNED_HEADERS = "content-type;host;x-tc-action"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"

SCF_RUNTIMES = {CodeType.JAVASCRIPT: "Nodejs16.13", CodeType.PYTHON: "Python3.7"}
SCF_HANDLER = "index.main_handler"
PAGE_SIZE = 100

# Console region ids used in SCF console deep links
CONSOLE_REGION_IDS = {
    "ap-guangzhou": "1",
    "ap-shanghai": "4",
    "ap-beijing": "8",
    "ap-singapore": "9",
    "ap-chengdu": "16",
}


def _hmac_sha256(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def sign_tc3(
    *,
    secret_id: str,
    secret_key: str,
    service: str,
    host: str,
    action: str,
    payload: str,
    timestamp: int,
) -> str:
    """Build the TC3-HMAC-SHA256 Authorization header for a JSON POST to `/`."""
    date = datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")
    canonical_headers = (
        f"content-type:{JSON_CONTENT_TYPE}\nhost:{host}\nx-tc-action:{action.lower()}\n"
    )
    canonical_request = "\n".join(
        [
            "POST",
            "/",
            "",
            canonical_headers,
            SIGNED_HEADERS,
            hashlib.sha256(payload.encode("utf-8")).hexdigest(),
        ]
    )
    credential_scope = f"{date}/{service}/tc3_request"
    string_to_sign = "\n".join(
        [
            "TC3-HMAC-SHA256",
            str(timestamp),
            credential_scope,
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ]
    )
    secret_date = _hmac_sha256(f"TC3{secret_key}".encode("utf-8"), date)
    secret_service = _hmac_sha256(secret_date, service)
    secret_signing = _hmac_sha256(secret_service, "tc3_request")
    signature = hmac.new(secret_signing, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
    return (
        f"TC3-HMAC-SHA256 Credential={secret_id}/{credential_scope}, "
        f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
    )


def _scf_time(value: Optional[str]) -> datetime:
    """SCF timestamps are `YYYY-MM-DD HH:MM:SS` in China Standard Time."""
    if not value:
        return parse_timestamp(None)
    return parse_timestamp(f"{value.replace(' ', 'T')}+08:00")


def build_function_package(request: UnifiedDeploymentRequest) -> bytes:
    """Zip an `index` module exposing `main_handler`, wrapping bare snippets."""
    if request.code_type == CodeType.PYTHON:
        filename = "index.py"
        if "def main_handler" in request.code:
            source = request.code
        else:
            body = "\n".join(f"    {line}" for line in request.code.splitlines())
            source = (
                "def main_handler(event, context):\n"
                f"{body}\n"
                f"    return {{'statusCode': 200, 'body': '{{\"message\": \"Success from {request.name}\"}}'}}\n"
            )
    else:
        filename = "index.js"
        if "exports.main_handler" in request.code:
            source = request.code
        else:
            source = (
                "exports.main_handler = async (event, context) => {\n"
                f"  {request.code}\n"
                f"  return {{ statusCode: 200, body: JSON.stringify({{ message: 'Success from {request.name}' }}) }};\n"
                "};\n"
            )
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(filename, source)
    return buffer.getvalue()


class TencentAdapter(BaseProviderAdapter):
    """Tencent Cloud SCF functions over the signed API 3.0 endpoint."""

    provider = CloudProvider.TENCENT
    SERVICES = {"scf": "deploy_scf"}
    REGIONS = list(CONSOLE_REGION_IDS)

    async def _call(
        self,
        action: str,
        params: Dict[str, Any],
        *,
        creds: Optional[TencentCredentials] = None,
        region: Optional[str] = None,
        retry: bool = True,
    ) -> Dict[str, Any]:
        creds = creds or self._require_credentials()
        payload = json.dumps(params, separators=(",", ":"))
        timestamp = int(time.time())
        headers = {
            "Authorization": sign_tc3(
                secret_id=creds.secret_id,
                secret_key=creds.secret_key.get_secret_value(),
                service=SCF_SERVICE,
                host=SCF_HOST,
                action=action,
                payload=payload,
                timestamp=timestamp,
            ),
            "Content-Type": JSON_CONTENT_TYPE,
            "Host": SCF_HOST,
            "X-TC-Action": action,
            "X-TC-Timestamp": str(timestamp),
            "X-TC-Version": SCF_VERSION,
            "X-TC-Region": region or creds.region,
        }
        url = f"https://{SCF_HOST}/"
        client = get_http_client()
        response = await execute_with_http_retry(
            request=lambda: client.post(url, content=payload.encode("utf-8"), headers=headers),
            url=url,
            provider=self.provider.value,
            error_prefix=f"Tencent Cloud {action}",
            max_retries=3 if retry else 1,
        )
        body = response.json().get("Response", {})
        error = body.get("Error")
        if error:
            code = error.get("Code", "")
            message = f"Tencent Cloud {action} failed: {code}: {error.get('Message', '')}"
            details = {"provider": self.provider.value, "code": code, "request_id": body.get("RequestId")}
            if code.startswith("AuthFailure"):
                raise AuthenticationFailedError(message, details=details)
            raise VendorAPIError(message, details=details)
        return body

    async def deploy_scf(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        runtime = SCF_RUNTIMES.get(request.code_type)
        if runtime is None:
            raise UnsupportedServiceError("Tencent SCF does not run html code")

        function_name = unique_name(request.name)[:60]
        params: Dict[str, Any] = {
            "FunctionName": function_name,
            "Runtime": runtime,
            "Handler": SCF_HANDLER,
            "Namespace": "default",
            "Code": {"ZipFile": base64.b64encode(build_function_package(request)).decode("ascii")},
            "Description": f"Deployed via {self.settings.PLATFORM_TAG_VALUE} - {request.name}",
            "Tags": [{"Key": k, "Value": v} for k, v in self.platform_tags().items()],
        }
        if request.environment_variables:
            params["Environment"] = {
                "Variables": [{"Key": k, "Value": v} for k, v in request.environment_variables.items()]
            }
        await self._call("CreateFunction", params, region=request.region, retry=False)

        return DeploymentResult(
            id=function_name,
            name=function_name,
            type="scf",
            region=request.region,
            status="creating",
            url=(
                "https://console.cloud.tencent.com/scf/list"
                f"?rid={CONSOLE_REGION_IDS.get(request.region, '1')}"
            ),
            logs=[f"Tencent SCF function {function_name} deployed successfully"],
        )

    async def list_resources(self) -> List[CloudResource]:
        creds: TencentCredentials = self._require_credentials()
        resources: List[CloudResource] = []
        offset = 0
        while True:
            body = await self._call(
                "ListFunctions",
                {
                    "Limit": PAGE_SIZE,
                    "Offset": offset,
                    "Filters": [
                        {"Name": f"tag-{k}", "Values": [v]} for k, v in self.platform_tags().items()
                    ],
                },
                creds=creds,
            )
            functions = body.get("Functions", [])
            for func in functions:
                resources.append(
                    CloudResource(
                        id=func["FunctionName"],
                        name=func["FunctionName"],
                        type="scf",
                        provider=self.provider,
                        region=creds.region,
                        status=(func.get("Status") or "unknown").lower(),
                        created_at=_scf_time(func.get("AddTime")),
                    )
                )
            offset += len(functions)
            if not functions or offset >= int(body.get("TotalCount", 0)):
                break
        return resources

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        body = await self._call("GetFunction", {"FunctionName": resource_id})
        return ResourceStatus(
            status=(body.get("Status") or "unknown").lower(),
            provider=self.provider,
            details={
                "runtime": body.get("Runtime"),
                "memorySize": body.get("MemorySize"),
                "modTime": body.get("ModTime"),
            },
        )

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        await self._call("DeleteFunction", {"FunctionName": resource_id})
        return True

    async def verify_connection(self) -> bool:
        self._clear_last_error()
        try:
            await self._call("ListFunctions", {"Limit": 1})
            return True
        except Exception as e:
            self._set_last_error_from_exception(e, prefix="Tencent Cloud verification failed")
            logger.error("tencent_verify_failed", error=str(e))
            return False
