"""
Typed Credential Classes
Standardizes cloud provider credentials into Pydantic models.
This decouples adapters from the credential store and ensures strict validation.
"""
from typing import Any, Dict, NamedTuple, Optional, Type

from pydantic import BaseModel, Field, SecretStr

from app.shared.core.config import Settings
from app.shared.core.provider import CloudProvider


class CloudCredentials(BaseModel):
    """Base class for all cloud credentials."""

    def to_blob(self) -> Dict[str, Any]:
        """Plain dict with secrets unwrapped, ready for encryption."""
        blob: Dict[str, Any] = {}
        for name, value in self.model_dump(exclude_none=True).items():
            blob[name] = value.get_secret_value() if isinstance(value, SecretStr) else value
        return blob


class AWSCredentials(CloudCredentials):
    """Static IAM access key pair."""
    access_key_id: str = Field(..., min_length=16)
    secret_access_key: SecretStr
    region: str = "us-east-1"
    lambda_execution_role: Optional[str] = None
    endpoint_url: Optional[str] = None


class AzureCredentials(CloudCredentials):
    """Azure Service Principal Credentials."""
    tenant_id: str
    client_id: str
    subscription_id: str
    client_secret: SecretStr


class GCPCredentials(CloudCredentials):
    """GCP Service Account."""
    project_id: str
    service_account_json: Optional[SecretStr] = None


class TokenCredentials(CloudCredentials):
    """Personal access token for token-authenticated REST APIs."""
    token: SecretStr


class IBMCredentials(CloudCredentials):
    api_key: SecretStr
    region: str = "us-south"
    namespace: str = "default"


class TencentCredentials(CloudCredentials):
    secret_id: str
    secret_key: SecretStr
    region: str = "ap-guangzhou"


class HuaweiCredentials(CloudCredentials):
    access_key: str
    secret_key: SecretStr
    project_id: Optional[str] = None
    region: str = "cn-north-4"


class AlibabaCredentials(CloudCredentials):
    access_key_id: str
    access_key_secret: SecretStr
    region: str = "cn-hangzhou"


class OracleCredentials(CloudCredentials):
    tenancy_ocid: str
    user_ocid: str
    fingerprint: str
    private_key: SecretStr
    region: str = "us-ashburn-1"


CREDENTIAL_MODELS: Dict[CloudProvider, Type[CloudCredentials]] = {
    CloudProvider.AWS: AWSCredentials,
    CloudProvider.AZURE: AzureCredentials,
    CloudProvider.GCP: GCPCredentials,
    CloudProvider.DIGITALOCEAN: TokenCredentials,
    CloudProvider.LINODE: TokenCredentials,
    CloudProvider.NETLIFY: TokenCredentials,
    CloudProvider.IBM: IBMCredentials,
    CloudProvider.TENCENT: TencentCredentials,
    CloudProvider.HUAWEI: HuaweiCredentials,
    CloudProvider.ALIBABA: AlibabaCredentials,
    CloudProvider.ORACLE: OracleCredentials,
}


class EnvVarBinding(NamedTuple):
    provider: CloudProvider
    field: str
    is_secret: bool


# Environment variable name -> credential field it populates
ENV_VAR_BINDINGS: Dict[str, EnvVarBinding] = {
    "AWS_ACCESS_KEY_ID": EnvVarBinding(CloudProvider.AWS, "access_key_id", True),
    "AWS_SECRET_ACCESS_KEY": EnvVarBinding(CloudProvider.AWS, "secret_access_key", True),
    "AWS_DEFAULT_REGION": EnvVarBinding(CloudProvider.AWS, "region", False),
    "AWS_LAMBDA_EXECUTION_ROLE": EnvVarBinding(CloudProvider.AWS, "lambda_execution_role", False),
    "AWS_ENDPOINT_URL": EnvVarBinding(CloudProvider.AWS, "endpoint_url", False),
    "AZURE_SUBSCRIPTION_ID": EnvVarBinding(CloudProvider.AZURE, "subscription_id", False),
    "AZURE_TENANT_ID": EnvVarBinding(CloudProvider.AZURE, "tenant_id", True),
    "AZURE_CLIENT_ID": EnvVarBinding(CloudProvider.AZURE, "client_id", True),
    "AZURE_CLIENT_SECRET": EnvVarBinding(CloudProvider.AZURE, "client_secret", True),
    "GOOGLE_CLOUD_PROJECT_ID": EnvVarBinding(CloudProvider.GCP, "project_id", False),
    "GOOGLE_APPLICATION_CREDENTIALS_JSON": EnvVarBinding(CloudProvider.GCP, "service_account_json", True),
    "DIGITALOCEAN_TOKEN": EnvVarBinding(CloudProvider.DIGITALOCEAN, "token", True),
    "LINODE_TOKEN": EnvVarBinding(CloudProvider.LINODE, "token", True),
    "NETLIFY_ACCESS_TOKEN": EnvVarBinding(CloudProvider.NETLIFY, "token", True),
    "IBM_CLOUD_API_KEY": EnvVarBinding(CloudProvider.IBM, "api_key", True),
    "IBM_CLOUD_REGION": EnvVarBinding(CloudProvider.IBM, "region", False),
    "IBM_CLOUD_NAMESPACE": EnvVarBinding(CloudProvider.IBM, "namespace", False),
    "TENCENT_SECRET_ID": EnvVarBinding(CloudProvider.TENCENT, "secret_id", True),
    "TENCENT_SECRET_KEY": EnvVarBinding(CloudProvider.TENCENT, "secret_key", True),
    "TENCENT_REGION": EnvVarBinding(CloudProvider.TENCENT, "region", False),
    "HUAWEI_ACCESS_KEY": EnvVarBinding(CloudProvider.HUAWEI, "access_key", True),
    "HUAWEI_SECRET_KEY": EnvVarBinding(CloudProvider.HUAWEI, "secret_key", True),
    "HUAWEI_PROJECT_ID": EnvVarBinding(CloudProvider.HUAWEI, "project_id", False),
    "HUAWEI_REGION": EnvVarBinding(CloudProvider.HUAWEI, "region", False),
    "ALIBABA_ACCESS_KEY_ID": EnvVarBinding(CloudProvider.ALIBABA, "access_key_id", True),
    "ALIBABA_ACCESS_KEY_SECRET": EnvVarBinding(CloudProvider.ALIBABA, "access_key_secret", True),
    "ALIBABA_REGION": EnvVarBinding(CloudProvider.ALIBABA, "region", False),
    "ORACLE_TENANCY_OCID": EnvVarBinding(CloudProvider.ORACLE, "tenancy_ocid", True),
    "ORACLE_USER_OCID": EnvVarBinding(CloudProvider.ORACLE, "user_ocid", True),
    "ORACLE_FINGERPRINT": EnvVarBinding(CloudProvider.ORACLE, "fingerprint", True),
    "ORACLE_PRIVATE_KEY": EnvVarBinding(CloudProvider.ORACLE, "private_key", True),
    "ORACLE_REGION": EnvVarBinding(CloudProvider.ORACLE, "region", False),
}

# A provider is only bootstrapped from the environment when these are present
_REQUIRED_ENV_VARS: Dict[CloudProvider, tuple[str, ...]] = {
    CloudProvider.AWS: ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"),
    CloudProvider.AZURE: (
        "AZURE_SUBSCRIPTION_ID",
        "AZURE_TENANT_ID",
        "AZURE_CLIENT_ID",
        "AZURE_CLIENT_SECRET",
    ),
    CloudProvider.GCP: ("GOOGLE_CLOUD_PROJECT_ID",),
    CloudProvider.DIGITALOCEAN: ("DIGITALOCEAN_TOKEN",),
    CloudProvider.LINODE: ("LINODE_TOKEN",),
    CloudProvider.NETLIFY: ("NETLIFY_ACCESS_TOKEN",),
    CloudProvider.IBM: ("IBM_CLOUD_API_KEY",),
    CloudProvider.TENCENT: ("TENCENT_SECRET_ID", "TENCENT_SECRET_KEY"),
    CloudProvider.HUAWEI: ("HUAWEI_ACCESS_KEY", "HUAWEI_SECRET_KEY"),
    CloudProvider.ALIBABA: ("ALIBABA_ACCESS_KEY_ID", "ALIBABA_ACCESS_KEY_SECRET"),
    CloudProvider.ORACLE: (
        "ORACLE_TENANCY_OCID",
        "ORACLE_USER_OCID",
        "ORACLE_FINGERPRINT",
        "ORACLE_PRIVATE_KEY",
    ),
}


def parse_credentials(provider: CloudProvider, raw: Dict[str, Any]) -> CloudCredentials:
    """Validate a raw credential dict against the provider's model."""
    model = CREDENTIAL_MODELS[provider]
    return model.model_validate(raw)


def credentials_from_env_values(values: Dict[str, Optional[str]]) -> Dict[CloudProvider, Dict[str, Any]]:
    """
    Group environment-style KEY=value pairs into per-provider credential dicts.
    Unknown keys and empty values are ignored.
    """
    grouped: Dict[CloudProvider, Dict[str, Any]] = {}
    for key, value in values.items():
        binding = ENV_VAR_BINDINGS.get(key)
        if binding is None or value in (None, ""):
            continue
        grouped.setdefault(binding.provider, {})[binding.field] = value
    return grouped


def credentials_from_settings(settings: Settings) -> Dict[CloudProvider, Dict[str, Any]]:
    """Per-provider credential dicts for every provider fully configured in settings."""
    values = {key: getattr(settings, key, None) for key in ENV_VAR_BINDINGS}
    grouped = credentials_from_env_values(values)
    return {
        provider: creds
        for provider, creds in grouped.items()
        if all(values.get(key) for key in _REQUIRED_ENV_VARS[provider])
    }
