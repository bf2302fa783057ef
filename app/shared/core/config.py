from functools import lru_cache
from threading import Lock
from typing import Optional
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for the multi-cloud manager.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "Instantiate Multi-Cloud"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False
    CORS_ORIGINS: list[str] = []

    # Resource cache and fan-out behaviour
    RESOURCE_CACHE_TTL_SECONDS: int = 300
    PROVIDER_REFRESH_TIMEOUT_SECONDS: float = 30.0
    STUCK_DEPLOYMENT_SECONDS: int = 300

    # Marker used to recognise resources created through this platform
    PLATFORM_TAG_KEY: str = "CreatedBy"
    PLATFORM_TAG_VALUE: str = "Instantiate"

    # Credential store (AES-256-CBC). Random per-process key when unset.
    CREDENTIAL_ENCRYPTION_KEY: Optional[str] = None

    # AWS
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_DEFAULT_REGION: str = "us-east-1"
    AWS_LAMBDA_EXECUTION_ROLE: Optional[str] = None
    AWS_ENDPOINT_URL: Optional[str] = None  # LocalStack / moto server

    # Azure
    AZURE_SUBSCRIPTION_ID: Optional[str] = None
    AZURE_TENANT_ID: Optional[str] = None
    AZURE_CLIENT_ID: Optional[str] = None
    AZURE_CLIENT_SECRET: Optional[str] = None

    # GCP
    GOOGLE_CLOUD_PROJECT_ID: Optional[str] = None
    GOOGLE_APPLICATION_CREDENTIALS_JSON: Optional[str] = None

    # Token-based REST providers
    DIGITALOCEAN_TOKEN: Optional[str] = None
    LINODE_TOKEN: Optional[str] = None
    NETLIFY_ACCESS_TOKEN: Optional[str] = None

    # IBM Cloud
    IBM_CLOUD_API_KEY: Optional[str] = None
    IBM_CLOUD_REGION: str = "us-south"
    IBM_CLOUD_NAMESPACE: str = "default"

    # Tencent Cloud
    TENCENT_SECRET_ID: Optional[str] = None
    TENCENT_SECRET_KEY: Optional[str] = None
    TENCENT_REGION: str = "ap-guangzhou"

    # Huawei Cloud
    HUAWEI_ACCESS_KEY: Optional[str] = None
    HUAWEI_SECRET_KEY: Optional[str] = None
    HUAWEI_PROJECT_ID: Optional[str] = None
    HUAWEI_REGION: str = "cn-north-4"

    # Alibaba Cloud
    ALIBABA_ACCESS_KEY_ID: Optional[str] = None
    ALIBABA_ACCESS_KEY_SECRET: Optional[str] = None
    ALIBABA_REGION: str = "cn-hangzhou"

    # Oracle Cloud
    ORACLE_TENANCY_OCID: Optional[str] = None
    ORACLE_USER_OCID: Optional[str] = None
    ORACLE_FINGERPRINT: Optional[str] = None
    ORACLE_PRIVATE_KEY: Optional[str] = None
    ORACLE_REGION: str = "us-ashburn-1"

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation, grouped by concern."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        if self.TESTING:
            return self

        self._validate_cache_config()
        self._validate_core_secrets()
        return self

    def _validate_cache_config(self) -> None:
        if self.RESOURCE_CACHE_TTL_SECONDS < 0:
            raise ValueError("RESOURCE_CACHE_TTL_SECONDS must be >= 0.")
        if self.PROVIDER_REFRESH_TIMEOUT_SECONDS <= 0:
            raise ValueError("PROVIDER_REFRESH_TIMEOUT_SECONDS must be > 0.")
        if self.STUCK_DEPLOYMENT_SECONDS < 0:
            raise ValueError("STUCK_DEPLOYMENT_SECONDS must be >= 0.")

    def _validate_core_secrets(self) -> None:
        if not self.is_production:
            return
        key = self.CREDENTIAL_ENCRYPTION_KEY
        if not key or len(key) < 32:
            raise ValueError(
                "CREDENTIAL_ENCRYPTION_KEY must be set to a secure value (>= 32 chars) in production."
            )

    @property
    def is_production(self) -> bool:
        """True only when ENVIRONMENT is explicitly set to 'production'."""
        return self.ENVIRONMENT == ENV_PRODUCTION
