from typing import Any, Dict, List

import structlog
from fastapi import APIRouter
from pydantic import Field

from app.schemas.multi_cloud import (
    CamelModel,
    ConnectionTestResult,
    CredentialUpdateResult,
    EnvironmentVariable,
    ProviderStatus,
)
from app.shared.core.credentials import ENV_VAR_BINDINGS, credentials_from_env_values
from app.shared.core.dependencies import ManagerDep, StoreDep
from app.shared.core.exceptions import CredentialsMissingError
from app.shared.core.provider import CloudProvider
from app.shared.core.security import MASK

logger = structlog.get_logger()
router = APIRouter(tags=["Credentials"])


# --- Schemas ---
class CredentialsBody(CamelModel):
    credentials: Dict[str, Any]


class ConnectionTestBody(CamelModel):
    provider: str


class ProviderStatusResponse(CamelModel):
    success: bool
    statuses: List[ProviderStatus]


class EnvVarsBody(CamelModel):
    env_vars: List[EnvironmentVariable] = Field(default_factory=list)


class EnvVarsResponse(CamelModel):
    success: bool
    updated: List[CloudProvider]
    errors: Dict[str, str] = Field(default_factory=dict)


# --- Endpoints ---


@router.post("/credentials/{provider}", response_model=CredentialUpdateResult)
async def update_credentials(provider: str, body: CredentialsBody, manager: ManagerDep) -> Any:
    """
    Replace the stored credentials for one provider.

    The payload is validated against the provider's credential fields before
    it is encrypted; cached resources for the provider are discarded.
    """
    return manager.set_provider_credentials(provider, body.credentials)


@router.post("/test-connection", response_model=ConnectionTestResult)
async def test_connection(body: ConnectionTestBody, manager: ManagerDep) -> Any:
    return await manager.test_provider_connection(body.provider)


@router.get("/provider-status", response_model=ProviderStatusResponse)
async def provider_status(manager: ManagerDep) -> Any:
    statuses = await manager.get_provider_statuses()
    return ProviderStatusResponse(success=True, statuses=statuses)


@router.get("/env-vars", response_model=List[EnvironmentVariable])
async def list_env_vars(store: StoreDep) -> Any:
    """Environment-style view of stored credentials; secret values are masked."""
    variables: List[EnvironmentVariable] = []
    for key, binding in ENV_VAR_BINDINGS.items():
        blob = store.get(binding.provider)
        if not blob or blob.get(binding.field) in (None, ""):
            continue
        value = MASK if binding.is_secret else str(blob[binding.field])
        variables.append(
            EnvironmentVariable(
                id=key.lower(),
                key=key,
                value=value,
                is_secret=binding.is_secret,
                provider=binding.provider,
            )
        )
    return variables


@router.post("/env-vars", response_model=EnvVarsResponse)
async def save_env_vars(body: EnvVarsBody, manager: ManagerDep, store: StoreDep) -> Any:
    """
    Apply environment-style variables to the credential store.

    Values are merged over what is already stored, so a client can send one
    changed key. Masked values echoed back from GET are ignored.
    """
    values = {v.key: v.value for v in body.env_vars if v.value != MASK}
    grouped = credentials_from_env_values(values)

    updated: List[CloudProvider] = []
    errors: Dict[str, str] = {}
    for provider, fields in grouped.items():
        merged = {**(store.get(provider) or {}), **fields}
        try:
            manager.set_provider_credentials(provider, merged)
        except CredentialsMissingError as e:
            logger.warning("env_vars_rejected", provider=provider.value, error=e.message)
            errors[provider.value] = e.message
            continue
        updated.append(provider)

    return EnvVarsResponse(success=not errors, updated=updated, errors=errors)
