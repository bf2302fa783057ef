from typing import Annotated

from fastapi import Depends, Request

from app.modules.multicloud.domain.manager import MultiCloudManager
from app.shared.core.exceptions import ConfigurationError
from app.shared.core.security import CredentialStore


def get_manager(request: Request) -> MultiCloudManager:
    """The process-wide manager built in the application lifespan."""
    manager = getattr(request.app.state, "multi_cloud_manager", None)
    if manager is None:
        raise ConfigurationError("Multi-cloud manager is not initialized", code="manager_not_ready")
    return manager


def get_credential_store(request: Request) -> CredentialStore:
    store = getattr(request.app.state, "credential_store", None)
    if store is None:
        raise ConfigurationError("Credential store is not initialized", code="store_not_ready")
    return store


ManagerDep = Annotated[MultiCloudManager, Depends(get_manager)]
StoreDep = Annotated[CredentialStore, Depends(get_credential_store)]
