from typing import Any, Dict, List

from fastapi import APIRouter, Query

from app.schemas.multi_cloud import (
    CamelModel,
    CloudResource,
    DeploymentRecord,
    DeploymentResult,
    DeploymentStats,
    DeploymentTrackerStats,
    ProviderCapabilities,
    ProviderStatus,
    ResourceStatus,
    SyncResult,
    UnifiedDeploymentRequest,
    utcnow,
)
from app.shared.core.dependencies import ManagerDep
from app.shared.core.exceptions import ResourceNotFoundError

router = APIRouter(tags=["Multi-Cloud"])


# --- Schemas ---
class DeployResponse(CamelModel):
    success: bool
    deployment: DeploymentResult
    message: str


class SyncResponse(CamelModel):
    success: bool
    message: str
    results: List[SyncResult]


class DeleteResponse(CamelModel):
    success: bool


class ResolveStuckResponse(CamelModel):
    success: bool
    resolved: int


# --- Endpoints ---


@router.post("/deploy", response_model=DeployResponse)
async def deploy(request: UnifiedDeploymentRequest, manager: ManagerDep) -> Any:
    """
    Deploy code to any registered provider through the unified request shape.
    """
    deployment = await manager.deploy_to_provider(request)
    return DeployResponse(
        success=True,
        deployment=deployment,
        message=f"Successfully deployed {request.name} to {request.provider.value.upper()}",
    )


@router.get("/resources", response_model=List[CloudResource])
async def list_resources(manager: ManagerDep, refresh: bool = Query(default=False)) -> Any:
    """All cached resources across providers, newest first."""
    return await manager.get_all_resources(force_refresh=refresh)


@router.get("/status", response_model=List[ProviderStatus])
async def provider_statuses(manager: ManagerDep) -> Any:
    return await manager.get_provider_statuses()


@router.get("/stats", response_model=DeploymentStats)
async def deployment_stats(manager: ManagerDep) -> Any:
    return await manager.get_deployment_stats()


@router.get("/providers/capabilities", response_model=List[ProviderCapabilities])
async def all_capabilities(manager: ManagerDep) -> Any:
    return manager.list_capabilities()


@router.get("/providers/{provider}/capabilities", response_model=ProviderCapabilities)
async def provider_capabilities(provider: str, manager: ManagerDep) -> Any:
    return manager.get_provider_capabilities(provider)


@router.post("/sync", response_model=SyncResponse)
async def sync_all(manager: ManagerDep) -> Any:
    """Force a refresh of every provider and report per-provider outcomes."""
    results = await manager.sync_all_providers()
    synced = sum(1 for r in results if r.success)
    return SyncResponse(
        success=True,
        message=f"Synced {synced} of {len(results)} providers",
        results=results,
    )


@router.get("/health")
async def multi_cloud_health(manager: ManagerDep) -> Dict[str, Any]:
    summary = await manager.health()
    return {
        "success": True,
        "timestamp": utcnow().isoformat(),
        "providers": {
            "connected": summary["connected"],
            "total": summary["total"],
            "percentage": summary["percentage"],
        },
        "statuses": summary["statuses"],
    }


@router.get("/resources/{provider}/{resource_id}/status", response_model=ResourceStatus)
async def resource_status(
    provider: str,
    resource_id: str,
    manager: ManagerDep,
    resource_type: str = Query(..., alias="type"),
) -> Any:
    return await manager.get_resource_status(provider, resource_id, resource_type)


@router.delete("/resources/{provider}/{resource_id}", response_model=DeleteResponse)
async def delete_resource(
    provider: str,
    resource_id: str,
    manager: ManagerDep,
    resource_type: str = Query(..., alias="type"),
) -> Any:
    success = await manager.delete_resource(provider, resource_id, resource_type)
    return DeleteResponse(success=success)


@router.get("/deployments", response_model=List[DeploymentRecord])
async def list_deployments(manager: ManagerDep) -> Any:
    return manager.tracker.all()


@router.get("/deployments/stats", response_model=DeploymentTrackerStats)
async def deployment_tracker_stats(manager: ManagerDep) -> Any:
    return manager.tracker.stats()


@router.post("/deployments/resolve-stuck", response_model=ResolveStuckResponse)
async def resolve_stuck_deployments(manager: ManagerDep) -> Any:
    """Mark deployments stuck in uploading/processing as deployed."""
    return ResolveStuckResponse(success=True, resolved=manager.tracker.resolve_stuck())


@router.get("/deployments/{deployment_id}", response_model=DeploymentRecord)
async def get_deployment(deployment_id: str, manager: ManagerDep) -> Any:
    record = manager.tracker.get(deployment_id)
    if record is None:
        raise ResourceNotFoundError(f"Deployment {deployment_id} not found")
    return record
