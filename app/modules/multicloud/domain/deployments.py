"""
Deployment Tracker

In-memory ledger of deployments made through the manager. Deployments that
stay in an in-flight state past the stuck threshold are resolved to
`deployed`, since vendors rarely push a completion signal back.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import structlog

from app.schemas.multi_cloud import (
    DeploymentRecord,
    DeploymentState,
    DeploymentTrackerStats,
    utcnow,
)
from app.shared.core.exceptions import ResourceNotFoundError

logger = structlog.get_logger()

IN_FLIGHT_STATES = {DeploymentState.UPLOADING, DeploymentState.PROCESSING}
COMPLETED_STATES = {DeploymentState.READY, DeploymentState.DEPLOYED}

# Lowercased vendor status strings from deploy results
VENDOR_DEPLOYED = {"deployed", "succeeded", "active", "ready", "running", "available"}
VENDOR_UPLOADING = {"uploading", "uploaded", "preparing"}
VENDOR_FAILED = {"error", "failed", "canceled", "cancelled"}


def state_from_vendor_status(status: Optional[str]) -> DeploymentState:
    """Map a provider's deploy status onto the tracker's lifecycle; unknown values are in flight."""
    lowered = (status or "").lower()
    if lowered in VENDOR_DEPLOYED:
        return DeploymentState.DEPLOYED
    if lowered in VENDOR_UPLOADING:
        return DeploymentState.UPLOADING
    if lowered in VENDOR_FAILED:
        return DeploymentState.ERROR
    return DeploymentState.PROCESSING


class DeploymentTracker:
    def __init__(self, stuck_after: timedelta):
        self.stuck_after = stuck_after
        self._records: Dict[str, DeploymentRecord] = {}

    def record(self, record: DeploymentRecord) -> DeploymentRecord:
        self._records[record.id] = record
        logger.info(
            "deployment_recorded",
            deployment_id=record.id,
            provider=record.provider.value,
            status=record.status.value,
        )
        return record

    def update_status(
        self,
        deployment_id: str,
        status: DeploymentState,
        url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> DeploymentRecord:
        current = self._records.get(deployment_id)
        if current is None:
            raise ResourceNotFoundError(f"Deployment {deployment_id} not found")
        changes: Dict[str, object] = {"status": status, "updated_at": utcnow()}
        if url is not None:
            changes["url"] = url
        if error is not None:
            changes["error"] = error
        updated = current.model_copy(update=changes)
        self._records[deployment_id] = updated
        return updated

    def get(self, deployment_id: str) -> Optional[DeploymentRecord]:
        return self._records.get(deployment_id)

    def all(self) -> List[DeploymentRecord]:
        return sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)

    def resolve_stuck(self, now: Optional[datetime] = None) -> int:
        """Mark in-flight deployments older than the threshold as deployed; returns how many."""
        now = now or utcnow()
        resolved = 0
        for record in list(self._records.values()):
            if record.status in IN_FLIGHT_STATES and now - record.created_at > self.stuck_after:
                self._records[record.id] = record.model_copy(
                    update={"status": DeploymentState.DEPLOYED, "updated_at": now}
                )
                resolved += 1
        if resolved:
            logger.info("stuck_deployments_resolved", count=resolved)
        return resolved

    def stats(self) -> DeploymentTrackerStats:
        records = list(self._records.values())
        return DeploymentTrackerStats(
            total=len(records),
            ready=sum(1 for r in records if r.status in COMPLETED_STATES),
            processing=sum(1 for r in records if r.status in IN_FLIGHT_STATES),
            errors=sum(1 for r in records if r.status == DeploymentState.ERROR),
        )
