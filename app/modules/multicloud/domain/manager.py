"""
Multi-Cloud Manager

Single entry point over every provider adapter:
1. Deploy dispatch with provider/deployment-type decoration.
2. Concurrent resource refresh across providers with per-provider isolation,
   so one failing or slow provider never blocks the others.
3. Derived views (provider statuses, deployment statistics) computed from the
   resource cache after each refresh attempt.
"""

import asyncio
import time
import uuid
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

import structlog
from opentelemetry import trace
from pydantic import ValidationError

from app.modules.multicloud.domain.cache import ResourceCache
from app.modules.multicloud.domain.deployments import DeploymentTracker, state_from_vendor_status
from app.schemas.multi_cloud import (
    CloudResource,
    ConnectionTestResult,
    CredentialUpdateResult,
    DeploymentRecord,
    DeploymentResult,
    DeploymentState,
    DeploymentStats,
    ProviderCapabilities,
    ProviderConnectionStatus,
    ProviderStatus,
    ResourceStatus,
    SyncResult,
    UnifiedDeploymentRequest,
    utcnow,
)
from app.shared.adapters.base import BaseProviderAdapter
from app.shared.adapters.factory import AdapterFactory
from app.shared.core.config import Settings, get_settings
from app.shared.core.credentials import parse_credentials
from app.shared.core.exceptions import (
    CloudManagerException,
    CredentialsMissingError,
    DeploymentError,
    ExternalAPIError,
    UnsupportedProviderError,
    error_kind_of,
)
from app.shared.core.logging import audit_log
from app.shared.core.ops_metrics import (
    CACHED_RESOURCES,
    DEPLOYMENTS_TOTAL,
    PROVIDER_REFRESH_LATENCY,
    PROVIDER_REFRESH_TOTAL,
)
from app.shared.core.provider import CloudProvider, display_name, normalize_provider
from app.shared.core.security import CredentialStore

logger = structlog.get_logger()
tracer = trace.get_tracer(__name__)

NOT_CONFIGURED_MARKERS = ("credentials", "not configured")


def classify_refresh_error(exc: Optional[BaseException]) -> tuple[ProviderConnectionStatus, Optional[str]]:
    """Map a refresh outcome to a connection status and the error to surface, if any."""
    if exc is None:
        return ProviderConnectionStatus.CONNECTED, None
    message = str(exc)
    lowered = message.lower()
    if isinstance(exc, CredentialsMissingError) or any(m in lowered for m in NOT_CONFIGURED_MARKERS):
        return ProviderConnectionStatus.NOT_CONFIGURED, None
    return ProviderConnectionStatus.ERROR, message or type(exc).__name__


class MultiCloudManager:
    def __init__(
        self,
        adapters: Dict[CloudProvider, BaseProviderAdapter],
        store: CredentialStore,
        *,
        cache: Optional[ResourceCache] = None,
        tracker: Optional[DeploymentTracker] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.adapters = adapters
        self.store = store
        self.cache = cache or ResourceCache(ttl=timedelta(seconds=self.settings.RESOURCE_CACHE_TTL_SECONDS))
        self.tracker = tracker or DeploymentTracker(
            stuck_after=timedelta(seconds=self.settings.STUCK_DEPLOYMENT_SECONDS)
        )
        self.refresh_timeout = self.settings.PROVIDER_REFRESH_TIMEOUT_SECONDS

    @classmethod
    def from_store(cls, store: CredentialStore, settings: Optional[Settings] = None) -> "MultiCloudManager":
        return cls(AdapterFactory.build_registry(store), store, settings=settings)

    @property
    def providers(self) -> List[CloudProvider]:
        return list(self.adapters)

    def _resolve(self, provider: Any) -> CloudProvider:
        key = normalize_provider(provider)
        if not key or CloudProvider(key) not in self.adapters:
            raise UnsupportedProviderError(str(getattr(provider, "value", provider)))
        return CloudProvider(key)

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    async def deploy_to_provider(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        provider = self._resolve(request.provider)
        adapter = self.adapters[provider]

        try:
            result = await adapter.deploy(request)
        except Exception as e:
            DEPLOYMENTS_TOTAL.labels(provider=provider.value, service=request.service, outcome="failure").inc()
            kind = error_kind_of(e)
            logger.error(
                "deployment_failed",
                provider=provider.value,
                service=request.service,
                error_kind=kind.value,
                error=str(e),
            )
            message = e.message if isinstance(e, CloudManagerException) else str(e)
            self.tracker.record(
                DeploymentRecord(
                    id=f"failed-{uuid.uuid4().hex}",
                    provider=provider,
                    service=request.service,
                    status=DeploymentState.ERROR,
                    error=message,
                )
            )
            raise DeploymentError(
                f"{display_name(provider)} deployment failed: {message}",
                kind=kind,
                details={"provider": provider.value, "service": request.service, "kind": kind.value},
            ) from e

        result = result.model_copy(update={"provider": provider, "deployment_type": "unified"})
        self.cache.upsert(provider, result.to_resource(provider))
        CACHED_RESOURCES.labels(provider=provider.value).set(len(self.cache.resources_for(provider)))
        self.tracker.record(
            DeploymentRecord(
                id=result.id,
                provider=provider,
                service=request.service,
                status=state_from_vendor_status(result.status),
                url=result.url,
                resource_id=result.id,
                created_at=result.created_at,
            )
        )
        DEPLOYMENTS_TOTAL.labels(provider=provider.value, service=request.service, outcome="success").inc()
        logger.info(
            "deployment_succeeded",
            provider=provider.value,
            service=request.service,
            resource_id=result.id,
        )
        return result

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def _normalize(self, provider: CloudProvider, item: Any) -> CloudResource:
        if isinstance(item, CloudResource):
            return item if item.provider == provider else item.model_copy(update={"provider": provider})
        data = dict(item)
        data["provider"] = provider
        return CloudResource.model_validate(data)

    async def _refresh(self, provider: CloudProvider, force: bool) -> bool:
        """
        Refresh one provider's cache entry. Returns True when the adapter was called.
        Raises whatever the adapter raised; the cached entry is then left untouched.
        """
        if not force and self.cache.is_fresh(provider, utcnow()):
            PROVIDER_REFRESH_TOTAL.labels(provider=provider.value, outcome="skipped").inc()
            return False

        synced_before = self.cache.last_sync(provider)
        async with self.cache.lock_for(provider):
            # Another caller refreshed while we waited for the lock
            if not force and self.cache.is_fresh(provider, utcnow()):
                PROVIDER_REFRESH_TOTAL.labels(provider=provider.value, outcome="skipped").inc()
                return False
            if force and self.cache.last_sync(provider) != synced_before:
                PROVIDER_REFRESH_TOTAL.labels(provider=provider.value, outcome="skipped").inc()
                return False

            adapter = self.adapters[provider]
            generation = self.cache.generation(provider)
            started = time.perf_counter()
            with tracer.start_as_current_span("provider_refresh") as span:
                span.set_attribute("provider", provider.value)
                span.set_attribute("force", force)
                try:
                    async with asyncio.timeout(self.refresh_timeout) as deadline:
                        raw = await adapter.list_resources()
                except Exception as e:
                    span.record_exception(e)
                    PROVIDER_REFRESH_TOTAL.labels(provider=provider.value, outcome="failure").inc()
                    # Only our own deadline is reported as a refresh timeout
                    if isinstance(e, TimeoutError) and deadline.expired():
                        raise ExternalAPIError(
                            f"{display_name(provider)} refresh timed out after {self.refresh_timeout}s",
                            code="timeout_error",
                            details={"provider": provider.value},
                        ) from e
                    raise
                finally:
                    PROVIDER_REFRESH_LATENCY.labels(provider=provider.value).observe(
                        time.perf_counter() - started
                    )

            resources = [self._normalize(provider, item) for item in raw]
            if not self.cache.replace(provider, resources, utcnow(), generation=generation):
                # Credentials changed mid-refresh; the snapshot belongs to the old account
                PROVIDER_REFRESH_TOTAL.labels(provider=provider.value, outcome="discarded").inc()
                logger.info("provider_refresh_discarded", provider=provider.value)
                return True
            CACHED_RESOURCES.labels(provider=provider.value).set(len(resources))
            PROVIDER_REFRESH_TOTAL.labels(provider=provider.value, outcome="success").inc()
            logger.debug("provider_refreshed", provider=provider.value, resource_count=len(resources))
            return True

    async def _refresh_many(
        self, providers: Sequence[CloudProvider], force: bool
    ) -> Dict[CloudProvider, Optional[BaseException]]:
        """Refresh concurrently; each provider's failure is captured, never propagated."""
        outcomes = await asyncio.gather(
            *(self._refresh(p, force) for p in providers), return_exceptions=True
        )
        errors: Dict[CloudProvider, Optional[BaseException]] = {}
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "provider_refresh_failed",
                    provider=provider.value,
                    error_kind=error_kind_of(outcome).value,
                    error=str(outcome),
                )
                errors[provider] = outcome
            else:
                errors[provider] = None
        return errors

    async def get_all_resources(self, force_refresh: bool = False) -> List[CloudResource]:
        await self._refresh_many(self.providers, force_refresh)
        now = utcnow()
        resources = [r.model_copy(update={"last_checked": now}) for r in self.cache.all_resources()]
        return sorted(resources, key=lambda r: r.created_at, reverse=True)

    async def sync_all_providers(self) -> List[SyncResult]:
        logger.info("provider_sync_started", providers=[p.value for p in self.providers])
        errors = await self._refresh_many(self.providers, force=True)
        results = [
            SyncResult(
                provider=provider,
                success=error is None,
                resource_count=len(self.cache.resources_for(provider)),
                error=str(error) if error is not None else None,
            )
            for provider, error in errors.items()
        ]
        logger.info(
            "provider_sync_completed",
            synced=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success),
        )
        return results

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    async def get_provider_statuses(self) -> List[ProviderStatus]:
        errors = await self._refresh_many(self.providers, force=False)
        statuses: List[ProviderStatus] = []
        for provider in self.providers:
            status, error = classify_refresh_error(errors.get(provider))
            resources = self.cache.resources_for(provider)
            total_cost = sum(r.cost or 0 for r in resources)
            last_sync = self.cache.last_sync(provider)
            statuses.append(
                ProviderStatus(
                    provider=provider,
                    status=status,
                    resource_count=len(resources),
                    total_cost=total_cost if total_cost > 0 else None,
                    last_sync=last_sync.isoformat() if last_sync else "Never",
                    error=error,
                )
            )
        return statuses

    async def get_deployment_stats(self) -> DeploymentStats:
        resources = await self.get_all_resources()
        provider_distribution: Dict[str, int] = {p.value: 0 for p in self.providers}
        provider_distribution.update(Counter(r.provider.value for r in resources))
        return DeploymentStats(
            total_resources=len(resources),
            total_cost=sum(r.cost or 0 for r in resources),
            provider_distribution=provider_distribution,
            status_distribution=dict(Counter(r.status for r in resources)),
            region_distribution=dict(Counter(r.region for r in resources)),
        )

    async def health(self) -> Dict[str, Any]:
        statuses = await self.get_provider_statuses()
        connected = sum(1 for s in statuses if s.status == ProviderConnectionStatus.CONNECTED)
        total = len(statuses)
        return {
            "connected": connected,
            "total": total,
            "percentage": round(connected / total * 100) if total else 0,
            "statuses": statuses,
        }

    # ------------------------------------------------------------------
    # Pass-through operations
    # ------------------------------------------------------------------

    async def delete_resource(self, provider: Any, resource_id: str, resource_type: str) -> bool:
        key = self._resolve(provider)
        deleted = await self.adapters[key].delete_resource(resource_id, resource_type)
        if deleted:
            self.cache.remove(key, resource_id)
            CACHED_RESOURCES.labels(provider=key.value).set(len(self.cache.resources_for(key)))
            logger.info("resource_deleted", provider=key.value, resource_id=resource_id, type=resource_type)
        return deleted

    async def get_resource_status(self, provider: Any, resource_id: str, resource_type: str) -> ResourceStatus:
        key = self._resolve(provider)
        return await self.adapters[key].get_resource_status(resource_id, resource_type)

    def get_provider_capabilities(self, provider: Any) -> ProviderCapabilities:
        key = self._resolve(provider)
        adapter = self.adapters[key]
        return ProviderCapabilities(provider=key, capabilities=adapter.capabilities(), regions=list(adapter.REGIONS))

    def get_supported_regions(self, provider: Any) -> List[str]:
        return list(self.adapters[self._resolve(provider)].REGIONS)

    def list_capabilities(self) -> List[ProviderCapabilities]:
        return [self.get_provider_capabilities(p) for p in self.providers]

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def set_provider_credentials(self, provider: Any, credentials: Dict[str, Any]) -> CredentialUpdateResult:
        """Validate, encrypt and store credentials; the provider's cache entry is dropped."""
        key = self._resolve(provider)
        try:
            parsed = parse_credentials(key, credentials)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise CredentialsMissingError(
                f"Invalid {display_name(key)} credentials: check {', '.join(fields)}",
                details={"provider": key.value, "fields": fields},
            ) from e
        blob = parsed.to_blob()
        self.store.set(key, blob)
        self.cache.invalidate(key)
        audit_log("provider_credentials_updated", key.value, {"fields": sorted(blob)})
        return CredentialUpdateResult(
            success=True,
            provider=key,
            message=f"{display_name(key)} credentials updated successfully",
        )

    async def test_provider_connection(self, provider: Any) -> ConnectionTestResult:
        key = self._resolve(provider)
        adapter = self.adapters[key]
        if not adapter.is_configured():
            return ConnectionTestResult(
                success=False, provider=key, error=f"{display_name(key)} credentials not configured"
            )
        success = await adapter.verify_connection()
        logger.info("provider_connection_tested", provider=key.value, success=success)
        return ConnectionTestResult(
            success=success,
            provider=key,
            error=None if success else (adapter.last_error or "Connection test failed"),
        )
