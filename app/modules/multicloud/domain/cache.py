"""
Resource Cache

Per-provider snapshot of discovered resources with the time of the last
successful sync. Entries are replaced wholesale on refresh; a failed refresh
leaves the previous snapshot and its sync time untouched.
Invalidation bumps a per-provider generation so a refresh that started
before it cannot write its snapshot back.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from app.schemas.multi_cloud import CloudResource
from app.shared.core.provider import CloudProvider


@dataclass
class CacheEntry:
    resources: List[CloudResource] = field(default_factory=list)
    last_sync: Optional[datetime] = None


class ResourceCache:
    def __init__(self, ttl: timedelta):
        self.ttl = ttl
        self._entries: Dict[CloudProvider, CacheEntry] = {}
        self._locks: Dict[CloudProvider, asyncio.Lock] = {}
        self._generations: Dict[CloudProvider, int] = {}

    def is_fresh(self, provider: CloudProvider, now: datetime, ttl: Optional[timedelta] = None) -> bool:
        entry = self._entries.get(provider)
        if entry is None or entry.last_sync is None:
            return False
        return now - entry.last_sync < (ttl if ttl is not None else self.ttl)

    def generation(self, provider: CloudProvider) -> int:
        return self._generations.get(provider, 0)

    def replace(
        self,
        provider: CloudProvider,
        resources: List[CloudResource],
        synced_at: datetime,
        generation: Optional[int] = None,
    ) -> bool:
        """Store a snapshot; returns False when `generation` is stale and nothing was written."""
        if generation is not None and generation != self.generation(provider):
            return False
        self._entries[provider] = CacheEntry(resources=list(resources), last_sync=synced_at)
        return True

    def upsert(self, provider: CloudProvider, resource: CloudResource) -> None:
        """Insert or overwrite one resource by id; `last_sync` is left as is."""
        entry = self._entries.setdefault(provider, CacheEntry())
        entry.resources = [r for r in entry.resources if r.id != resource.id]
        entry.resources.append(resource)

    def remove(self, provider: CloudProvider, resource_id: str) -> bool:
        entry = self._entries.get(provider)
        if entry is None:
            return False
        before = len(entry.resources)
        entry.resources = [r for r in entry.resources if r.id != resource_id]
        return len(entry.resources) != before

    def invalidate(self, provider: CloudProvider) -> None:
        self._entries.pop(provider, None)
        self._generations[provider] = self.generation(provider) + 1

    def resources_for(self, provider: CloudProvider) -> List[CloudResource]:
        entry = self._entries.get(provider)
        return list(entry.resources) if entry else []

    def all_resources(self) -> List[CloudResource]:
        return [r for entry in self._entries.values() for r in entry.resources]

    def last_sync(self, provider: CloudProvider) -> Optional[datetime]:
        entry = self._entries.get(provider)
        return entry.last_sync if entry else None

    def lock_for(self, provider: CloudProvider) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = self._locks[provider] = asyncio.Lock()
        return lock
