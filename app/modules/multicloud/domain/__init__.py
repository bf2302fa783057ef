from .cache import CacheEntry, ResourceCache
from .deployments import DeploymentTracker
from .manager import MultiCloudManager, classify_refresh_error

__all__ = [
    "CacheEntry",
    "ResourceCache",
    "DeploymentTracker",
    "MultiCloudManager",
    "classify_refresh_error",
]
