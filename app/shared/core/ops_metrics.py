"""
Operational metrics for the multi-cloud manager.

Prometheus counters and histograms for provider refreshes, unified
deployments, and API errors.
"""

from prometheus_client import Counter, Gauge, Histogram

# --- Provider Refresh Metrics ---
PROVIDER_REFRESH_TOTAL = Counter(
    "multicloud_provider_refresh_total",
    "Provider resource refresh attempts by outcome",
    ["provider", "outcome"],  # outcome: success | failure | skipped
)

PROVIDER_REFRESH_LATENCY = Histogram(
    "multicloud_provider_refresh_latency_seconds",
    "Latency of provider list_resources calls",
    ["provider"],
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60),
)

CACHED_RESOURCES = Gauge(
    "multicloud_cached_resources",
    "Number of resources currently held in the resource cache",
    ["provider"],
)

# --- Deployment Metrics ---
DEPLOYMENTS_TOTAL = Counter(
    "multicloud_deployments_total",
    "Unified deployment requests by provider and outcome",
    ["provider", "service", "outcome"],
)

# --- API Metrics ---
API_ERRORS_TOTAL = Counter(
    "multicloud_api_errors_total",
    "Total number of API errors by status code and path",
    ["path", "method", "status_code"],
)
