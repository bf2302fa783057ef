from __future__ import annotations

from enum import Enum
from typing import Any


class CloudProvider(str, Enum):
    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"
    ALIBABA = "alibaba"
    IBM = "ibm"
    ORACLE = "oracle"
    DIGITALOCEAN = "digitalocean"
    LINODE = "linode"
    HUAWEI = "huawei"
    TENCENT = "tencent"
    NETLIFY = "netlify"


SUPPORTED_PROVIDERS: set[str] = {p.value for p in CloudProvider}

DISPLAY_NAMES: dict[str, str] = {
    "aws": "AWS",
    "azure": "Azure",
    "gcp": "GCP",
    "alibaba": "Alibaba Cloud",
    "ibm": "IBM Cloud",
    "oracle": "Oracle Cloud",
    "digitalocean": "DigitalOcean",
    "linode": "Linode",
    "huawei": "Huawei Cloud",
    "tencent": "Tencent Cloud",
    "netlify": "Netlify",
}


def normalize_provider(value: Any) -> str:
    """Return a canonical provider key or empty string when invalid/missing."""
    explicit_enum_value = getattr(value, "value", None)
    if isinstance(explicit_enum_value, str):
        value = explicit_enum_value
    normalized = str(value or "").strip().lower()
    return normalized if normalized in SUPPORTED_PROVIDERS else ""


def display_name(provider: Any) -> str:
    key = normalize_provider(provider)
    if not key:
        return str(getattr(provider, "value", provider) or "")
    return DISPLAY_NAMES[key]
