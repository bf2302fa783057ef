"""
Multi-Cloud Adapter Factory

Builds the provider-keyed adapter registry the manager dispatches on.
"""

from typing import Dict, Type

from app.shared.adapters.aws import AWSAdapter
from app.shared.adapters.azure import AzureAdapter
from app.shared.adapters.base import BaseProviderAdapter
from app.shared.adapters.digitalocean import DigitalOceanAdapter
from app.shared.adapters.gcp import GCPAdapter
from app.shared.adapters.ibm import IBMAdapter
from app.shared.adapters.linode import LinodeAdapter
from app.shared.adapters.netlify import NetlifyAdapter
from app.shared.adapters.tencent import TencentAdapter
from app.shared.adapters.unsupported import AlibabaAdapter, HuaweiAdapter, OracleAdapter
from app.shared.core.exceptions import UnsupportedProviderError
from app.shared.core.provider import CloudProvider, normalize_provider
from app.shared.core.security import CredentialStore

ADAPTER_CLASSES: Dict[CloudProvider, Type[BaseProviderAdapter]] = {
    CloudProvider.AWS: AWSAdapter,
    CloudProvider.AZURE: AzureAdapter,
    CloudProvider.GCP: GCPAdapter,
    CloudProvider.ALIBABA: AlibabaAdapter,
    CloudProvider.IBM: IBMAdapter,
    CloudProvider.ORACLE: OracleAdapter,
    CloudProvider.DIGITALOCEAN: DigitalOceanAdapter,
    CloudProvider.LINODE: LinodeAdapter,
    CloudProvider.HUAWEI: HuaweiAdapter,
    CloudProvider.TENCENT: TencentAdapter,
    CloudProvider.NETLIFY: NetlifyAdapter,
}


class AdapterFactory:
    @staticmethod
    def get_adapter(provider: object, store: CredentialStore) -> BaseProviderAdapter:
        """
        Returns the adapter for a provider key or enum member.
        """
        key = normalize_provider(provider)
        if not key:
            raise UnsupportedProviderError(str(getattr(provider, "value", provider)))
        return ADAPTER_CLASSES[CloudProvider(key)](store)

    @staticmethod
    def build_registry(store: CredentialStore) -> Dict[CloudProvider, BaseProviderAdapter]:
        """One adapter per supported provider, all sharing the credential store."""
        return {provider: adapter_cls(store) for provider, adapter_cls in ADAPTER_CLASSES.items()}
