"""
Global pytest fixtures for the multi-cloud manager test suite.

Provides:
- Test environment (set before any app import)
- Credential store with a fixed key
- A scriptable in-memory provider adapter
- Manager and HTTP client fixtures
"""
import os
from typing import Any, AsyncGenerator, Callable

import pytest
import pytest_asyncio

# Set test environment BEFORE any app imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["CREDENTIAL_ENCRYPTION_KEY"] = "0f" * 32

from app.shared.core.config import Settings  # noqa: E402
from app.shared.core.provider import CloudProvider  # noqa: E402
from app.shared.core.security import CredentialStore  # noqa: E402
from tests.utils import TEST_KEY, FakeAdapter, make_resource  # noqa: E402


@pytest.fixture
def test_settings() -> Settings:
    return Settings(TESTING=True, CREDENTIAL_ENCRYPTION_KEY=TEST_KEY)


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore(key=TEST_KEY)


@pytest.fixture
def fake_adapter_factory(store) -> Callable[..., FakeAdapter]:
    def _make(provider: CloudProvider, resources: Any = None, delay: float = 0.0) -> FakeAdapter:
        return FakeAdapter(provider, store, resources=resources, delay=delay)

    return _make


@pytest.fixture
def manager(store, test_settings, fake_adapter_factory):
    """Manager over three fake providers: AWS, DigitalOcean and Netlify."""
    from app.modules.multicloud.domain.manager import MultiCloudManager

    adapters = {
        CloudProvider.AWS: fake_adapter_factory(
            CloudProvider.AWS, [make_resource(CloudProvider.AWS, "fn-1")]
        ),
        CloudProvider.DIGITALOCEAN: fake_adapter_factory(
            CloudProvider.DIGITALOCEAN, [make_resource(CloudProvider.DIGITALOCEAN, "droplet-1")]
        ),
        CloudProvider.NETLIFY: fake_adapter_factory(CloudProvider.NETLIFY, []),
    }
    return MultiCloudManager(adapters, store, settings=test_settings)


@pytest.fixture
def app(store, manager):
    """The real application with test state installed (lifespan not run)."""
    from app.main import app as cloud_app

    cloud_app.state.credential_store = store
    cloud_app.state.multi_cloud_manager = manager
    yield cloud_app
    del cloud_app.state.credential_store
    del cloud_app.state.multi_cloud_manager


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator:
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
