from typing import Callable, List

import httpx
import pytest
import pytest_asyncio

from app.shared.core import http as http_module


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest_asyncio.fixture
async def mock_http(monkeypatch):
    """
    Install a shared http client backed by a handler.

    Usage: transport = mock_http(lambda request: httpx.Response(200, json={...}))
    """
    clients: List[httpx.AsyncClient] = []

    def _install(handler: Callable[[httpx.Request], httpx.Response]) -> RecordingTransport:
        transport = RecordingTransport(handler)
        client = httpx.AsyncClient(transport=transport)
        clients.append(client)
        monkeypatch.setattr(http_module, "_client", client)
        return transport

    yield _install

    for client in clients:
        await client.aclose()


@pytest.fixture
def deploy_request_factory():
    from app.schemas.multi_cloud import UnifiedDeploymentRequest

    def _make(provider: str, service: str, code_type: str = "javascript", **overrides):
        data = {
            "name": "hello-app",
            "code": "console.log('hi')",
            "code_type": code_type,
            "provider": provider,
            "region": "nyc3",
            "service": service,
        }
        data.update(overrides)
        return UnifiedDeploymentRequest(**data)

    return _make
