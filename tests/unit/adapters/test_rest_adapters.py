import io
import json
import zipfile

import httpx
import pytest

from app.shared.adapters.digitalocean import DigitalOceanAdapter
from app.shared.adapters.ibm import IBMAdapter
from app.shared.adapters.linode import LinodeAdapter
from app.shared.adapters.netlify import NetlifyAdapter, build_site_archive
from app.shared.core.exceptions import (
    AuthenticationFailedError,
    CredentialsMissingError,
    ExternalAPIError,
    UnsupportedServiceError,
    VendorAPIError,
)
from app.shared.core.provider import CloudProvider


@pytest.fixture
def do_adapter(store):
    store.set(CloudProvider.DIGITALOCEAN, {"token": "dop_v1_test"})
    return DigitalOceanAdapter(store)


# ----------------------------------------------------------------------
# DigitalOcean
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_digitalocean_requires_credentials(store):
    adapter = DigitalOceanAdapter(store)

    with pytest.raises(CredentialsMissingError, match="DigitalOcean credentials not configured"):
        await adapter.list_resources()


@pytest.mark.asyncio
async def test_digitalocean_deploy_tags_droplet(do_adapter, mock_http, deploy_request_factory):
    transport = mock_http(
        lambda request: httpx.Response(
            202,
            json={"droplet": {"id": 3164444, "name": "hello-app-1", "status": "new"}},
        )
    )

    result = await do_adapter.deploy(deploy_request_factory("digitalocean", "droplet"))

    sent = transport.requests[0]
    body = json.loads(sent.content)
    assert sent.method == "POST"
    assert str(sent.url) == "https://api.digitalocean.com/v2/droplets"
    assert sent.headers["Authorization"] == "Bearer dop_v1_test"
    assert body["tags"] == ["createdby:instantiate"]
    assert body["region"] == "nyc3"
    assert body["name"].startswith("hello-app-")
    assert result.id == "3164444"
    assert result.type == "droplet"
    assert result.url == "https://cloud.digitalocean.com/droplets/3164444"


@pytest.mark.asyncio
async def test_droplet_create_is_sent_once_on_read_timeout(do_adapter, mock_http, deploy_request_factory):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    transport = mock_http(handler)

    with pytest.raises(ExternalAPIError, match="DigitalOcean POST /droplets"):
        await do_adapter.deploy(deploy_request_factory("digitalocean", "droplet"))

    assert [r.method for r in transport.requests] == ["POST"]


@pytest.mark.asyncio
async def test_droplet_status_read_is_retried(do_adapter, mock_http):
    answers = iter(
        [
            httpx.Response(502),
            httpx.Response(200, json={"droplet": {"id": 7, "status": "active", "region": {"slug": "nyc3"}}}),
        ]
    )
    transport = mock_http(lambda request: next(answers))

    status = await do_adapter.get_resource_status("7", "droplet")

    assert status.status == "active"
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_digitalocean_list_follows_pages(do_adapter, mock_http):
    def handler(request):
        page = request.url.params["page"]
        assert request.url.params["tag_name"] == "createdby:instantiate"
        droplet = {
            "id": int(page),
            "name": f"droplet-{page}",
            "status": "active",
            "region": {"slug": "nyc3"},
            "size": {"price_monthly": 6.0},
            "networks": {"v4": [{"type": "public", "ip_address": f"203.0.113.{page}"}]},
            "created_at": "2024-05-01T10:00:00Z",
        }
        links = {"pages": {"next": "https://api.digitalocean.com/v2/droplets?page=2"}} if page == "1" else {}
        return httpx.Response(200, json={"droplets": [droplet], "links": links})

    transport = mock_http(handler)

    resources = await do_adapter.list_resources()

    assert [r.id for r in resources] == ["1", "2"]
    assert resources[0].cost == 6.0
    assert resources[0].url == "http://203.0.113.1"
    assert resources[0].region == "nyc3"
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_digitalocean_unknown_service(do_adapter, deploy_request_factory):
    with pytest.raises(UnsupportedServiceError, match="Service lambda not supported for DigitalOcean"):
        await do_adapter.deploy(deploy_request_factory("digitalocean", "lambda"))


@pytest.mark.asyncio
async def test_digitalocean_verify_records_last_error(do_adapter, mock_http):
    mock_http(lambda request: httpx.Response(401, json={"message": "Unable to authenticate you"}))

    assert await do_adapter.verify_connection() is False
    assert do_adapter.last_error.startswith("DigitalOcean verification failed")


@pytest.mark.asyncio
async def test_digitalocean_status_and_delete(do_adapter, mock_http):
    def handler(request):
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(
            200,
            json={"droplet": {"id": 7, "status": "off", "region": {"slug": "ams3"}, "memory": 1024, "vcpus": 1}},
        )

    mock_http(handler)

    status = await do_adapter.get_resource_status("7", "droplet")
    assert status.status == "off"
    assert status.details["region"] == "ams3"
    assert await do_adapter.delete_resource("7", "droplet") is True


# ----------------------------------------------------------------------
# Linode
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_linode_list_filters_platform_instances(store, mock_http):
    store.set(CloudProvider.LINODE, {"token": "lin"})
    mock_http(
        lambda request: httpx.Response(
            200,
            json={
                "data": [
                    {"id": 1, "label": "i-app-1", "tags": ["Instantiate"], "region": "us-east", "status": "running", "ipv4": ["198.51.100.1"]},
                    {"id": 2, "label": "personal-box", "tags": [], "region": "us-east", "status": "running"},
                    {"id": 3, "label": "instantiate-legacy", "tags": [], "region": "eu-west", "status": "offline"},
                ],
                "page": 1,
                "pages": 1,
            },
        )
    )

    resources = await LinodeAdapter(store).list_resources()

    assert [r.id for r in resources] == ["1", "3"]
    assert resources[0].url == "http://198.51.100.1"


@pytest.mark.asyncio
async def test_linode_deploy_sends_label_and_tag(store, mock_http, deploy_request_factory):
    store.set(CloudProvider.LINODE, {"token": "lin"})
    transport = mock_http(
        lambda request: httpx.Response(200, json={"id": 99, "label": "i-hello", "region": "us-east", "status": "provisioning"})
    )

    result = await LinodeAdapter(store).deploy(deploy_request_factory("linode", "linode", region="us-east"))

    body = json.loads(transport.requests[0].content)
    assert body["label"].startswith("i-hello-app-")
    assert body["tags"] == ["instantiate"]
    assert len(body["root_pass"]) >= 24
    assert result.id == "99"
    assert result.status == "provisioning"


# ----------------------------------------------------------------------
# Netlify
# ----------------------------------------------------------------------


def test_site_archive_contains_index_html(deploy_request_factory):
    request = deploy_request_factory("netlify", "static-site", code_type="html", code="<h1>Hi</h1>")

    with zipfile.ZipFile(io.BytesIO(build_site_archive(request))) as archive:
        assert archive.read("index.html") == b"<h1>Hi</h1>"


@pytest.mark.asyncio
async def test_netlify_deploy_creates_site_then_zip_deploy(store, mock_http, deploy_request_factory):
    store.set(CloudProvider.NETLIFY, {"token": "nfp"})

    def handler(request):
        if request.url.path.endswith("/sites"):
            return httpx.Response(201, json={"id": "site-1", "name": "instantiate-hello", "ssl_url": "https://x.netlify.app"})
        return httpx.Response(200, json={"id": "dep-1", "state": "uploaded"})

    transport = mock_http(handler)

    result = await NetlifyAdapter(store).deploy(
        deploy_request_factory("netlify", "static-site", code_type="html", code="<p>x</p>")
    )

    site_call, deploy_call = transport.requests
    assert json.loads(site_call.content)["name"].startswith("instantiate-hello-app-")
    assert deploy_call.url.path == "/api/v1/sites/site-1/deploys"
    assert deploy_call.headers["Content-Type"] == "application/zip"
    assert result.url == "https://x.netlify.app"
    assert result.status == "uploaded"
    assert result.model_extra["deploy_id"] == "dep-1"


@pytest.mark.asyncio
async def test_netlify_rejects_non_html(store, deploy_request_factory):
    store.set(CloudProvider.NETLIFY, {"token": "nfp"})

    with pytest.raises(UnsupportedServiceError):
        await NetlifyAdapter(store).deploy(deploy_request_factory("netlify", "static-site"))


@pytest.mark.asyncio
async def test_netlify_list_keeps_platform_sites(store, mock_http):
    store.set(CloudProvider.NETLIFY, {"token": "nfp"})
    mock_http(
        lambda request: httpx.Response(
            200,
            json=[
                {"id": "a", "name": "instantiate-one", "published_deploy": {"state": "ready"}},
                {"id": "b", "name": "my-blog"},
            ],
        )
    )

    resources = await NetlifyAdapter(store).list_resources()

    assert [(r.id, r.status) for r in resources] == [("a", "ready")]


@pytest.mark.asyncio
async def test_netlify_vendor_error_is_prefixed(store, mock_http):
    store.set(CloudProvider.NETLIFY, {"token": "nfp"})
    mock_http(lambda request: httpx.Response(404, json={"message": "Not Found"}))

    with pytest.raises(VendorAPIError, match="Netlify GET /sites/zzz: API error 404: Not Found"):
        await NetlifyAdapter(store).get_resource_status("zzz", "static-site")


# ----------------------------------------------------------------------
# IBM Cloud
# ----------------------------------------------------------------------


def _ibm_handler(actions_payload):
    def handler(request):
        if request.url.host == "iam.cloud.ibm.com":
            return httpx.Response(200, json={"access_token": "iam-token", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer iam-token"
        return httpx.Response(200, json=actions_payload)

    return handler


@pytest.mark.asyncio
async def test_ibm_token_is_exchanged_once(store, mock_http):
    store.set(CloudProvider.IBM, {"api_key": "ibm-key", "region": "eu-de", "namespace": "ns1"})
    transport = mock_http(
        _ibm_handler(
            [
                {"name": "hello-1", "annotations": [{"key": "CreatedBy", "value": "Instantiate"}], "updated": 1714557600000},
                {"name": "other", "annotations": []},
            ]
        )
    )
    adapter = IBMAdapter(store)

    first = await adapter.list_resources()
    await adapter.list_resources()

    iam_calls = [r for r in transport.requests if r.url.host == "iam.cloud.ibm.com"]
    assert len(iam_calls) == 1
    assert [r.id for r in first] == ["hello-1"]
    assert first[0].region == "eu-de"
    assert first[0].created_at.year == 2024
    action_call = transport.requests[1]
    assert action_call.url.host == "eu-de.functions.cloud.ibm.com"
    assert action_call.url.path == "/api/v1/namespaces/ns1/actions"


@pytest.mark.asyncio
async def test_ibm_rejects_html(store, deploy_request_factory):
    store.set(CloudProvider.IBM, {"api_key": "ibm-key"})

    with pytest.raises(UnsupportedServiceError):
        await IBMAdapter(store).deploy(deploy_request_factory("ibm", "cloud-function", code_type="html"))


@pytest.mark.asyncio
async def test_ibm_deploy_puts_action(store, mock_http, deploy_request_factory):
    store.set(CloudProvider.IBM, {"api_key": "ibm-key", "region": "us-south", "namespace": "default"})
    transport = mock_http(_ibm_handler({"name": "x"}))

    result = await IBMAdapter(store).deploy(
        deploy_request_factory("ibm", "cloud-function", region="us-south", environment_variables={"A": "1"})
    )

    put = transport.requests[-1]
    body = json.loads(put.content)
    assert put.method == "PUT"
    assert put.url.params["overwrite"] == "true"
    assert body["exec"]["kind"] == "nodejs:18"
    assert body["parameters"] == [{"key": "A", "value": "1"}]
    assert {"key": "CreatedBy", "value": "Instantiate"} in body["annotations"]
    assert result.type == "cloud-function"


@pytest.mark.asyncio
async def test_ibm_verify_fails_on_bad_key(store, mock_http):
    store.set(CloudProvider.IBM, {"api_key": "bad"})
    mock_http(lambda request: httpx.Response(400, json={"errorMessage": "Provided API key could not be found"}))

    adapter = IBMAdapter(store)
    assert await adapter.verify_connection() is False
    assert "IBM Cloud verification failed" in adapter.last_error


@pytest.mark.asyncio
async def test_rejected_token_raises_authentication_failed(do_adapter, mock_http):
    transport = mock_http(lambda request: httpx.Response(403, json={"message": "forbidden"}))

    with pytest.raises(AuthenticationFailedError):
        await do_adapter.list_resources()
    assert len(transport.requests) == 1
