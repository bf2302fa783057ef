import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from app.shared.core.error_governance import handle_exception
from app.shared.core.exceptions import (
    CredentialsMissingError,
    DeploymentError,
    ErrorKind,
    ExternalAPIError,
    UnsupportedProviderError,
    VendorAPIError,
    error_kind_of,
)


def _request(path: str = "/api/multi-cloud/deploy", method: str = "POST"):
    return SimpleNamespace(url=SimpleNamespace(path=path), method=method)


def _body(response) -> dict:
    return json.loads(response.body)


def test_error_kinds():
    assert error_kind_of(CredentialsMissingError("x")) == ErrorKind.CREDENTIALS_MISSING
    assert error_kind_of(VendorAPIError("x")) == ErrorKind.VENDOR_ERROR
    assert error_kind_of(ExternalAPIError("x", code="timeout_error")) == ErrorKind.TIMEOUT
    assert error_kind_of(UnsupportedProviderError("nimbus")) == ErrorKind.UNSUPPORTED
    assert error_kind_of(TimeoutError()) == ErrorKind.TIMEOUT
    assert error_kind_of(KeyError("x")) == ErrorKind.INTERNAL


def test_app_exception_is_rendered_with_its_status():
    exc = DeploymentError("AWS deployment failed: boom", details={"kind": "vendor_error"})

    response = handle_exception(_request(), exc, error_id="err-1")

    assert response.status_code == 500
    body = _body(response)
    assert body["success"] is False
    assert body["error"]["message"] == "AWS deployment failed: boom"
    assert body["error"]["code"] == "deployment_failed"
    assert body["error"]["id"] == "err-1"
    assert body["error"]["details"] == {"kind": "vendor_error"}


def test_value_error_maps_to_400():
    response = handle_exception(_request(), ValueError("bad region"))

    assert response.status_code == 400
    assert _body(response)["error"]["message"] == "bad region"


def test_unhandled_exception_is_sanitized():
    response = handle_exception(_request(), RuntimeError("secret=abc"))

    assert response.status_code == 500
    assert "secret" not in _body(response)["error"]["message"]


@pytest.mark.parametrize(
    "exc, leaked",
    [
        (VendorAPIError("AWS list failed: arn:aws:iam::123"), False),
        (UnsupportedProviderError("nimbus"), True),
    ],
)
def test_production_hides_unsafe_messages(exc, leaked):
    prod = SimpleNamespace(ENVIRONMENT="production")
    with patch("app.shared.core.error_governance.get_settings", return_value=prod):
        response = handle_exception(_request(), exc)

    assert (_body(response)["error"]["message"] == exc.message) is leaked
