import base64
import http.client
import io
import json
import ssl
import urllib.error

import pytest

import license_verifier.client.acquire as m
from license_verifier.client.acquire import LicenseIssuerClient
from license_verifier.errors import IssuerTransportError, ResponseDecodeError, ServerResponseError
from license_verifier.info import IssuerConfig


class _FakeResponse:
    def __init__(self, status: int, body: bytes) -> None:
        self.status = status
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def _install(monkeypatch, handler) -> dict:
    seen: dict = {}

    def fake_urlopen(request, **kwargs):
        seen["request"] = request
        seen["kwargs"] = kwargs
        return handler(request)

    monkeypatch.setattr(m.urllib.request, "urlopen", fake_urlopen)
    return seen


def _client(token: str = "") -> LicenseIssuerClient:
    return LicenseIssuerClient(IssuerConfig(base_url="https://issuer.test"), token, "c1")


def test_acquire_license_returns_decoded_bytes(monkeypatch) -> None:
    pem = b"-----BEGIN CERTIFICATE-----\n...\n-----END CERTIFICATE-----\n"
    body = json.dumps({"license": base64.b64encode(pem).decode("ascii")}).encode()
    seen = _install(monkeypatch, lambda _req: _FakeResponse(200, body))

    acquired = _client().acquire_license(["alpha"])

    assert acquired.license == pem
    assert acquired.contract is None
    request = seen["request"]
    assert request.full_url == "https://issuer.test/api/v1/license/issue"
    assert request.get_method() == "POST"
    assert json.loads(request.data) == {"cluster": "c1", "features": ["alpha"]}
    assert request.get_header("Authorization") is None
    assert seen["kwargs"] == {}


def test_acquire_license_sends_bearer_token_and_timeout(monkeypatch) -> None:
    body = json.dumps({"license": "", "contract": {"id": "ctr-1", "plan": "enterprise"}}).encode()
    seen = _install(monkeypatch, lambda _req: _FakeResponse(200, body))

    acquired = _client(token="s3cret").acquire_license(["alpha", "beta"], timeout=12.5)

    assert seen["request"].get_header("Authorization") == "Bearer s3cret"
    assert seen["kwargs"] == {"timeout": 12.5}
    assert acquired.license == b""
    assert acquired.contract == {"id": "ctr-1", "plan": "enterprise"}


def test_acquire_license_http_error_keeps_raw_body(monkeypatch) -> None:
    def deny(req):
        raise urllib.error.HTTPError(req.full_url, 403, "Forbidden", {}, io.BytesIO(b"forbidden"))

    _install(monkeypatch, deny)

    with pytest.raises(ServerResponseError) as excinfo:
        _client().acquire_license(["alpha"])

    assert excinfo.value.status_code == 403
    assert excinfo.value.body == "forbidden"
    assert excinfo.value.resource == "License.licenses.appscode.com"
    assert excinfo.value.method == "POST"


def test_acquire_license_non_2xx_without_http_error(monkeypatch) -> None:
    _install(monkeypatch, lambda _req: _FakeResponse(304, b"not modified"))

    with pytest.raises(ServerResponseError) as excinfo:
        _client().acquire_license([])

    assert excinfo.value.status_code == 304
    assert excinfo.value.body == "not modified"


@pytest.mark.parametrize(
    "body",
    [b"<html>", b"[]", b"{}", b'{"license": "***"}', b'{"license": "", "contract": "x"}'],
)
def test_acquire_license_bad_success_body(monkeypatch, body: bytes) -> None:
    _install(monkeypatch, lambda _req: _FakeResponse(200, body))

    with pytest.raises(ResponseDecodeError):
        _client().acquire_license(["alpha"])


def test_acquire_license_transport_error(monkeypatch) -> None:
    def unreachable(_req):
        raise urllib.error.URLError(ConnectionRefusedError(111, "Connection refused"))

    _install(monkeypatch, unreachable)

    with pytest.raises(IssuerTransportError):
        _client().acquire_license(["alpha"])


def test_acquire_license_tls_verification_error(monkeypatch) -> None:
    def bad_cert(_req):
        err = ssl.SSLCertVerificationError(1, "certificate verify failed")
        err.verify_code = 20
        err.verify_message = "unable to get local issuer certificate"
        raise urllib.error.URLError(err)

    _install(monkeypatch, bad_cert)

    with pytest.raises(IssuerTransportError, match="issuer.test"):
        _client().acquire_license(["alpha"])


def test_acquire_license_truncated_body_is_transport_error(monkeypatch) -> None:
    def truncated(_req):
        raise http.client.IncompleteRead(b'{"lic')

    _install(monkeypatch, truncated)

    with pytest.raises(IssuerTransportError, match="IncompleteRead"):
        _client().acquire_license([])


def test_curl_command_redacts_token() -> None:
    request = m.urllib.request.Request("https://issuer.test/x", data=b'{"a":1}', method="POST")
    request.add_header("Authorization", "Bearer s3cret")

    command = m._curl_command(request)

    assert command.startswith("curl -X POST -d")
    assert "s3cret" not in command
    assert command.endswith("https://issuer.test/x")
