"""Client for the remote license issuer."""

from __future__ import annotations

import base64
import binascii
import http.client
import json
import shlex
import ssl
import urllib.error
import urllib.request
from dataclasses import dataclass

import structlog

from license_verifier.errors import (
    IssuerTransportError,
    ResponseDecodeError,
    ServerResponseError,
)
from license_verifier.info import IssuerConfig

logger = structlog.get_logger(__name__)

LICENSE_GROUP = "licenses.appscode.com"
LICENSE_RESOURCE = f"License.{LICENSE_GROUP}"


@dataclass(frozen=True)
class AcquiredLicense:
    license: bytes
    contract: dict | None = None


def _curl_command(request: urllib.request.Request) -> str:
    argv = ["curl", "-X", request.get_method()]
    if request.data:
        argv += ["-d", request.data.decode("utf-8")]
    for key, value in sorted(request.header_items()):
        if key.lower() == "authorization":
            value = "Bearer <redacted>"
        argv += ["-H", f"{key}: {value}"]
    argv.append(request.full_url)
    return " ".join(shlex.quote(arg) for arg in argv)


def _decode_license_response(body: bytes) -> AcquiredLicense:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ResponseDecodeError(f"license response is not valid json: {exc}") from exc
    if not isinstance(data, dict):
        raise ResponseDecodeError("license response is not a json object")

    encoded = data.get("license")
    if not isinstance(encoded, str):
        raise ResponseDecodeError("license response has no license field")
    try:
        license = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ResponseDecodeError(f"license field is not base64: {exc}") from exc

    contract = data.get("contract")
    if contract is not None and not isinstance(contract, dict):
        raise ResponseDecodeError("contract field must be an object")
    return AcquiredLicense(license=license, contract=contract)


class LicenseIssuerClient:
    def __init__(self, issuer: IssuerConfig, token: str, cluster_uid: str) -> None:
        self.url = issuer.license_issuer_api_endpoint()
        self.token = token
        self.cluster_uid = cluster_uid

    def acquire_license(self, features: list[str], *, timeout: float | None = None) -> AcquiredLicense:
        """POST the cluster and features to the issuer and return the license.

        One request, no retries. Without ``timeout`` the call blocks for as
        long as the socket default allows.
        """
        data = json.dumps({"cluster": self.cluster_uid, "features": list(features)}).encode("utf-8")
        request = urllib.request.Request(self.url, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        if self.token:
            request.add_header("Authorization", f"Bearer {self.token}")
        logger.debug("license_issuer_request", curl=_curl_command(request))

        kwargs = {} if timeout is None else {"timeout": timeout}
        try:
            with urllib.request.urlopen(request, **kwargs) as response:
                status = response.status
                body = response.read()
        except urllib.error.HTTPError as exc:
            try:
                raw = exc.read()
            except OSError:
                raw = b""
            raise ServerResponseError(
                exc.code,
                "POST",
                LICENSE_RESOURCE,
                raw.decode("utf-8", errors="replace"),
            ) from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, ssl.SSLCertVerificationError):
                logger.error(
                    "license_issuer_unverified_certificate",
                    url=self.url,
                    verify_code=exc.reason.verify_code,
                    verify_message=exc.reason.verify_message,
                )
            raise IssuerTransportError(f"failed to reach license issuer {self.url}: {exc.reason}") from exc
        except http.client.HTTPException as exc:
            raise IssuerTransportError(f"bad response from license issuer {self.url}: {exc!r}") from exc
        except OSError as exc:
            raise IssuerTransportError(f"failed to reach license issuer {self.url}: {exc}") from exc

        if not 200 <= status < 300:
            raise ServerResponseError(status, "POST", LICENSE_RESOURCE, body.decode("utf-8", errors="replace"))
        return _decode_license_response(body)
