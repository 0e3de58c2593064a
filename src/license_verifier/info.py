"""License issuer addresses and feature-list helpers."""

from __future__ import annotations

import posixpath
import re
import urllib.parse
from dataclasses import dataclass

from license_verifier.errors import IssuerURLError

PROD_ADDRESS = "https://byte.builders"
QA_ADDRESS = "https://appscode.ninja"
REGISTRATION_API_PATH = "api/v1/register"
LICENSE_ISSUER_API_PATH = "api/v1/license/issue"

_FEATURE_SEP_RE = re.compile(r"[\s,;]+")
_TRUE_VALUES = {"1", "t", "true", "y", "yes", "on"}


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def parse_features(text: str | None) -> list[str]:
    if not text:
        return []
    return sorted({item for item in _FEATURE_SEP_RE.split(text) if item})


def _parse_base_url(raw: str) -> urllib.parse.SplitResult:
    parts = urllib.parse.urlsplit(raw.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise IssuerURLError(f"invalid license issuer address: {raw!r}")
    return parts


@dataclass(frozen=True)
class IssuerConfig:
    enforce_license: bool = True
    base_url: str | None = None

    @property
    def skip_license_verification(self) -> bool:
        return not self.enforce_license

    def api_server_address(self) -> str:
        if self.base_url and self.base_url.strip():
            return self.base_url.strip()
        return QA_ADDRESS if self.skip_license_verification else PROD_ADDRESS

    def _endpoint(self, api_path: str) -> str:
        parts = _parse_base_url(self.api_server_address())
        path = posixpath.join(parts.path or "/", api_path)
        return urllib.parse.urlunsplit((parts.scheme, parts.netloc, path, "", ""))

    def license_issuer_api_endpoint(self) -> str:
        return self._endpoint(LICENSE_ISSUER_API_PATH)

    def registration_api_endpoint(self) -> str:
        return self._endpoint(REGISTRATION_API_PATH)
