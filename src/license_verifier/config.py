"""Explicit configuration for verification sessions and the issuer client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from license_verifier.info import IssuerConfig, parse_bool

DEFAULT_INTERVAL_S = 3600.0
DEFAULT_GRACE_S = 5.0
DEFAULT_LICENSE_FILE = "/var/run/secrets/license/key.txt"

ENV_PREFIX = "LICENSE_VERIFIER_"


def _to_positive_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _read_ca(env: Mapping[str, str]) -> bytes:
    inline = env.get(f"{ENV_PREFIX}LICENSE_CA")
    if inline and inline.strip():
        return inline.encode("utf-8")
    ca_file = env.get(f"{ENV_PREFIX}LICENSE_CA_FILE")
    if ca_file and ca_file.strip():
        return Path(ca_file.strip()).read_bytes()
    return b""


@dataclass(frozen=True)
class LicenseConfig:
    license_file: Path
    ca_cert: bytes
    product_name: str
    issuer: IssuerConfig = field(default_factory=IssuerConfig)
    interval_s: float = DEFAULT_INTERVAL_S
    grace_s: float = DEFAULT_GRACE_S
    namespace_override: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "LicenseConfig":
        """Build a config from ``LICENSE_VERIFIER_*`` variables.

        The CA may be given inline (``LICENSE_CA``) or as a file path
        (``LICENSE_CA_FILE``); inline wins. An unset enforcement flag
        selects the production issuer; only an explicit false value
        switches the default issuer address to QA.
        """
        if env is None:
            env = os.environ
        license_file = (env.get(f"{ENV_PREFIX}LICENSE_FILE") or DEFAULT_LICENSE_FILE).strip()
        issuer_url = (env.get(f"{ENV_PREFIX}ISSUER_URL") or "").strip()
        namespace = (env.get(f"{ENV_PREFIX}NAMESPACE") or "").strip()
        enforce = (env.get(f"{ENV_PREFIX}ENFORCE_LICENSE") or "").strip()
        return cls(
            license_file=Path(license_file),
            ca_cert=_read_ca(env),
            product_name=(env.get(f"{ENV_PREFIX}PRODUCT_NAME") or "").strip(),
            issuer=IssuerConfig(
                enforce_license=parse_bool(enforce) if enforce else True,
                base_url=issuer_url or None,
            ),
            interval_s=_to_positive_float(env.get(f"{ENV_PREFIX}INTERVAL_S"), DEFAULT_INTERVAL_S),
            grace_s=_to_positive_float(env.get(f"{ENV_PREFIX}GRACE_S"), DEFAULT_GRACE_S),
            namespace_override=namespace or None,
        )
