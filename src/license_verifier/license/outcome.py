"""Verification outcome values."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

SCHEMA_VERSION = "license_verify.v1"


class FailureKind(str, Enum):
    DECODE = "license_decode_failed"
    UNSUPPORTED_FORMAT = "license_format_unsupported"
    PARSE = "license_parse_failed"
    ROOT_POOL = "license_root_pool_invalid"
    CHAIN = "license_chain_invalid"
    PRODUCT_MISMATCH = "license_product_mismatch"
    IDENTITY_RESOLUTION = "cluster_identity_unresolved"
    CREDENTIAL_READ = "license_io_error"
    CLIENT_CONSTRUCTION = "kube_client_unavailable"


@dataclass(frozen=True)
class VerificationOutcome:
    ok: bool
    failure: FailureKind | None = None
    detail: str | None = None

    @classmethod
    def success(cls) -> "VerificationOutcome":
        return cls(ok=True)

    @classmethod
    def failed(cls, failure: FailureKind, detail: str) -> "VerificationOutcome":
        return cls(ok=False, failure=failure, detail=detail)

    @property
    def reason(self) -> str:
        if self.ok:
            return "ok"
        if self.detail:
            return f"{self.failure.value}: {self.detail}"
        return self.failure.value

    def to_dict(self) -> dict:
        return {
            "schema_version": SCHEMA_VERSION,
            "license_ok": self.ok,
            "reason": self.reason,
            "failure_code": None if self.failure is None else self.failure.value,
            "failure_detail": self.detail,
        }
