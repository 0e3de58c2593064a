"""Exception types shared across the package."""

from __future__ import annotations


class LicenseVerifierError(Exception):
    pass


class KubeConfigError(LicenseVerifierError):
    """In-cluster client configuration is missing or unreadable."""


class KubeAPIError(LicenseVerifierError):
    def __init__(self, status: int, reason: str, message: str, body: str = "") -> None:
        super().__init__(f"kube api {status} {reason}: {message}" if status else f"kube api: {message}")
        self.status = status
        self.reason = reason
        self.message = message
        self.body = body

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_forbidden(self) -> bool:
        return self.status == 403


class WorkloadDetectionError(LicenseVerifierError):
    pass


class LicenseIssuerError(LicenseVerifierError):
    pass


class IssuerURLError(LicenseIssuerError, ValueError):
    pass


class IssuerTransportError(LicenseIssuerError):
    """The issuer could not be reached (DNS, TCP, TLS)."""


class ServerResponseError(LicenseIssuerError):
    """The issuer answered with a non-success status.

    The body is kept verbatim and never parsed.
    """

    def __init__(self, status_code: int, method: str, resource: str, body: str) -> None:
        super().__init__(
            f"license issuer responded with status {status_code} ({method.lower()} {resource}): {body}"
        )
        self.status_code = status_code
        self.method = method
        self.resource = resource
        self.body = body


class ResponseDecodeError(LicenseIssuerError):
    pass
