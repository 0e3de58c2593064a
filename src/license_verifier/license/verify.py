"""Offline verification of cluster-bound X.509 licenses."""

from __future__ import annotations

from datetime import datetime, timezone

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from license_verifier.license.outcome import FailureKind, VerificationOutcome
from license_verifier.license.pem import find_pem_block, iter_pem_blocks, looks_like_token

_CLIENT_USAGES = {ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE}


def load_trust_roots(ca_cert: bytes) -> list[x509.Certificate]:
    roots: list[x509.Certificate] = []
    for block in iter_pem_blocks(ca_cert or b""):
        if block.type != "CERTIFICATE":
            continue
        try:
            roots.append(x509.load_der_x509_certificate(block.der))
        except ValueError:
            continue
    return roots


def _extension(cert: x509.Certificate, ext_type):
    try:
        return cert.extensions.get_extension_for_class(ext_type).value
    except x509.ExtensionNotFound:
        return None


def _dns_names(cert: x509.Certificate) -> set[str]:
    san = _extension(cert, x509.SubjectAlternativeName)
    if san is None:
        return set()
    return {name.lower() for name in san.get_values_for_type(x509.DNSName)}


def _organizations(cert: x509.Certificate) -> set[str]:
    return {
        attr.value
        for attr in cert.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
        if isinstance(attr.value, str)
    }


def _allows_client_auth(cert: x509.Certificate) -> bool:
    # No EKU extension means any usage.
    usage = _extension(cert, x509.ExtendedKeyUsage)
    return usage is None or bool(_CLIENT_USAGES.intersection(usage))


def _unusable(cert: x509.Certificate, now: datetime, role: str) -> str | None:
    if now < cert.not_valid_before_utc:
        return f"{role} is not valid yet"
    if now > cert.not_valid_after_utc:
        return f"{role} has expired"
    for ext in cert.extensions:
        if ext.critical and isinstance(ext.value, x509.UnrecognizedExtension):
            return f"{role} has unhandled critical extension {ext.oid.dotted_string}"
    if not _allows_client_auth(cert):
        return f"{role} specifies an incompatible key usage"
    return None


def _chain_problem(cert: x509.Certificate, roots: list[x509.Certificate], now: datetime) -> str | None:
    """Return why ``cert`` is not directly issued by a usable root, or None.

    Roots without a BasicConstraints extension may sign; roots that
    declare ``ca=False`` may not.
    """
    problem = _unusable(cert, now, "certificate")
    if problem is not None:
        return problem
    problem = "certificate signed by unknown authority"
    for root in roots:
        try:
            cert.verify_directly_issued_by(root)
        except (ValueError, TypeError, InvalidSignature):
            continue
        constraints = _extension(root, x509.BasicConstraints)
        if constraints is not None and not constraints.ca:
            problem = "issuer is not a certificate authority"
            continue
        problem = _unusable(root, now, "issuer")
        if problem is None:
            return None
    return problem


def validate_license(
    license: bytes,
    ca_cert: bytes,
    cluster_uid: str,
    product_name: str,
    *,
    now: datetime | None = None,
) -> VerificationOutcome:
    """Check a PEM license against the trust roots, cluster and product.

    Steps run in a fixed order and the first failure is returned. The
    license must be signed directly by one of the roots, be within its
    validity window and permit client authentication. The cluster UID is
    matched against the certificate's DNS-name SANs.
    """
    block = find_pem_block(license or b"")
    if block is None:
        if looks_like_token(license or b""):
            # Token licenses are not issued yet; refuse them explicitly.
            return VerificationOutcome.failed(
                FailureKind.UNSUPPORTED_FORMAT,
                "token licenses are not supported",
            )
        return VerificationOutcome.failed(FailureKind.DECODE, "failed to parse certificate PEM")

    try:
        cert = x509.load_der_x509_certificate(block.der)
    except ValueError as exc:
        return VerificationOutcome.failed(FailureKind.PARSE, f"failed to parse certificate: {exc}")

    roots = load_trust_roots(ca_cert)
    if not roots:
        return VerificationOutcome.failed(FailureKind.ROOT_POOL, "failed to parse root certificate")

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    problem = _chain_problem(cert, roots, now)
    if problem is not None:
        return VerificationOutcome.failed(FailureKind.CHAIN, f"failed to verify certificate: {problem}")

    if not cluster_uid or cluster_uid.lower() not in _dns_names(cert):
        return VerificationOutcome.failed(
            FailureKind.CHAIN,
            f"failed to verify certificate: certificate is not valid for cluster {cluster_uid!r}",
        )

    if product_name not in _organizations(cert):
        return VerificationOutcome.failed(
            FailureKind.PRODUCT_MISMATCH,
            f"license was not issued for {product_name}",
        )
    return VerificationOutcome.success()
