# --- test import path bootstrap (src/ layout) ---
import sys as _sys
from pathlib import Path as _Path

_SRC = _Path(__file__).resolve().parents[1] / "src"
if _SRC.is_dir():
    _p = str(_SRC)
    if _p not in _sys.path:
        _sys.path.insert(0, _p)
# --- end bootstrap ---

import threading
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from license_verifier.errors import KubeAPIError


def _key_usage(*, cert_sign: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=cert_sign,
        crl_sign=cert_sign,
        encipher_only=False,
        decipher_only=False,
    )


class TestPKI:
    """Throwaway CA that issues cluster-bound client certificates."""

    __test__ = False

    def __init__(self, common_name: str = "license-verifier test root", *, is_ca: bool = True) -> None:
        self.key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        now = datetime.now(timezone.utc)
        self.cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=3650))
            .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
            .add_extension(_key_usage(cert_sign=is_ca), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(self.key.public_key()), critical=False)
            .sign(self.key, hashes.SHA256())
        )

    @property
    def ca_pem(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.PEM)

    def issue(
        self,
        *,
        dns_name: str = "cluster-123",
        organizations: tuple[str, ...] = ("Acme",),
        client_auth: bool | None = True,
        minimal: bool = False,
        critical_unknown: bool = False,
        not_before: datetime | None = None,
        not_after: datetime | None = None,
    ) -> bytes:
        """Issue a leaf PEM.

        ``client_auth=None`` omits the EKU extension. ``minimal`` leaves out
        BasicConstraints, KeyUsage, AKI and SKI, like a Go
        ``x509.CreateCertificate`` leaf signed by a CA without an SKI.
        """
        key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.now(timezone.utc)
        attrs = [x509.NameAttribute(NameOID.COMMON_NAME, dns_name)]
        attrs += [x509.NameAttribute(NameOID.ORGANIZATION_NAME, org) for org in organizations]
        builder = (
            x509.CertificateBuilder()
            .subject_name(x509.Name(attrs))
            .issuer_name(self.cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before or now - timedelta(hours=1))
            .not_valid_after(not_after or now + timedelta(days=365))
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(dns_name)]), critical=False)
        )
        if client_auth is not None:
            usage = ExtendedKeyUsageOID.CLIENT_AUTH if client_auth else ExtendedKeyUsageOID.CODE_SIGNING
            builder = builder.add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
        if not minimal:
            ca_ski = self.cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
            builder = (
                builder.add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
                .add_extension(_key_usage(cert_sign=False), critical=True)
                .add_extension(
                    x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ca_ski),
                    critical=False,
                )
                .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
            )
        if critical_unknown:
            builder = builder.add_extension(
                x509.UnrecognizedExtension(x509.ObjectIdentifier("1.3.6.1.4.1.55555.1"), b"\x05\x00"),
                critical=True,
            )
        cert = builder.sign(self.key, hashes.SHA256())
        return cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture(scope="session")
def pki() -> TestPKI:
    return TestPKI()


@pytest.fixture(scope="session")
def other_pki() -> TestPKI:
    return TestPKI("unrelated root")


class FakeKube:
    """In-memory stand-in for KubeClient keyed by (kind, namespace, name)."""

    def __init__(self, objects: list[dict] | None = None, *, kube_system_uid: str = "cluster-123") -> None:
        self.objects: dict[tuple[str, str, str], dict] = {}
        self.events: dict[tuple[str, str], dict] = {}
        self.calls: list[tuple] = []
        self.errors: dict[str, KubeAPIError] = {}
        self.kube_system_uid = kube_system_uid
        for obj in objects or []:
            meta = obj["metadata"]
            self.objects[(obj["kind"], meta.get("namespace", ""), meta["name"])] = obj

    def _maybe_fail(self, op: str) -> None:
        if op in self.errors:
            raise self.errors[op]

    def get_namespace(self, name: str) -> dict:
        self.calls.append(("get_namespace", name))
        self._maybe_fail("get_namespace")
        return {"metadata": {"name": name, "uid": self.kube_system_uid}}

    def get_object(self, api_version: str, kind: str, namespace: str, name: str) -> dict:
        self.calls.append(("get_object", kind, namespace, name))
        self._maybe_fail(f"get_{kind}")
        obj = self.objects.get((kind, namespace, name))
        if obj is None:
            raise KubeAPIError(404, "Not Found", f'{kind.lower()}s "{name}" not found')
        return dict(obj)

    def get_event(self, namespace: str, name: str) -> dict:
        self.calls.append(("get_event", namespace, name))
        self._maybe_fail("get_event")
        event = self.events.get((namespace, name))
        if event is None:
            raise KubeAPIError(404, "Not Found", f'events "{name}" not found')
        return event

    def create_event(self, namespace: str, event: dict) -> dict:
        self.calls.append(("create_event", namespace, event["metadata"]["name"]))
        self._maybe_fail("create_event")
        self.events[(namespace, event["metadata"]["name"])] = event
        return event

    def patch_event(self, namespace: str, name: str, patch: dict) -> dict:
        self.calls.append(("patch_event", namespace, name, patch))
        self._maybe_fail("patch_event")
        current = self.events[(namespace, name)]
        current.update(patch)
        return current


def workload_objects(namespace: str = "demo") -> list[dict]:
    return [
        {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": "api-7f44f44b8f-abcd1",
                "namespace": namespace,
                "uid": "pod-uid",
                "ownerReferences": [
                    {"apiVersion": "apps/v1", "kind": "ReplicaSet", "name": "api-7f44f44b8f", "uid": "rs-uid", "controller": True}
                ],
            },
        },
        {
            "apiVersion": "apps/v1",
            "kind": "ReplicaSet",
            "metadata": {
                "name": "api-7f44f44b8f",
                "namespace": namespace,
                "uid": "rs-uid",
                "ownerReferences": [
                    {"apiVersion": "apps/v1", "kind": "Deployment", "name": "api", "uid": "deploy-uid", "controller": True}
                ],
            },
        },
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": "api", "namespace": namespace, "uid": "deploy-uid", "resourceVersion": "42"},
        },
    ]


@pytest.fixture
def fake_kube() -> FakeKube:
    return FakeKube(workload_objects())


class RecordingShutdown:
    def __init__(self, cancel: threading.Event | None = None, grace_s: float = 5.0) -> None:
        self.cancel = cancel if cancel is not None else threading.Event()
        self.grace_s = grace_s
        self.terminated = 0
        self.acknowledged = 0

    def acknowledge(self) -> None:
        self.acknowledged += 1

    def terminate(self, code: int = 1) -> None:
        self.terminated += 1
        self.cancel.set()
