"""One-shot and periodic license verification."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import structlog

from license_verifier.config import LicenseConfig
from license_verifier.errors import KubeAPIError, KubeConfigError
from license_verifier.k8s.client import KubeClient
from license_verifier.k8s.clusterid import cluster_uid
from license_verifier.license.outcome import FailureKind, VerificationOutcome
from license_verifier.license.verify import validate_license
from license_verifier.verifier.failure import FailureHandler
from license_verifier.verifier.shutdown import ProcessShutdown

logger = structlog.get_logger(__name__)


@dataclass
class VerificationOptions:
    license_file: Path
    product_name: str
    ca_cert: bytes
    namespace: str | None = None
    client: object | None = None
    cluster_uid: str = ""
    license: bytes = field(default=b"", repr=False)

    @classmethod
    def from_config(cls, config: LicenseConfig) -> "VerificationOptions":
        return cls(
            license_file=config.license_file,
            product_name=config.product_name,
            ca_cert=config.ca_cert,
            namespace=config.namespace_override,
        )

    def create_client(self, factory: Callable[[], object]) -> VerificationOutcome | None:
        try:
            self.client = factory()
        except KubeConfigError as exc:
            return VerificationOutcome.failed(FailureKind.CLIENT_CONSTRUCTION, str(exc))
        return None

    def read_cluster_uid(self) -> VerificationOutcome | None:
        try:
            self.cluster_uid = cluster_uid(self.client)
        except KubeAPIError as exc:
            return VerificationOutcome.failed(FailureKind.IDENTITY_RESOLUTION, str(exc))
        return None

    def read_license_file(self) -> VerificationOutcome | None:
        try:
            self.license = self.license_file.read_bytes()
        except OSError as exc:
            return VerificationOutcome.failed(FailureKind.CREDENTIAL_READ, str(exc))
        return None

    def validate(self) -> VerificationOutcome:
        return validate_license(self.license, self.ca_cert, self.cluster_uid, self.product_name)


def _default_handler(config: LicenseConfig, cancel: threading.Event | None = None) -> FailureHandler:
    return FailureHandler(ProcessShutdown(cancel, grace_s=config.grace_s))


def _unexpected(kind: FailureKind, step: str, exc: Exception) -> VerificationOutcome:
    logger.exception("license_verification_error", step=step)
    return VerificationOutcome.failed(kind, f"unexpected error during {step}: {exc!r}")


def _setup_session(options: VerificationOptions, client_factory: Callable[[], object]) -> VerificationOutcome | None:
    try:
        failed = options.create_client(client_factory)
    except Exception as exc:
        return _unexpected(FailureKind.CLIENT_CONSTRUCTION, "client construction", exc)
    if failed is not None:
        return failed
    try:
        return options.read_cluster_uid()
    except Exception as exc:
        return _unexpected(FailureKind.IDENTITY_RESOLUTION, "cluster identity resolution", exc)


def _attempt(options: VerificationOptions) -> VerificationOutcome:
    logger.info("verifying_license", license_file=str(options.license_file))
    try:
        failed = options.read_license_file()
    except Exception as exc:
        return _unexpected(FailureKind.CREDENTIAL_READ, "license read", exc)
    if failed is not None:
        return failed
    try:
        return options.validate()
    except Exception as exc:
        return _unexpected(FailureKind.CHAIN, "license validation", exc)


def verify_license(
    config: LicenseConfig,
    *,
    client_factory: Callable[[], object] = KubeClient.in_cluster,
    handler: FailureHandler | None = None,
    on_outcome: Callable[[VerificationOutcome], None] | None = None,
) -> VerificationOutcome:
    """Verify the license once; on failure the handler ends the process.

    ``on_outcome`` sees the outcome before the handler does, since the
    default handler does not return.
    """
    options = VerificationOptions.from_config(config)
    outcome = _setup_session(options, client_factory) or _attempt(options)
    if on_outcome is not None:
        on_outcome(outcome)
    if not outcome.ok:
        (handler or _default_handler(config)).handle(options, outcome)
        return outcome
    logger.info("license_verified", cluster=options.cluster_uid)
    return outcome


def verify_license_periodically(
    config: LicenseConfig,
    stop: threading.Event,
    *,
    interval_s: float | None = None,
    client_factory: Callable[[], object] = KubeClient.in_cluster,
    handler: FailureHandler | None = None,
) -> VerificationOutcome:
    """Verify now and then every interval until ``stop`` is set.

    The client and cluster UID are resolved once; the license file is re-read
    on every tick. ``stop`` is only checked between attempts. Returns the
    last outcome: a failure (already handed to the handler) or the last
    success before cancellation.
    """
    if interval_s is None:
        interval_s = config.interval_s
    handler = handler or _default_handler(config, stop)
    options = VerificationOptions.from_config(config)

    failed = _setup_session(options, client_factory)
    if failed is not None:
        handler.handle(options, failed)
        return failed

    outcome = VerificationOutcome.success()
    while not stop.is_set():
        outcome = _attempt(options)
        if not outcome.ok:
            handler.handle(options, outcome)
            return outcome
        logger.info("license_verified", cluster=options.cluster_uid)
        if stop.wait(interval_s):
            break
    logger.info("license_verification_stopped")
    return outcome


class VerificationThread(threading.Thread):
    """Daemon thread running ``verify_license_periodically``.

    ``outcome`` stays ``None`` until the loop returns.
    """

    def __init__(self, config: LicenseConfig, stop: threading.Event, **kwargs) -> None:
        super().__init__(name="license-verifier", daemon=True)
        self.config = config
        self.stop_event = stop
        self.kwargs = kwargs
        self.outcome: VerificationOutcome | None = None

    def run(self) -> None:
        self.outcome = verify_license_periodically(self.config, self.stop_event, **self.kwargs)


def start_periodic_verification(
    config: LicenseConfig,
    stop: threading.Event,
    **kwargs,
) -> VerificationThread:
    thread = VerificationThread(config, stop, **kwargs)
    thread.start()
    return thread
