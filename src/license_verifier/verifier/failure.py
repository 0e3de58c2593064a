"""Reporting and enforcement when license verification fails."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import structlog

from license_verifier.errors import KubeAPIError, LicenseVerifierError
from license_verifier.k8s import client as k8s_client
from license_verifier.k8s.events import (
    create_or_patch_event,
    name_with_suffix,
    now_rfc3339,
    object_reference,
)
from license_verifier.k8s.rbac_diagnostics import parse_k8s_forbidden
from license_verifier.k8s.workload import detect_workload
from license_verifier.license.outcome import VerificationOutcome
from license_verifier.verifier.shutdown import ProcessShutdown

logger = structlog.get_logger(__name__)

EVENT_SOURCE_LICENSE_VERIFIER = "License Verifier"
EVENT_REASON_LICENSE_VERIFICATION_FAILED = "License Verification Failed"
EVENT_TYPE_WARNING = "Warning"
EVENT_NAME_SUFFIX = "license"


@dataclass(frozen=True)
class ReportResult:
    reported: bool
    skipped: str | None = None
    error: str | None = None
    event_name: str | None = None
    action: str | None = None


def failure_message(outcome: VerificationOutcome) -> str:
    return f"Failed to verify license. Reason: {outcome.reason}"


def _event_transform(ref: dict, message: str) -> Callable[[dict], dict]:
    def transform(event: dict) -> dict:
        now = now_rfc3339()
        event["involvedObject"] = ref
        event["type"] = EVENT_TYPE_WARNING
        event["source"] = {"component": EVENT_SOURCE_LICENSE_VERIFIER}
        event["reason"] = EVENT_REASON_LICENSE_VERIFICATION_FAILED
        event["message"] = message
        if not event.get("firstTimestamp"):
            event["firstTimestamp"] = now
        event["lastTimestamp"] = now
        event["count"] = int(event.get("count") or 0) + 1
        return event

    return transform


def report_failure(
    client,
    outcome: VerificationOutcome,
    *,
    in_cluster: Callable[[], bool] = k8s_client.possibly_in_cluster,
    pod_name: Callable[[], str] = k8s_client.current_pod_name,
    namespace: str | None = None,
) -> ReportResult:
    """Attach a Warning event for ``outcome`` to the workload's root owner.

    Never raises for reporting problems; the returned result says what
    happened.
    """
    if not in_cluster():
        return ReportResult(reported=False, skipped="not_in_cluster")
    if client is None:
        return ReportResult(reported=False, skipped="no_client")

    try:
        pod = pod_name()
    except OSError as exc:
        return ReportResult(reported=False, error=f"failed to read pod name: {exc}")
    ns = namespace or k8s_client.current_namespace()

    try:
        parent, _chain = detect_workload(client, ns, pod)
        event_name = name_with_suffix(parent["metadata"]["name"], EVENT_NAME_SUFFIX)
        _event, action = create_or_patch_event(
            client,
            ns,
            event_name,
            _event_transform(object_reference(parent), failure_message(outcome)),
        )
    except KubeAPIError as exc:
        denial = parse_k8s_forbidden(exc.message) if exc.is_forbidden else None
        if denial is not None:
            logger.warning("license_event_rbac_denied", hint=denial.hint(), rule=denial.suggested_rule())
        return ReportResult(reported=False, error=str(exc))
    except LicenseVerifierError as exc:
        return ReportResult(reported=False, error=str(exc))
    return ReportResult(reported=True, event_name=event_name, action=action)


class FailureHandler:
    """Log, best-effort report, then terminate the process."""

    def __init__(self, shutdown: ProcessShutdown, *, report=report_failure) -> None:
        self.shutdown = shutdown
        self._report = report

    def handle(self, options, outcome: VerificationOutcome) -> None:
        try:
            logger.error(
                "license_verification_failed",
                reason=outcome.reason,
                failure_code=outcome.failure.value if outcome.failure else None,
            )
            result = self._report(
                options.client,
                outcome,
                namespace=options.namespace,
            )
            # Logged and dropped: termination does not depend on it.
            if result.reported:
                logger.info("license_event_recorded", event=result.event_name, action=result.action)
            elif result.skipped:
                logger.info("license_event_skipped", why=result.skipped)
            else:
                logger.warning("license_event_failed", error=result.error)
        except Exception as exc:
            logger.warning("license_failure_report_crashed", error=repr(exc))
        finally:
            self.shutdown.terminate()
