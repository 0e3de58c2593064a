from license_verifier.verifier.failure import FailureHandler, ReportResult, report_failure
from license_verifier.verifier.scheduler import (
    VerificationOptions,
    VerificationThread,
    start_periodic_verification,
    verify_license,
    verify_license_periodically,
)
from license_verifier.verifier.shutdown import ProcessShutdown

__all__ = [
    "FailureHandler",
    "ProcessShutdown",
    "ReportResult",
    "VerificationOptions",
    "VerificationThread",
    "report_failure",
    "start_periodic_verification",
    "verify_license",
    "verify_license_periodically",
]
