from license_verifier.license.outcome import FailureKind, VerificationOutcome
from license_verifier.license.verify import validate_license

__all__ = ["FailureKind", "VerificationOutcome", "validate_license"]
