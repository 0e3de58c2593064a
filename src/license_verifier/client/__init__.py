from license_verifier.client.acquire import AcquiredLicense, LicenseIssuerClient

__all__ = ["AcquiredLicense", "LicenseIssuerClient"]
