"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class GenVaultError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(GenVaultError):
    """Raised for issues related to configuration loading or validation."""


class CredentialError(GenVaultError):
    """Raised when no bearer token or owner identity can be derived from the session."""


class ListingUnavailableError(GenVaultError):
    """Raised when the remote listing endpoint cannot be reached on the first call."""


class RemoteRequestError(GenVaultError):
    """Raised when a remote request fails with a non-success status or transport error."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class AuthorizationError(RemoteRequestError):
    """Raised when the remote service rejects the bearer credential (401/403)."""


class PayloadIntegrityError(GenVaultError):
    """
    Raised when a downloaded payload is not audio, or is too small to be a real track.
    """


class InteractiveDownloadError(GenVaultError):
    """Raised when the interactive (browser) download strategy fails or is unavailable."""


class PromotionError(GenVaultError):
    """Raised when a staged artifact cannot be copied into the output directory."""


class CircuitBreakerError(GenVaultError):
    """Raised when the consecutive-failure breaker is open."""
