"""
Exception hierarchy for the entitlement service.

Every error carries typed attributes; routes map them to HTTP statuses.
"""


class EntitlementServiceError(Exception):
    """Base exception for all entitlement service errors."""


class VerificationError(EntitlementServiceError):
    """
    Raised when the billing authority cannot confirm a purchase token.

    Covers network errors, authentication failures, unknown tokens and empty
    responses. A token that resolves to REVOKED is a valid result, not this error.
    """

    def __init__(self, reason: str, message: str, retryable: bool = True) -> None:
        self.reason = reason
        self.message = message
        self.retryable = retryable
        super().__init__(f"Verification failed ({reason}): {message}")


class StorageError(EntitlementServiceError):
    """Raised when the purchase store is unavailable. Retryable."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Storage error during {operation}: {message}")


class AuthenticationError(EntitlementServiceError):
    """Raised when a shared secret does not match."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class NotificationDecodeError(EntitlementServiceError):
    """Raised when a push notification's data cannot be decoded."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Notification decode error: {message}")
