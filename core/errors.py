"""
Error taxonomy for the call → transcript → email pipeline.

    RelayError
    ├── ValidationError   bad form input at intake            (HTTP 400, no retry)
    ├── PayloadError      malformed webhook envelope          (HTTP 400)
    ├── ProviderError     voice provider create/fetch failure (HTTP 500 at intake)
    ├── DeliveryError     every email transport failed        (logged only)
    └── SettingsError     required configuration missing      (startup)
"""
from __future__ import annotations


class RelayError(Exception):
    """Base exception for all relay operations."""

    def __init__(self, message: str, retryable: bool = False):
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class ValidationError(RelayError):
    """User input rejected at intake. Shown to the submitter as-is."""


class PayloadError(RelayError):
    """Webhook body is missing `event`, `call` or `call.call_id`."""


class ProviderError(RelayError):
    def __init__(self, message: str, status_code: int = 0, retryable: bool = False):
        self.status_code = status_code
        super().__init__(message, retryable=retryable)


class DeliveryError(RelayError):
    def __init__(self, message: str, attempts: list[dict] = None):
        self.attempts = attempts or []
        super().__init__(message)


class SettingsError(RelayError):
    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required configuration: {', '.join(self.missing)}")
