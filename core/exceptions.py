"""
Core exceptions for the OhMyCook client.

AI backend failures are terminal to the triggering action and are surfaced to
the user. Persistence failures are absorbed by the sync engine.
"""

from typing import Optional


class OhMyCookError(Exception):
    """Base exception for the client core."""


class AIBackendError(OhMyCookError):
    """A single logical AI backend request failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, action: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.action = action


class UpstreamOverloadedError(AIBackendError):
    """Backend answered with a JSON error that is worth retrying."""


class NonRetryableError(AIBackendError):
    """Malformed or unexpected upstream response; surfaced verbatim."""


class NetworkError(AIBackendError):
    """Transport-level failure talking to the AI backend."""


class RetryExhaustedError(AIBackendError):
    """Upstream stayed degraded through every allowed attempt."""

    def __init__(self, message: str, attempts: int, status_code: Optional[int] = None, action: Optional[str] = None):
        super().__init__(message, status_code=status_code, action=action)
        self.attempts = attempts


class RemoteUnavailableError(OhMyCookError):
    """The remote store could not be reached."""


class RemoteRequestError(RemoteUnavailableError):
    """The remote store answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str, path: str = ""):
        details = body or "no response body"
        super().__init__(f"Supabase request failed ({status_code}): {details}")
        self.status_code = status_code
        self.body = body
        self.path = path


class ConfigurationMissingError(OhMyCookError):
    """Supabase is not configured."""


class AuthenticationError(OhMyCookError):
    """Sign-in, sign-up or session refresh was rejected."""
