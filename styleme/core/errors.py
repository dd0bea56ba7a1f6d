"""
Typed errors raised by the try-on pipeline.

Every error carries a ``kind`` tag and an ``action`` category so the calling
layer can decide between showing an upgrade prompt, asking the user to retry
later, rejecting the request, or pointing at support.
"""

from typing import Optional

__all__ = [
    "TryOnError",
    "ValidationError",
    "EncodingError",
    "EntitlementError",
    "AuthError",
    "QuotaError",
    "InputError",
    "RateLimitError",
    "TransientError",
    "JobFailedError",
    "JobTimeoutError",
    "UnexpectedResponseError",
    "InvalidResultError",
    "ACTION_UPGRADE",
    "ACTION_RETRY_LATER",
    "ACTION_INVALID_REQUEST",
    "ACTION_CONTACT_SUPPORT",
]

ACTION_UPGRADE = "upgrade"
ACTION_RETRY_LATER = "retry_later"
ACTION_INVALID_REQUEST = "invalid_request"
ACTION_CONTACT_SUPPORT = "contact_support"


class TryOnError(Exception):
    """Base class for every failure surfaced by the try-on core."""

    kind = "tryon_error"
    action = ACTION_CONTACT_SUPPORT

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {"kind": self.kind, "action": self.action, "message": self.message}


class ValidationError(TryOnError):
    kind = "validation"
    action = ACTION_INVALID_REQUEST


class EncodingError(TryOnError):
    kind = "encoding"
    action = ACTION_INVALID_REQUEST


class EntitlementError(TryOnError):
    """Raised when the caller may not use try-on right now."""

    kind = "entitlement"
    action = ACTION_UPGRADE

    def __init__(self, message: str, *, can_upgrade: bool = True):
        super().__init__(message)
        self.can_upgrade = can_upgrade

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["can_upgrade"] = self.can_upgrade
        return data


class AuthError(TryOnError):
    kind = "auth"


class QuotaError(TryOnError):
    kind = "quota"


class InputError(TryOnError):
    kind = "input"
    action = ACTION_INVALID_REQUEST


class RateLimitError(TryOnError):
    kind = "rate_limit"
    action = ACTION_RETRY_LATER


class TransientError(TryOnError):
    """Server-side or network failure that may succeed on another attempt."""

    kind = "transient"
    action = ACTION_RETRY_LATER


class JobFailedError(TryOnError):
    kind = "job_failed"

    def __init__(self, message: str, *, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class JobTimeoutError(TryOnError):
    kind = "job_timeout"
    action = ACTION_RETRY_LATER

    def __init__(self, message: str, *, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class UnexpectedResponseError(TryOnError):
    kind = "unexpected_response"


class InvalidResultError(TryOnError):
    kind = "invalid_result"
