"""Exception hierarchy for the NGO portal.

Every error carries an HTTP status and a machine-stable ``reason`` so the web
layer can render it without knowing which workflow raised it.
"""

from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """Base exception for all portal errors."""

    status_code: int = 500
    default_reason: str = "internal_error"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: str | None = None,
        detail: str | None = None,
        **extra: Any,
    ) -> None:
        self.message = message or self.default_message
        self.reason = reason or self.default_reason
        # Operator-facing detail; only rendered in debug mode.
        self.detail = detail
        self.extra = extra
        super().__init__(self.message)


class Unauthenticated(PortalError):
    """No bearer credential, or one that failed verification."""

    status_code = 401
    default_reason = "missing_token"
    default_message = "No authorization token provided"


class Forbidden(PortalError):
    """Valid credential that lacks the required capability."""

    status_code = 403
    default_reason = "insufficient_permissions"
    default_message = "Insufficient permissions"


class ServiceUnavailable(PortalError):
    """A required collaborator (verifier, database, provider keys) is not configured."""

    status_code = 500
    default_reason = "service_unavailable"
    default_message = "Service is not initialized"


class ValidationFailed(PortalError):
    """Structurally invalid payload."""

    status_code = 400
    default_reason = "validation_error"
    default_message = "Invalid request"


class NotFound(PortalError):
    status_code = 404
    default_reason = "not_found"
    default_message = "Not found"


class InvalidToken(PortalError):
    """Invitation token does not match the stored confirmation token."""

    status_code = 401
    default_reason = "invalid_token"
    default_message = "Invalid confirmation token"


class Conflict(PortalError):
    status_code = 409
    default_reason = "already_responded"
    default_message = "This invitation has already been responded to"


class Expired(PortalError):
    status_code = 410
    default_reason = "expired"
    default_message = "This invitation has expired"


class UpstreamError(PortalError):
    """A third-party provider call failed or returned a non-success response."""

    status_code = 502
    default_reason = "upstream_error"
    default_message = "Upstream provider request failed"


class SignatureError(PortalError):
    status_code = 400
    default_reason = "invalid_signature"
    default_message = "Invalid signature"
