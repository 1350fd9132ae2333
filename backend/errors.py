# errors.py
"""
Error taxonomy for the signing pipeline.

Every error carries the HTTP status it is translated to at the API boundary
(see main.py). Nothing here is retried.
"""

from __future__ import annotations


class SigningError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SigningError):
    status_code = 400
    default_message = "Invalid request"


class MalformedDocumentError(SigningError):
    """Upload or stored file is not a loadable PDF with at least one page."""
    status_code = 422
    default_message = "The document is not a valid PDF"


class ImageDecodeError(SigningError):
    status_code = 422
    default_message = "The signature image could not be decoded"


class NotFoundError(SigningError):
    status_code = 404
    default_message = "PDF not found"


class ConflictError(SigningError):
    status_code = 409
    default_message = "Document is already signed"


class DuplicateIdError(SigningError):
    status_code = 500
    default_message = "Document id already exists"


class NotificationError(SigningError):
    """Signing-link email could not be sent. The record is kept."""
    status_code = 502
    default_message = "Failed to send email. Check server logs for details."


class NotificationAuthError(NotificationError):
    # SMTP 535 / bad credentials; operators fix config rather than retry
    default_message = (
        "Email authentication failed (535). If you use Gmail, either create an App Password "
        "(if your account has 2FA) or configure OAuth2. Check server logs for details."
    )
