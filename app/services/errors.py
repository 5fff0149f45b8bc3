"""Typed failures for the signing channel.

Each error carries a stable ``code`` the signing UI switches on (link invalid vs.
already acted on vs. waiting on someone else) and the HTTP status routers map it to.
"""
from __future__ import annotations


class SigningError(Exception):
    code = "internal_error"
    status_code = 500
    default_message = "An error occurred while processing the document"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidLink(SigningError):
    code = "invalid_link"
    status_code = 404
    default_message = "Invalid or expired access link"


class DocumentExpired(SigningError):
    code = "document_expired"
    status_code = 410
    default_message = "This document has expired"


class NotYetSent(SigningError):
    code = "not_yet_sent"
    status_code = 403
    default_message = "This document has not been sent yet"


class Unauthorized(SigningError):
    code = "unauthorized"
    status_code = 403
    default_message = "You are not authorized to sign this document"


class WaitingOnPriorSigner(SigningError):
    code = "waiting_on_prior_signer"
    status_code = 403
    default_message = "Waiting for other signers to complete first"


class AlreadySigned(SigningError):
    code = "already_signed"
    status_code = 409
    default_message = "You have already signed this document"


class AlreadyDeclined(SigningError):
    code = "already_declined"
    status_code = 409
    default_message = "You have already declined this document"


class DocumentClosed(SigningError):
    code = "document_closed"
    status_code = 409
    default_message = "This document is no longer accepting changes"


class ValidationError(SigningError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class InternalError(SigningError):
    pass
