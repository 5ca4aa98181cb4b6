"""
Domain errors raised by the document services.

Services raise these synchronously; the Flask app maps them onto JSON error
responses (see ERROR_STATUS_CODES). Batch operations catch them per item.
"""
from __future__ import annotations


class DocumentControlError(RuntimeError):
    code = "error"


class NotFound(DocumentControlError):
    code = "not_found"


class InvalidTransition(DocumentControlError):
    code = "invalid_transition"


class NotReady(DocumentControlError):
    code = "not_ready"


class ValidationError(DocumentControlError, ValueError):
    code = "validation_error"


ERROR_STATUS_CODES: dict[type[DocumentControlError], int] = {
    NotFound: 404,
    InvalidTransition: 409,
    NotReady: 409,
    ValidationError: 422,
}


def status_code_for(exc: DocumentControlError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]  # type: ignore[index]
    return 400
