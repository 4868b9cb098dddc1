"""
Error taxonomy shared by the letter engine, the sweeper and the auth flows.

Every failure surfaced to a caller is a LetterServiceError subclass carrying
the HTTP status it maps to. Routers never build HTTPExceptions for these;
register_error_handlers() renders them as JSON.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LetterServiceError(Exception):
    """Base class for typed service failures."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal error"):
        super().__init__(message)
        self.message = message


class ValidationError(LetterServiceError):
    """Malformed or missing required input (e.g. no recipient on send)."""

    status_code = 400
    code = "validation_error"


class UnauthorizedError(LetterServiceError):
    """No principal where one is required, or invalid credentials."""

    status_code = 401
    code = "unauthorized"


class ForbiddenError(LetterServiceError):
    """
    Principal lacks the required relationship to the resource.

    Also raised when the recipient asks for a letter that is not yet
    deliverable.
    """

    status_code = 403
    code = "forbidden"


class NotFoundError(LetterServiceError):
    """Referenced letter, draft, user or verification record does not exist."""

    status_code = 404
    code = "not_found"


class ConflictError(LetterServiceError):
    """Duplicate unique field (email, nickname)."""

    status_code = 409
    code = "conflict"


class DependencyError(LetterServiceError):
    """Notifier or persistence collaborator failed."""

    status_code = 502
    code = "dependency_error"


async def letter_service_error_handler(request: Request, exc: LetterServiceError) -> JSONResponse:
    """Render a LetterServiceError as a JSON response."""
    if exc.status_code >= 500:
        logger.error(
            f"{exc.code}: {exc.message}",
            extra={"path": request.url.path, "error_code": exc.code}
        )

    headers = None
    if isinstance(exc, UnauthorizedError):
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    """
    Register the LetterServiceError handler on the application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(LetterServiceError, letter_service_error_handler)
