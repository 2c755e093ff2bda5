"""HTTP error handlers for FastAPI application.

Domain exceptions are raised by the services and never caught by routers;
this module turns them into JSON responses. Every body carries `detail` and a
machine-readable `error` kind, so clients can tell a lost race (409
`conflict`) or an expired entity (410 `expired`) from bad input (422).
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.exceptions import (
    AppException,
    NotFoundError,
    AlreadyExistsError,
    ValidationError,
    InsufficientPermissionsError,
    InvalidTransitionError,
    ConflictError,
    ExpiredEntityError,
    CascadeFailureError,
)
from app.utils.logger import logger


def _error_response(status_code: int, error: str, exc: Exception, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": error, **extra},
    )


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(status.HTTP_404_NOT_FOUND, "not_found", exc)


async def already_exists_handler(
    request: Request, exc: AlreadyExistsError
) -> JSONResponse:
    """One-per-context rules (a second feedback for the same task, for example)."""
    return _error_response(
        status.HTTP_409_CONFLICT, "already_exists", exc, field=exc.field
    )


async def validation_error_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """
    Convert a domain ValidationError into a 422 response.

    Returns:
        JSONResponse: Status 422; `field` names the offending input when known.
    """
    extra = {"field": exc.field} if exc.field else {}
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_CONTENT, "validation", exc, **extra
    )


async def insufficient_permissions_handler(
    request: Request, exc: InsufficientPermissionsError
) -> JSONResponse:
    return _error_response(status.HTTP_403_FORBIDDEN, "forbidden", exc)


async def invalid_transition_handler(
    request: Request, exc: InvalidTransitionError
) -> JSONResponse:
    """
    Convert an InvalidTransitionError into a 409 response naming both statuses.

    Returns:
        JSONResponse: Status 409 with `detail`, `current_status` and `requested_status`.
    """
    return _error_response(
        status.HTTP_409_CONFLICT,
        "invalid_transition",
        exc,
        current_status=exc.current_status,
        requested_status=exc.requested_status,
    )


async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    """Concurrent modification: the caller may re-read and retry."""
    return _error_response(status.HTTP_409_CONFLICT, "conflict", exc)


async def expired_entity_handler(
    request: Request, exc: ExpiredEntityError
) -> JSONResponse:
    return _error_response(status.HTTP_410_GONE, "expired", exc)


async def cascade_failure_handler(
    request: Request, exc: CascadeFailureError
) -> JSONResponse:
    """
    Report a partially applied actor deletion.

    Returns:
        JSONResponse: Status 500 with the `cleaned` and `not_cleaned` collection names.
    """
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "cascade_failure",
        exc,
        cleaned=exc.cleaned,
        not_cleaned=exc.not_cleaned,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Catch-all for application errors without a dedicated mapping.

    The message is logged but not returned, since it may carry internals.
    """
    logger.error(f"Unhandled application error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal error occurred"},
    )


def register_exception_handlers(app) -> None:
    """
    Attach the domain-to-HTTP handlers to a FastAPI app.

    Starlette resolves handlers along the exception's MRO, so the AppException
    catch-all only sees errors without a more specific mapping.
    """
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(AlreadyExistsError, already_exists_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(
        InsufficientPermissionsError, insufficient_permissions_handler
    )

    # Workflow
    app.add_exception_handler(InvalidTransitionError, invalid_transition_handler)
    app.add_exception_handler(ExpiredEntityError, expired_entity_handler)
    app.add_exception_handler(ConflictError, conflict_handler)
    app.add_exception_handler(CascadeFailureError, cascade_failure_handler)

    app.add_exception_handler(AppException, app_exception_handler)
