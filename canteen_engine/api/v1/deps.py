"""Domain error translation shared by the v1 endpoints."""

from fastapi import HTTPException, status

from canteen_engine.services.errors import ErrorKind, SettlementError

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.SCHEDULE_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVARIANT_VIOLATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.TOO_SOON_TO_CANCEL: status.HTTP_409_CONFLICT,
    ErrorKind.ALREADY_TERMINAL: status.HTTP_409_CONFLICT,
    ErrorKind.PENALTY_CONFIRMATION_REQUIRED: status.HTTP_409_CONFLICT,
}


def http_error(exc: SettlementError) -> HTTPException:
    """Translate a domain error into an HTTPException carrying its kind and details."""
    return HTTPException(
        status_code=STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST),
        detail={"message": exc.message, "error": exc.kind.value, **exc.details()},
    )
