import enum

from fastapi import HTTPException, status


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHENTICATED = "unauthenticated"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


class BuildLedgerException(HTTPException):
    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class BadRequestError(BuildLedgerException):
    """Malformed or missing input. Surfaced verbatim to the caller."""

    kind = ErrorKind.VALIDATION

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class NotFoundError(BuildLedgerException):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class InvalidStateError(BuildLedgerException):
    kind = ErrorKind.INVALID_STATE

    def __init__(self, detail: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class PermissionDeniedError(BuildLedgerException):
    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class UnauthenticatedError(BuildLedgerException):
    kind = ErrorKind.UNAUTHENTICATED

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(detail=detail, status_code=status.HTTP_401_UNAUTHORIZED)


class UnavailableError(BuildLedgerException):
    kind = ErrorKind.UNAVAILABLE
    retryable = True

    def __init__(self, detail: str = "Storage is temporarily unavailable, retry later"):
        super().__init__(detail=detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class InternalError(BuildLedgerException):
    kind = ErrorKind.INTERNAL

    def __init__(self, detail: str = "An unexpected error occurred"):
        super().__init__(detail=detail, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
