"""Render every failure as the error envelope."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from buildledger.common.exceptions import BuildLedgerException, ErrorKind
from buildledger.common.logging import get_logger
from buildledger.common.responses import error_response

logger = get_logger("api.errors")

GENERIC_ERROR = "An unexpected error occurred"

STATUS_KINDS = {
    status.HTTP_400_BAD_REQUEST: ErrorKind.VALIDATION,
    status.HTTP_401_UNAUTHORIZED: ErrorKind.UNAUTHENTICATED,
    status.HTTP_403_FORBIDDEN: ErrorKind.PERMISSION_DENIED,
    status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorKind.VALIDATION,
    status.HTTP_503_SERVICE_UNAVAILABLE: ErrorKind.UNAVAILABLE,
}


def _describe(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return "Invalid request: " + "; ".join(parts) if parts else "Invalid request"


async def handle_domain_error(request: Request, exc: BuildLedgerException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            exc.detail,
            exc.status_code,
            exc.kind.value,
            retryable=exc.retryable,
            current_status=getattr(exc, "current_status", None),
        ),
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response(
            _describe(exc), status.HTTP_400_BAD_REQUEST, ErrorKind.VALIDATION.value
        ),
    )


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    kind = STATUS_KINDS.get(exc.status_code, ErrorKind.INTERNAL)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(str(exc.detail), exc.status_code, kind.value),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(
            GENERIC_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorKind.INTERNAL.value
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BuildLedgerException, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
