"""Result envelopes returned by every API endpoint."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T
    message: str = ""


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    status_code: int = Field(serialization_alias="statusCode")
    kind: str
    retryable: bool = False
    current_status: str | None = Field(None, serialization_alias="currentStatus")


def error_response(
    error: str,
    status_code: int,
    kind: str,
    retryable: bool = False,
    current_status: str | None = None,
) -> dict:
    return ErrorResponse(
        error=error,
        status_code=status_code,
        kind=kind,
        retryable=retryable,
        current_status=current_status,
    ).model_dump(by_alias=True, exclude_none=True)
