"""Unified response envelope for the billing API."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Create a success response. request_id defaults to a fresh ID."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


def error_response(code: str, message: str, request_id: str | None = None) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message),
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


class ErrorCodes:
    """
    Standard error codes for consistent error handling.

    Billing rule violations reuse the code carried by the raised
    core.errors exception, so the two always agree.
    """

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    HAS_DEPENDENCIES = "HAS_DEPENDENCIES"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_AMOUNT = "INVALID_AMOUNT"

    # Ledger
    OVERPAYMENT = "OVERPAYMENT"
    INVALID_STATE = "INVALID_STATE"

    # Infrastructure
    INTERNAL_ERROR = "INTERNAL_ERROR"


def request_id_of(request) -> str | None:
    """ID assigned by RequestIDMiddleware, if it ran."""
    return getattr(request.state, "request_id", None)
