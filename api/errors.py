"""Global exception handlers for FastAPI."""

import logging

import pydantic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, request_id_of, ErrorCodes
from core.errors import (
    BillingError,
    InvalidStateError,
    NotFoundError,
    OverpaymentError,
    ReferentialIntegrityError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
STATUS_BY_ERROR: list[tuple[type[BillingError], int]] = [
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ReferentialIntegrityError, 409),
    (OverpaymentError, 400),
    (ValidationError, 422),
]


def status_for(exc: BillingError) -> int:
    """HTTP status for a billing error."""
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 400


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(BillingError)
    async def billing_error_handler(request: Request, exc: BillingError):
        status = status_for(exc)
        logger.info("Rejected %s %s: %s (%s)", request.method, request.url.path, exc, exc.code)
        return JSONResponse(
            status_code=status,
            content=error_response(exc.code, str(exc), request_id_of(request)).model_dump(mode="json"),
        )

    @app.exception_handler(pydantic.ValidationError)
    async def model_validation_error_handler(request: Request, exc: pydantic.ValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors(include_url=False)),
                request_id_of(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(ErrorCodes.INVALID_REQUEST, str(exc), request_id_of(request)).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                str(exc.errors()),
                request_id_of(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                request_id_of(request),
            ).model_dump(mode="json"),
        )
