"""
Exception handlers rendering errors in the standard response envelope.

APIException subclasses carry their message, code and details in
``detail``; request validation failures become VALIDATION_ERROR with one
entry per offending field.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from common.utils.exceptions import APIException
from common.utils.responses import error_response

logger = logging.getLogger(__name__)


def _field_errors(exc: RequestValidationError) -> list:
    errors = []
    for error in exc.errors():
        # Drop the leading "body"/"query" segment
        location = [str(part) for part in error.get("loc", ())[1:]]
        errors.append({
            "field": ".".join(location),
            "message": error.get("msg", "Invalid value"),
        })
    return errors


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, dict) else {}
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(
                exc.message,
                code=exc.code,
                details=detail.get("details"),
            ),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=error_response(
                "Validation failed",
                code="VALIDATION_ERROR",
                errors=_field_errors(exc),
            ),
        )
