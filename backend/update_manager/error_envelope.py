"""Error envelope rendering for domain, validation and store failures."""
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .domain_errors import DomainError

logger = logging.getLogger(__name__)


def build_error_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as ``{"error": {code, message, details?}}``."""
    error: dict[str, object] = {
        "code": exc.code,
        "message": exc.message,
    }
    if exc.details is not None:
        error["details"] = exc.details

    return JSONResponse(status_code=exc.http_status, content={"error": error})


async def handle_domain_error(_: Request, exc: DomainError) -> JSONResponse:
    return build_error_response(exc)


async def handle_request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    fields = []
    for item in exc.errors():
        fields.append(
            {
                "loc": [str(part) for part in item.get("loc", ())],
                "message": item.get("msg", ""),
            }
        )
    return build_error_response(
        DomainError(
            code="validation_failed",
            http_status=400,
            message="Request validation failed",
            details={"fields": fields},
        )
    )


async def handle_store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("store.unhandled_error path=%s", request.url.path)
    return build_error_response(
        DomainError(code="internal", http_status=500, message="Internal store error")
    )


def register_error_handlers(app) -> None:
    app.add_exception_handler(DomainError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_store_error)
