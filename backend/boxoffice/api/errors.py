"""
Exception handlers: every failure leaves the API as {"code", "message", "details"}.
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from boxoffice.core.exceptions import DomainError, Internal, ValidationFailed
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)


def _render(error: DomainError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_dict()))


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("domain_error", code=exc.code, error=exc.message)
    else:
        logger.info("request_rejected", code=exc.code, status_code=exc.status_code)
    return _render(exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return _render(ValidationFailed(errors=errors))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", error_type=type(exc).__name__)
    return _render(Internal())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
