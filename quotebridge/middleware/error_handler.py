"""Structured error responses."""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog
from .trace import get_trace_id
from ..errors import NotFoundError, QuoteBridgeError

log = structlog.get_logger()


def error_body(request: Request, error: str, message: str, status_code: int) -> dict:
    return {
        "error": error,
        "message": message,
        "status_code": status_code,
        "trace_id": get_trace_id(),
        "path": str(request.url.path),
    }


async def quotebridge_error_handler(request: Request, exc: QuoteBridgeError) -> JSONResponse:
    # A lookup miss is an expected answer while a quote is in flight
    if not isinstance(exc, NotFoundError):
        log.warning(
            "http.exception",
            error=exc.error,
            status_code=exc.status_code,
            detail=exc.message,
            path=request.url.path,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.error, exc.message, exc.status_code),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    log.warning("http.invalid_request", errors=errors, path=request.url.path)
    body = error_body(request, "ValidationError", "Request body failed validation", 422)
    body["detail"] = errors
    return JSONResponse(status_code=422, content=body)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error(
        "unhandled.exception",
        error=str(exc),
        error_type=exc.__class__.__name__,
        path=request.url.path,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content=error_body(request, "InternalServerError", "An unexpected error occurred", 500),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuoteBridgeError, quotebridge_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
