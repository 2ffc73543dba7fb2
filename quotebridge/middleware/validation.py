"""Validation middleware for request payload size and JSON structure."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import structlog
import orjson

log = structlog.get_logger()


def _too_large(size: int, max_size: int) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "error": "PayloadTooLarge",
            "message": f"Request payload exceeds maximum size of {max_size} bytes",
            "max_size": max_size,
            "received_size": size,
        },
    )


class ValidationMiddleware(BaseHTTPMiddleware):
    """Validates incoming requests for payload size and JSON structure."""

    def __init__(self, app, max_body_size: int = 65536):
        super().__init__(app)
        self.max_body_size = max_body_size

    async def dispatch(self, request: Request, call_next):
        if request.method not in ("POST", "PUT", "PATCH"):
            return await call_next(request)

        # Check content-length header first
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_body_size:
            log.warning(
                "payload.too_large",
                size=int(content_length),
                max_size=self.max_body_size,
                path=request.url.path,
            )
            return _too_large(int(content_length), self.max_body_size)

        if request.headers.get("content-type", "").startswith("application/json"):
            body = await request.body()
            if len(body) > self.max_body_size:
                log.warning(
                    "payload.too_large",
                    size=len(body),
                    max_size=self.max_body_size,
                    path=request.url.path,
                )
                return _too_large(len(body), self.max_body_size)

            if body:
                try:
                    orjson.loads(body)
                except orjson.JSONDecodeError as e:
                    log.warning("invalid.json", error=str(e), path=request.url.path)
                    return JSONResponse(
                        status_code=400,
                        content={
                            "error": "InvalidJSON",
                            "message": "Request body is not valid JSON",
                            "detail": str(e),
                        },
                    )

        return await call_next(request)
