"""Trace ID middleware for request tracing."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog
import uuid
from contextvars import ContextVar

TRACE_HEADER = "X-Trace-ID"

# Context variable to store the trace ID across async context
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")


class TraceIdMiddleware(BaseHTTPMiddleware):
    """
    Tags every HTTP request with a trace ID.

    - Extracts the trace ID from the X-Trace-ID header if present
    - Generates a new UUID if not present
    - Binds it to the structlog context
    - Echoes it in the response headers
    """

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or str(uuid.uuid4())

        trace_id_var.set(trace_id)
        request.state.trace_id = trace_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            trace_id=trace_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        return response


def get_trace_id() -> str:
    """Get the current trace ID from context."""
    return trace_id_var.get()
