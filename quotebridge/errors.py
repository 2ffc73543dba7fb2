"""Error taxonomy shared by the bus handlers and the HTTP layer."""


class QuoteBridgeError(Exception):
    """Base class for errors with an HTTP rendering."""

    status_code: int = 500
    error: str = "QuoteBridgeError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class QuoteValidationError(QuoteBridgeError):
    """Empty product name or a malformed inbound message."""

    status_code = 422
    error = "ValidationError"


class NotFoundError(QuoteBridgeError):
    """Lookup miss, raised only at the HTTP edge."""

    status_code = 404
    error = "NotFound"


class TransportError(QuoteBridgeError):
    """The bus could not accept a message."""

    status_code = 503
    error = "TransportError"
