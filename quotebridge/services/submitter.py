"""Accepts quote requests and publishes them to the request channel."""
from typing import Awaitable, Callable
from uuid import UUID, uuid4
from pydantic import ValidationError
import structlog
from ..errors import QuoteValidationError, TransportError
from ..metrics import Metrics
from ..quote_models import QuoteRequest
from ..store import CorrelationStore

log = structlog.get_logger()


class QuoteSubmitter:
    """
    Mints correlation identifiers and tracks the requests made through it.

    The request is recorded before it is published so the caller can look it
    up as soon as ``submit`` returns.
    """

    def __init__(
        self,
        publish: Callable[[QuoteRequest], Awaitable[None]],
        store: CorrelationStore[QuoteRequest] | None = None,
        metrics: Metrics | None = None,
    ):
        self._publish = publish
        self._requests = store if store is not None else CorrelationStore("requests")
        self._metrics = metrics

    async def submit(self, product: str) -> UUID:
        """
        Record and publish a new quote request.

        Args:
            product: Product name, must not be empty

        Returns:
            The correlation identifier of the request

        Raises:
            QuoteValidationError: If the product name is empty
            TransportError: If the bus refused the request; nothing is recorded
        """
        try:
            request = QuoteRequest(id=uuid4(), product=product)
        except ValidationError as e:
            log.info("quote_request.invalid", product=product, error=e.errors()[0]["msg"])
            raise QuoteValidationError("product must be a non-empty string") from e

        self._requests.put(request.id, request)
        try:
            await self._publish(request)
        except TransportError as e:
            self._requests.discard(request.id)
            log.error("quote_request.publish_failed", request_id=str(request.id), error=e.message)
            raise

        if self._metrics:
            self._metrics.requests_submitted_total.inc()
            self._metrics.pending_requests.set(len(self._requests))
        log.info("quote_request.submitted", request_id=str(request.id), product=request.product)
        return request.id

    def get_request(self, request_id: UUID) -> QuoteRequest | None:
        return self._requests.get(request_id)

    def list_requests(self) -> dict[UUID, QuoteRequest]:
        return self._requests.snapshot()
