"""Indexes quote results by the id of the request they answer."""
from uuid import UUID
from pydantic import ValidationError
import structlog
import orjson
from ..metrics import Metrics
from ..quote_models import Quote
from ..store import CorrelationStore

log = structlog.get_logger()


class ResultTracker:
    """
    Consumes result messages and answers lookups by correlation id.

    Results are stored even when the request came from another process.
    A redelivered or recomputed result replaces the earlier one.
    """

    def __init__(
        self,
        store: CorrelationStore[Quote] | None = None,
        metrics: Metrics | None = None,
        channel: str = "quotes",
    ):
        self._results = store if store is not None else CorrelationStore("results")
        self._metrics = metrics
        self._channel = channel

    async def on_result(self, body: bytes) -> None:
        """Handle one delivered result message; malformed ones are dropped."""
        try:
            quote = Quote.model_validate(orjson.loads(body))
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            log.warning(
                "quote_result.rejected",
                channel=self._channel,
                error=str(e),
                body=body[:256].decode("utf-8", "replace"),
            )
            if self._metrics:
                self._metrics.record_rejected(self._channel)
            return

        previous = self._results.put(quote.request_id, quote)
        outcome = "replaced" if previous is not None else "stored"
        if self._metrics:
            self._metrics.results_stored_total.labels(outcome=outcome).inc()
            self._metrics.stored_results.set(len(self._results))
        log.info(
            "quote_result.stored",
            request_id=str(quote.request_id),
            quote_id=str(quote.id),
            price=str(quote.price),
            outcome=outcome,
        )

    def get_result(self, request_id: UUID) -> Quote | None:
        """Return the latest result for ``request_id``, None while in flight."""
        return self._results.get(request_id)

    def list_all(self) -> dict[UUID, Quote]:
        return self._results.snapshot()
