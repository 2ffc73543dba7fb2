"""Prices quote requests consumed from the request channel."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Awaitable, Callable
import random
from pydantic import ValidationError
import structlog
import orjson
from ..metrics import Metrics
from ..quote_models import PRICE_QUANTUM, Quote, QuoteRequest

log = structlog.get_logger()


def compute_price(product: str, rng: random.Random | None = None) -> Decimal:
    """
    Placeholder pricing rule.

    The base price is 100 per character of the product name, scaled by a
    uniform variation in [0.5, 1.5) and rounded half-up to cents. An empty
    name prices at 0.00.
    """
    rng = rng or random
    base_price = len(product) * 100
    variation = 0.5 + rng.random()
    return Decimal(str(base_price * variation)).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


class QuoteCalculator:
    """Consumes request messages and publishes a priced quote for each."""

    def __init__(
        self,
        publish: Callable[[Quote], Awaitable[None]],
        rng: random.Random | None = None,
        metrics: Metrics | None = None,
        channel: str = "quote-requests",
    ):
        self._publish = publish
        self._rng = rng or random.Random()
        self._metrics = metrics
        self._channel = channel

    async def on_request(self, body: bytes) -> None:
        """
        Handle one delivered request message.

        Malformed messages are dropped. Redelivery prices the request again,
        so the tracker may see several quotes for one request id.
        """
        try:
            request = QuoteRequest.model_validate(orjson.loads(body))
        except (orjson.JSONDecodeError, ValidationError, TypeError) as e:
            log.warning("quote_request.rejected", channel=self._channel, error=str(e), body=body[:256].decode("utf-8", "replace"))
            if self._metrics:
                self._metrics.record_rejected(self._channel)
            return

        try:
            price = compute_price(request.product, self._rng)
            quote = Quote.for_request(request, price)
            await self._publish(quote)
        except Exception as e:
            log.error(
                "quote_request.failed",
                request_id=str(request.id),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return

        if self._metrics:
            self._metrics.quotes_computed_total.inc()
        log.info(
            "quote.computed",
            request_id=str(request.id),
            quote_id=str(quote.id),
            product=quote.product,
            price=str(quote.price),
        )
