from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import threading
import uuid

PRICE_QUANTUM = Decimal("0.01")


class QuoteRequest(BaseModel):
    """A client's request for a price on one product."""
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID = Field(..., description="Correlation identifier")
    product: str = Field(..., description="Product name")

    @field_validator("product")
    @classmethod
    def _product_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("product must not be empty")
        return value


class Quote(BaseModel):
    """A computed price, correlated to the request that asked for it."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: uuid.UUID = Field(..., description="Result identifier")
    request_id: uuid.UUID = Field(..., alias="requestId", description="Correlation identifier")
    product: str
    price: Decimal = Field(..., ge=0, decimal_places=2)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _timestamp_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("timestamp must carry a timezone")
        return value

    @field_validator("price")
    @classmethod
    def _price_in_cents(cls, value: Decimal) -> Decimal:
        # "612.340" and "612.34" are the same price
        return value.quantize(PRICE_QUANTUM)

    @field_serializer("price")
    def _price_as_string(self, price: Decimal) -> str:
        return str(price)

    @classmethod
    def for_request(cls, request: QuoteRequest, price: Decimal) -> "Quote":
        return cls(
            id=uuid.uuid4(),
            request_id=request.id,
            product=request.product,
            price=price,
            timestamp=utc_now(),
        )


_clock_lock = threading.Lock()
_last_timestamp = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    """UTC wall clock, strictly increasing within this process."""
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now
