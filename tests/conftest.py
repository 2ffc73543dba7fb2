"""Shared fixtures for QuoteBridge tests."""
import uuid
import orjson
import pytest
from quotebridge.adapters.memory import InMemoryAdapter
from quotebridge.config import Settings
from quotebridge.metrics import Metrics
from quotebridge.services.event_bus import QuoteBus


class FixedRandom:
    """Random source that always returns the same draw."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def settings():
    return Settings(BUS_ADAPTER="memory", EMBEDDED_CALCULATOR=True)


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def adapter():
    return InMemoryAdapter()


@pytest.fixture
def bus(adapter, metrics):
    return QuoteBus(adapter=adapter, metrics=metrics)


def result_body(request_id=None, product="Widget", price="612.34", **overrides) -> bytes:
    """Encode a result message the way the calculator publishes it."""
    message = {
        "id": str(uuid.uuid4()),
        "requestId": str(request_id or uuid.uuid4()),
        "product": product,
        "price": price,
        "timestamp": "2025-11-18T04:30:00.123456Z",
    }
    message.update(overrides)
    return orjson.dumps(message)


def request_body(request_id=None, product="Widget") -> bytes:
    return orjson.dumps({"id": str(request_id or uuid.uuid4()), "product": product})
