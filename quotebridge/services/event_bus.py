"""Message bus service with pluggable backend adapters."""
from ..adapters.base import BusAdapter, MessageHandler
from ..adapters.memory import InMemoryAdapter
from ..adapters.redis_stream import RedisStreamAdapter
from ..config import Settings, get_settings
from ..errors import TransportError
from ..metrics import Metrics
from pydantic import BaseModel
from typing import Awaitable, Callable, Generic, TypeVar
import structlog
import orjson
import time

log = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)


def encode(message: BaseModel) -> bytes:
    """Serialize a message model to its wire JSON form."""
    return orjson.dumps(message.model_dump(mode="json", by_alias=True))


class Publisher(Generic[M]):
    """Typed publish callable bound to one channel."""

    def __init__(self, bus: "QuoteBus", channel: str):
        self.bus = bus
        self.channel = channel

    async def __call__(self, message: M) -> None:
        await self.bus.publish(self.channel, message)


class QuoteBus:
    """
    Message bus service that delegates to a pluggable backend adapter.

    The adapter is selected based on the BUS_ADAPTER configuration setting.
    """

    def __init__(self, adapter: BusAdapter | None = None, metrics: Metrics | None = None):
        """
        Initialize the bus with optional adapter.

        Args:
            adapter: Backend adapter to use (defaults to configured adapter)
            metrics: Prometheus metrics to record publish outcomes on
        """
        if adapter is None:
            adapter = create_default_adapter()
        self.adapter = adapter
        self.metrics = metrics

    async def publish(self, channel: str, message: BaseModel) -> None:
        """
        Encode and publish a message.

        Raises:
            TransportError: If the adapter refused the message
        """
        start_time = time.perf_counter()
        try:
            await self.adapter.publish(channel, encode(message))
        except TransportError:
            if self.metrics:
                self.metrics.record_publish_failure(channel)
            raise
        except Exception as e:
            if self.metrics:
                self.metrics.record_publish_failure(channel)
            log.error("bus.publish_failed", channel=channel, error=str(e), error_type=type(e).__name__)
            raise TransportError(f"Publish to {channel} failed: {e}") from e

        if self.metrics:
            self.metrics.publish_latency.labels(channel=channel).observe(time.perf_counter() - start_time)

    def publisher(self, channel: str) -> Callable[[M], Awaitable[None]]:
        """Return a publish callable bound to ``channel``."""
        return Publisher(self, channel)

    def subscribe(self, channel: str, handler: MessageHandler, fanout: bool = False) -> None:
        self.adapter.subscribe(channel, handler, fanout=fanout)

    async def start(self) -> None:
        await self.adapter.start()

    async def stop(self) -> None:
        await self.adapter.stop()

    async def health_check(self) -> bool:
        """Check backend adapter health."""
        return await self.adapter.health_check()


def create_default_adapter(settings: Settings | None = None) -> BusAdapter:
    """
    Create the default adapter based on configuration.

    Returns:
        BusAdapter instance based on BUS_ADAPTER setting
    """
    settings = settings or get_settings()
    if settings.BUS_ADAPTER == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "adapter.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return InMemoryAdapter()

        log.info("adapter.selected", type="redis", url=str(settings.REDIS_URL))
        return RedisStreamAdapter(
            redis_url=str(settings.REDIS_URL),
            prefix=settings.STREAM_PREFIX,
            group=settings.CONSUMER_GROUP,
            consumer=settings.CONSUMER_NAME,
            maxlen=settings.STREAM_MAXLEN,
        )
    else:
        log.info("adapter.selected", type="memory")
        return InMemoryAdapter()
