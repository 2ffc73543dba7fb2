"""In-memory message bus adapter."""
import asyncio
from collections import defaultdict
import structlog
from .base import BusAdapter, MessageHandler
from ..errors import TransportError

log = structlog.get_logger()


class InMemoryAdapter(BusAdapter):
    """
    In-process implementation of the bus adapter.

    Each publish schedules one task per subscriber, so handlers for different
    messages run concurrently on the running event loop.
    """

    def __init__(self):
        self._handlers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._inflight: set[asyncio.Task] = set()
        self._closed = False

    def subscribe(self, channel: str, handler: MessageHandler, fanout: bool = False) -> None:
        # Single process: every subscriber already sees every message
        self._handlers[channel].append(handler)
        log.info("bus.subscribed", channel=channel, adapter="memory")

    async def publish(self, channel: str, body: bytes) -> None:
        """Deliver the message to every handler on ``channel``."""
        if self._closed:
            raise TransportError(f"In-memory bus is stopped, cannot publish to {channel}")

        for handler in self._handlers.get(channel, []):
            task = asyncio.create_task(handler(body))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

        log.debug("bus.published", channel=channel, size=len(body), adapter="memory")

    async def drain(self) -> None:
        """Wait until no deliveries are in flight, including ones they trigger."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def start(self) -> None:
        self._closed = False

    async def stop(self) -> None:
        self._closed = True
        await self.drain()

    async def health_check(self) -> bool:
        """In-memory adapter is healthy while it accepts messages."""
        return not self._closed
