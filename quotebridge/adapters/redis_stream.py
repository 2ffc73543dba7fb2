"""Redis Streams message bus adapter."""
import asyncio
from collections import defaultdict
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError
from .base import BusAdapter, MessageHandler
from ..config import get_settings
from ..errors import TransportError

log = structlog.get_logger()


class RedisStreamAdapter(BusAdapter):
    """Redis Streams implementation of the bus adapter.

    Each channel maps to the stream ``<prefix>:<channel>``. Channels are read
    through the shared consumer group, so every entry goes to one instance,
    unless subscribed with ``fanout=True``: those get a group per consumer
    and every instance sees every entry. Entries are acknowledged after
    their handlers ran. On start, and whenever entries of an idle consumer
    were claimed, the pending list is replayed before new entries are read,
    so unacknowledged entries are redelivered as long as the consumer name
    is stable or another consumer outlives the idle timeout.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str | None = None,
        group: str | None = None,
        consumer: str | None = None,
        maxlen: int | None = None,
        block_ms: int = 1000,
        batch_size: int = 16,
        retry_delay: float = 1.0,
        claim_idle_ms: int = 60000,
    ):
        """
        Initialize Redis stream adapter.

        Args:
            redis_url: Redis connection URL (defaults to settings.REDIS_URL)
            prefix: Stream key prefix (defaults to settings.STREAM_PREFIX)
            group: Consumer group name (defaults to settings.CONSUMER_GROUP)
            consumer: Consumer name within the group
            maxlen: Approximate maximum stream length
            block_ms: XREADGROUP block timeout
            batch_size: Entries fetched per XREADGROUP call
            retry_delay: Back-off after a failed read
            claim_idle_ms: Idle time after which another consumer's pending
                entries are claimed by this one
        """
        settings = get_settings()
        self.redis_url = redis_url or str(settings.REDIS_URL)
        self.prefix = prefix or settings.STREAM_PREFIX
        self.group = group or settings.CONSUMER_GROUP
        self.consumer = consumer or settings.CONSUMER_NAME
        self.maxlen = maxlen or settings.STREAM_MAXLEN
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.retry_delay = retry_delay
        self.claim_idle_ms = claim_idle_ms
        self._client: Redis | None = None
        self._handlers: dict[str, list[MessageHandler]] = defaultdict(list)
        self._fanout: set[str] = set()
        self._tasks: list[asyncio.Task] = []
        self._running = False

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=5,
            )
        return self._client

    def stream_key(self, channel: str) -> str:
        return f"{self.prefix}:{channel}"

    def group_for(self, channel: str) -> str:
        """Consumer group that reads ``channel`` for this instance."""
        if channel in self._fanout:
            return f"{self.group}.{self.consumer}"
        return self.group

    def subscribe(self, channel: str, handler: MessageHandler, fanout: bool = False) -> None:
        self._handlers[channel].append(handler)
        if fanout:
            self._fanout.add(channel)
        log.info(
            "bus.subscribed",
            channel=channel,
            stream=self.stream_key(channel),
            group=self.group_for(channel),
            adapter="redis_stream",
        )

    async def publish(self, channel: str, body: bytes) -> None:
        """
        Append the message to the channel's stream.

        Raises:
            TransportError: If unable to publish to Redis
        """
        try:
            await self._get_client().xadd(
                self.stream_key(channel),
                {"data": body},
                maxlen=self.maxlen,
                approximate=True,
            )
        except RedisError as e:
            log.error("redis.publish_failed", channel=channel, error=str(e))
            raise TransportError(f"Redis publish to {channel} failed: {e}") from e

        log.debug("bus.published", channel=channel, size=len(body), adapter="redis_stream")

    async def start(self) -> None:
        """Create consumer groups and spawn one read loop per channel."""
        if self._running:
            return
        self._running = True
        for channel in self._handlers:
            await self._ensure_group(channel)
            task = asyncio.create_task(self._consume(channel), name=f"consume:{channel}")
            self._tasks.append(task)
        log.info("bus.started", channels=list(self._handlers), group=self.group, consumer=self.consumer)

    async def _ensure_group(self, channel: str) -> None:
        try:
            await self._get_client().xgroup_create(
                self.stream_key(channel), self.group_for(channel), id="0", mkstream=True
            )
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def _claim_stale(self, channel: str) -> None:
        """Take over entries another consumer of the shared group left unacked."""
        stream = self.stream_key(channel)
        start_id = "0-0"
        claimed = 0
        try:
            while True:
                response = await self._get_client().xautoclaim(
                    stream,
                    self.group,
                    self.consumer,
                    self.claim_idle_ms,
                    start_id=start_id,
                    count=self.batch_size,
                    justid=True,
                )
                start_id, ids = response[0], response[1]
                claimed += len(ids)
                if start_id in (b"0-0", "0-0"):
                    break
        except RedisError as e:
            log.warning("redis.claim_failed", channel=channel, error=str(e))
            return
        if claimed:
            log.info("redis.claimed_stale", channel=channel, count=claimed)

    async def _consume(self, channel: str) -> None:
        """
        Read loop for one channel.

        The loop first replays this consumer's pending entries (read id
        ``0``), then switches to new entries (``>``). It falls back to the
        pending list after a read error and whenever stale entries of other
        consumers in a shared group were claimed.
        """
        stream = self.stream_key(channel)
        group = self.group_for(channel)
        client = self._get_client()
        loop = asyncio.get_running_loop()
        shared = channel not in self._fanout
        backlog = True
        last_claim = None

        while self._running:
            if shared and (last_claim is None or loop.time() - last_claim >= self.claim_idle_ms / 1000):
                await self._claim_stale(channel)
                last_claim = loop.time()
                backlog = True

            try:
                response = await client.xreadgroup(
                    group,
                    self.consumer,
                    {stream: "0" if backlog else ">"},
                    count=self.batch_size,
                    block=None if backlog else self.block_ms,
                )
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                log.warning("redis.read_failed", channel=channel, error=str(e))
                backlog = True
                await asyncio.sleep(self.retry_delay)
                continue

            delivered = 0
            for _stream, entries in response or []:
                delivered += len(entries)
                await asyncio.gather(
                    *(self._deliver(channel, entry_id, fields) for entry_id, fields in entries)
                )
            if backlog and not delivered:
                backlog = False

    async def _deliver(self, channel: str, entry_id: bytes, fields: dict) -> None:
        # Entries trimmed from the stream come back from the pending list without fields
        body = fields.get(b"data") if fields else None
        if body is None:
            log.warning("redis.entry_without_data", channel=channel, entry_id=entry_id)
        else:
            for handler in self._handlers[channel]:
                try:
                    await handler(body)
                except Exception as e:
                    log.error(
                        "redis.handler_failed",
                        channel=channel,
                        entry_id=entry_id,
                        error=str(e),
                        exc_info=True,
                    )

        try:
            await self._get_client().xack(self.stream_key(channel), self.group_for(channel), entry_id)
        except RedisError as e:
            # Unacked entries stay pending and are redelivered
            log.warning("redis.ack_failed", channel=channel, entry_id=entry_id, error=str(e))

    async def stop(self) -> None:
        """Stop read loops, drop per-instance groups and close the Redis connection."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self._client is None:
            return
        for channel in self._fanout:
            try:
                await self._client.xgroup_destroy(self.stream_key(channel), self.group_for(channel))
            except RedisError as e:
                log.warning("redis.group_destroy_failed", channel=channel, error=str(e))
        await self._client.aclose()
        self._client = None

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            return bool(await self._get_client().ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False
