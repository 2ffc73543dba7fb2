"""Tests for message bus adapters."""
import asyncio
import pytest
from unittest.mock import AsyncMock, patch
from redis.exceptions import RedisError, ResponseError
from structlog.testing import capture_logs
from quotebridge.adapters.memory import InMemoryAdapter
from quotebridge.adapters.redis_stream import RedisStreamAdapter
from quotebridge.config import Settings
from quotebridge.errors import TransportError
from quotebridge.services.event_bus import QuoteBus, create_default_adapter, encode
from quotebridge.quote_models import QuoteRequest
import orjson
import uuid


def redis_mock():
    mock_redis = AsyncMock()
    mock_redis.xautoclaim.return_value = [b"0-0", [], []]
    return mock_redis


@pytest.mark.asyncio
async def test_memory_adapter_delivers_to_every_subscriber():
    adapter = InMemoryAdapter()
    received = []

    async def first(body):
        received.append(("first", body))

    async def second(body):
        received.append(("second", body))

    adapter.subscribe("quotes", first)
    adapter.subscribe("quotes", second)
    await adapter.publish("quotes", b"payload")
    await adapter.drain()

    assert sorted(received) == [("first", b"payload"), ("second", b"payload")]


@pytest.mark.asyncio
async def test_memory_adapter_ignores_channels_without_subscribers():
    adapter = InMemoryAdapter()
    await adapter.publish("nobody-listens", b"payload")
    await adapter.drain()


@pytest.mark.asyncio
async def test_memory_adapter_drain_follows_chained_publishes():
    adapter = InMemoryAdapter()
    received = []

    async def relay(body):
        await asyncio.sleep(0)
        await adapter.publish("out", body + b"!")

    async def sink(body):
        received.append(body)

    adapter.subscribe("in", relay)
    adapter.subscribe("out", sink)
    await adapter.publish("in", b"ping")
    await adapter.drain()

    assert received == [b"ping!"]


@pytest.mark.asyncio
async def test_memory_adapter_refuses_publish_when_stopped():
    adapter = InMemoryAdapter()
    await adapter.stop()

    with pytest.raises(TransportError):
        await adapter.publish("quotes", b"payload")
    assert await adapter.health_check() is False

    await adapter.start()
    assert await adapter.health_check() is True


@pytest.mark.asyncio
async def test_redis_adapter_publish_with_mock():
    """Test Redis adapter publish with mocked Redis."""
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.xadd.return_value = b"1234567890-0"

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379", prefix="qb", maxlen=500)
        await adapter.publish("quote-requests", b'{"id": "x"}')

        mock_redis.xadd.assert_awaited_once()
        args, kwargs = mock_redis.xadd.call_args
        assert args[0] == "qb:quote-requests"
        assert args[1] == {"data": b'{"id": "x"}'}
        assert kwargs["maxlen"] == 500


@pytest.mark.asyncio
async def test_redis_adapter_publish_failure_raises_transport_error():
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.xadd.side_effect = RedisError("Connection refused")

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379")

        with pytest.raises(TransportError):
            await adapter.publish("quotes", b"{}")


@pytest.mark.asyncio
async def test_redis_adapter_consumes_and_acks():
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379", prefix="qb", group="g", consumer="c1")
        reads = []

        async def fake_read(*args, **kwargs):
            reads.append(args)
            if len(reads) == 1:
                return [(b"qb:quotes", [])]
            if len(reads) == 2:
                return [(b"qb:quotes", [(b"1-0", {b"data": b"first"}), (b"2-0", {b"data": b"second"})])]
            adapter._running = False
            return []

        mock_redis.xreadgroup.side_effect = fake_read
        received = []

        async def handler(body):
            received.append(body)

        adapter.subscribe("quotes", handler)
        await adapter.start()
        await asyncio.wait_for(asyncio.gather(*adapter._tasks), timeout=2)

        mock_redis.xgroup_create.assert_awaited_once_with("qb:quotes", "g", id="0", mkstream=True)
        assert reads[0][:3] == ("g", "c1", {"qb:quotes": "0"})
        assert reads[1][:3] == ("g", "c1", {"qb:quotes": ">"})
        assert sorted(received) == [b"first", b"second"]
        acked = sorted(call.args[2] for call in mock_redis.xack.call_args_list)
        assert acked == [b"1-0", b"2-0"]

        await adapter.stop()
        mock_redis.aclose.assert_awaited_once()
        mock_redis.xgroup_destroy.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_adapter_redelivers_pending_entries_on_start():
    """Entries read but never acked by a previous run are handled before new ones."""
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379", prefix="qb", group="g", consumer="c1")
        reads = []

        async def fake_read(*args, **kwargs):
            reads.append((args, kwargs))
            if len(reads) == 1:
                return [(b"qb:quote-requests", [(b"7-0", {b"data": b"stuck"})])]
            if len(reads) == 2:
                return [(b"qb:quote-requests", [])]
            if len(reads) == 3:
                return [(b"qb:quote-requests", [(b"8-0", {b"data": b"fresh"})])]
            adapter._running = False
            return []

        mock_redis.xreadgroup.side_effect = fake_read
        received = []

        async def handler(body):
            received.append(body)

        adapter.subscribe("quote-requests", handler)
        await adapter.start()
        await asyncio.wait_for(asyncio.gather(*adapter._tasks), timeout=2)
        await adapter.stop()

        assert received == [b"stuck", b"fresh"]
        assert [args[2] for args, _ in reads[:3]] == [
            {"qb:quote-requests": "0"},
            {"qb:quote-requests": "0"},
            {"qb:quote-requests": ">"},
        ]
        assert reads[0][1]["block"] is None
        assert reads[2][1]["block"] == adapter.block_ms
        mock_redis.xautoclaim.assert_awaited_with(
            "qb:quote-requests", "g", "c1", adapter.claim_idle_ms,
            start_id="0-0", count=adapter.batch_size, justid=True,
        )
        acked = [call.args[2] for call in mock_redis.xack.call_args_list]
        assert acked == [b"7-0", b"8-0"]


@pytest.mark.asyncio
async def test_redis_adapter_handler_failure_keeps_loop_alive():
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379", prefix="qb", group="g", consumer="c1")
        reads = []

        async def fake_read(*args, **kwargs):
            reads.append(args)
            if len(reads) == 1:
                return [(b"qb:quotes", [(b"1-0", {b"data": b"boom"})])]
            if len(reads) == 2:
                return [(b"qb:quotes", [(b"2-0", {b"data": b"good"})])]
            adapter._running = False
            return []

        mock_redis.xreadgroup.side_effect = fake_read
        received = []

        async def handler(body):
            if body == b"boom":
                raise RuntimeError("handler exploded")
            received.append(body)

        adapter.subscribe("quotes", handler)
        await adapter.start()
        with capture_logs() as logs:
            await asyncio.wait_for(asyncio.gather(*adapter._tasks), timeout=2)
        await adapter.stop()

        assert received == [b"good"]
        acked = [call.args[2] for call in mock_redis.xack.call_args_list]
        assert acked == [b"1-0", b"2-0"]
        failures = [entry for entry in logs if entry["event"] == "redis.handler_failed"]
        assert len(failures) == 1
        assert failures[0]["entry_id"] == b"1-0"


@pytest.mark.asyncio
async def test_redis_adapter_fanout_uses_group_per_consumer():
    """Fan-out channels are read by a group of their own, dropped on stop."""
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379", prefix="qb", group="g", consumer="c1")
        reads = []

        async def fake_read(*args, **kwargs):
            reads.append(args)
            adapter._running = False
            return []

        mock_redis.xreadgroup.side_effect = fake_read

        async def handler(body):
            pass

        adapter.subscribe("quotes", handler, fanout=True)
        assert adapter.group_for("quotes") == "g.c1"
        assert adapter.group_for("quote-requests") == "g"

        await adapter.start()
        await asyncio.wait_for(asyncio.gather(*adapter._tasks), timeout=2)

        mock_redis.xgroup_create.assert_awaited_once_with("qb:quotes", "g.c1", id="0", mkstream=True)
        assert reads[0][0] == "g.c1"
        mock_redis.xautoclaim.assert_not_awaited()

        await adapter.stop()
        mock_redis.xgroup_destroy.assert_awaited_once_with("qb:quotes", "g.c1")
        mock_redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_adapter_tolerates_existing_group():
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379", block_ms=10)

        async def fake_read(*args, **kwargs):
            adapter._running = False
            return []

        mock_redis.xreadgroup.side_effect = fake_read

        async def handler(body):
            pass

        adapter.subscribe("quotes", handler)
        await adapter.start()
        await adapter.stop()


@pytest.mark.asyncio
async def test_redis_adapter_read_errors_do_not_end_loop():
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379", retry_delay=0)
        reads = []

        async def fake_read(*args, **kwargs):
            reads.append(args)
            if len(reads) == 1:
                raise RedisError("timeout")
            if len(reads) == 2:
                return [(b"quotebridge:quotes", [(b"5-0", {b"data": b"late"})])]
            adapter._running = False
            return []

        mock_redis.xreadgroup.side_effect = fake_read
        received = []

        async def handler(body):
            received.append(body)

        adapter.subscribe("quotes", handler)
        await adapter.start()
        await asyncio.wait_for(asyncio.gather(*adapter._tasks), timeout=2)
        await adapter.stop()

        assert received == [b"late"]


@pytest.mark.asyncio
async def test_redis_adapter_health_check_success():
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.ping.return_value = True

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379")

        assert await adapter.health_check() is True
        mock_redis.ping.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_adapter_health_check_failure():
    with patch("quotebridge.adapters.redis_stream.Redis") as mock_redis_class:
        mock_redis = redis_mock()
        mock_redis_class.from_url.return_value = mock_redis
        mock_redis.ping.side_effect = Exception("Connection refused")

        adapter = RedisStreamAdapter(redis_url="redis://localhost:6379")

        assert await adapter.health_check() is False


def test_adapter_selection_memory():
    adapter = create_default_adapter(Settings(BUS_ADAPTER="memory"))
    assert isinstance(adapter, InMemoryAdapter)


def test_adapter_selection_redis_without_url_falls_back():
    adapter = create_default_adapter(Settings(BUS_ADAPTER="redis", REDIS_URL=None))
    assert isinstance(adapter, InMemoryAdapter)


def test_adapter_selection_redis():
    settings = Settings(BUS_ADAPTER="redis", REDIS_URL="redis://cache:6379/0", STREAM_PREFIX="qb")
    adapter = create_default_adapter(settings)
    assert isinstance(adapter, RedisStreamAdapter)
    assert adapter.stream_key("quotes") == "qb:quotes"


def test_encode_uses_wire_names():
    request = QuoteRequest(id=uuid.uuid4(), product="Widget")
    assert orjson.loads(encode(request)) == {"id": str(request.id), "product": "Widget"}


@pytest.mark.asyncio
async def test_bus_wraps_unexpected_adapter_errors(metrics):
    adapter = InMemoryAdapter()
    adapter.publish = AsyncMock(side_effect=OSError("socket closed"))
    bus = QuoteBus(adapter=adapter, metrics=metrics)

    with pytest.raises(TransportError):
        await bus.publish("quote-requests", QuoteRequest(id=uuid.uuid4(), product="Widget"))

    assert metrics.registry.get_sample_value(
        "quotebridge_publish_failures_total", {"channel": "quote-requests"}
    ) == 1.0
