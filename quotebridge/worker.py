"""
Standalone quote calculator process.

Consumes the request channel and publishes priced quotes on the result
channel. Run with ``python -m quotebridge.worker`` next to an HTTP service
started with ``EMBEDDED_CALCULATOR=false`` and a shared Redis bus.
"""
import asyncio
import signal
from .config import Settings, get_settings
from .logging import setup_logging, get_logger
from .services.event_bus import QuoteBus, create_default_adapter
from .wiring import wire_calculator

logger = get_logger()


async def run_worker(settings: Settings | None = None, stop_event: asyncio.Event | None = None) -> None:
    """Run the calculator until ``stop_event`` is set or the process is signalled."""
    settings = settings or get_settings()
    stop_event = stop_event or asyncio.Event()

    bus = QuoteBus(adapter=create_default_adapter(settings))
    wire_calculator(bus, settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Not available off the main thread or on some platforms
            pass

    await bus.start()
    logger.info("worker_started", env=settings.ENV, request_channel=settings.REQUEST_CHANNEL)
    try:
        await stop_event.wait()
    finally:
        logger.info("worker_stopping")
        await bus.stop()


def main() -> None:
    settings = get_settings()
    setup_logging(json_output=settings.LOG_JSON, service_name="quotebridge-worker", level=settings.LOG_LEVEL)
    asyncio.run(run_worker(settings))


if __name__ == "__main__":
    main()
