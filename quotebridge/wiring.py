"""Explicit construction of the quote components and their channel bindings."""
from dataclasses import dataclass
import random
import structlog
from .config import Settings, get_settings
from .metrics import Metrics
from .services.calculator import QuoteCalculator
from .services.event_bus import QuoteBus
from .services.submitter import QuoteSubmitter
from .services.tracker import ResultTracker

log = structlog.get_logger()


@dataclass
class Components:
    bus: QuoteBus
    submitter: QuoteSubmitter | None = None
    tracker: ResultTracker | None = None
    calculator: QuoteCalculator | None = None


def wire_calculator(
    bus: QuoteBus,
    settings: Settings,
    metrics: Metrics | None = None,
    rng: random.Random | None = None,
) -> QuoteCalculator:
    """Subscribe a calculator to the request channel, publishing on the result channel."""
    calculator = QuoteCalculator(
        publish=bus.publisher(settings.RESULT_CHANNEL),
        rng=rng,
        metrics=metrics,
        channel=settings.REQUEST_CHANNEL,
    )
    bus.subscribe(settings.REQUEST_CHANNEL, calculator.on_request)
    return calculator


def build_components(
    bus: QuoteBus,
    settings: Settings | None = None,
    metrics: Metrics | None = None,
    embedded_calculator: bool | None = None,
    rng: random.Random | None = None,
) -> Components:
    """
    Build the HTTP-side components on ``bus``.

    The submitter publishes on the request channel and the tracker is
    subscribed to the result channel. A calculator is added when
    ``embedded_calculator`` (default: settings.EMBEDDED_CALCULATOR) is true.
    """
    settings = settings or get_settings()
    if embedded_calculator is None:
        embedded_calculator = settings.EMBEDDED_CALCULATOR

    submitter = QuoteSubmitter(publish=bus.publisher(settings.REQUEST_CHANNEL), metrics=metrics)
    tracker = ResultTracker(metrics=metrics, channel=settings.RESULT_CHANNEL)
    # Every HTTP instance tracks every result, so any replica can answer a lookup
    bus.subscribe(settings.RESULT_CHANNEL, tracker.on_result, fanout=True)

    calculator = None
    if embedded_calculator:
        calculator = wire_calculator(bus, settings, metrics=metrics, rng=rng)

    log.info(
        "components.wired",
        request_channel=settings.REQUEST_CHANNEL,
        result_channel=settings.RESULT_CHANNEL,
        embedded_calculator=embedded_calculator,
    )
    return Components(bus=bus, submitter=submitter, tracker=tracker, calculator=calculator)
