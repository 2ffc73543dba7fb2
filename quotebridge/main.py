"""
QuoteBridge - asynchronous quote request/reply over a message bus.

Features:
- Quote submission and result lookup by correlation id
- Structured logging with trace IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from . import __version__
from .config import Settings, get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .middleware.error_handler import install_error_handlers
from .middleware.metrics import MetricsMiddleware
from .middleware.trace import TraceIdMiddleware
from .middleware.validation import ValidationMiddleware
from .metrics import Metrics
from .health import HealthChecker
from .services.event_bus import QuoteBus, create_default_adapter
from .wiring import build_components

SERVICE_NAME = "quotebridge"

logger = get_logger()


def create_app(settings: Settings | None = None, bus: QuoteBus | None = None) -> FastAPI:
    """
    Build the HTTP service around a bus.

    Args:
        settings: Configuration (defaults to environment settings)
        bus: Message bus (defaults to the configured adapter)
    """
    settings = settings or get_settings()
    metrics = Metrics(service_name=SERVICE_NAME, version=__version__)
    if bus is None:
        bus = QuoteBus(adapter=create_default_adapter(settings), metrics=metrics)
    elif bus.metrics is None:
        bus.metrics = metrics

    components = build_components(bus, settings=settings, metrics=metrics)
    health_checker = HealthChecker(bus, service_name=SERVICE_NAME, version=__version__)

    app = FastAPI(
        title="QuoteBridge",
        version=__version__,
        description="Asynchronous quote request/reply over a publish/subscribe bus",
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.components = components

    # Last added runs first: trace ID, then metrics, then body validation
    app.add_middleware(ValidationMiddleware, max_body_size=settings.MAX_BODY_SIZE)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(TraceIdMiddleware)
    install_error_handlers(app)

    app.include_router(router)

    metrics_app = make_asgi_app(registry=metrics.registry)
    app.mount("/metrics", metrics_app)

    @app.get("/health")
    async def health():
        """
        Liveness probe - basic health check.

        Returns 200 if service is running.
        """
        logger.debug("health_check_liveness")
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness probe - comprehensive health check.

        Returns:
            200: Service is ready to handle traffic
            503: Service is not ready
        """
        logger.debug("health_check_readiness")
        metrics.update_system_metrics()
        result = await health_checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(result, status_code=status_code)

    @app.on_event("startup")
    async def startup_event():
        await bus.start()
        logger.info(
            "service_starting",
            version=__version__,
            env=settings.ENV,
            adapter=type(bus.adapter).__name__,
            embedded_calculator=components.calculator is not None,
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("service_stopping")
        await bus.stop()
        metrics.app_up.labels(service=SERVICE_NAME, version=__version__).set(0)

    return app


_settings = get_settings()
setup_logging(json_output=_settings.LOG_JSON, service_name=SERVICE_NAME, level=_settings.LOG_LEVEL)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "quotebridge.main:app",
        host="0.0.0.0",
        port=_settings.SERVICE_PORT,
    )
