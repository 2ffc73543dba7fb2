"""
Prometheus metrics for the QuoteBridge service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for QuoteBridge.
    """

    def __init__(self, service_name: str = "quotebridge", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()

        # HTTP Metrics
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["service", "method", "path", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["service", "method", "path"],
            registry=self.registry,
        )

        self.http_requests_active = Gauge(
            "http_requests_active",
            "Number of active HTTP requests",
            ["service"],
            registry=self.registry,
        )
        self.http_requests_active.labels(service=service_name).set(0)

        # Application Info
        self.app_info = Info(
            "app",
            "Application information",
            registry=self.registry,
        )
        self.app_info.info({"service": service_name, "version": version})

        self.app_up = Gauge(
            "app_up",
            "Application up status (1=up, 0=down)",
            ["service", "version"],
            registry=self.registry,
        )
        self.app_up.labels(service=service_name, version=version).set(1)

        # Business Metrics - quote correlation
        self.requests_submitted_total = Counter(
            "quotebridge_requests_submitted_total",
            "Quote requests accepted and published",
            registry=self.registry,
        )

        self.quotes_computed_total = Counter(
            "quotebridge_quotes_computed_total",
            "Quotes priced and published by the calculator",
            registry=self.registry,
        )

        self.results_stored_total = Counter(
            "quotebridge_results_stored_total",
            "Quote results stored by the tracker",
            ["outcome"],
            registry=self.registry,
        )

        self.messages_rejected_total = Counter(
            "quotebridge_messages_rejected_total",
            "Inbound bus messages dropped as malformed",
            ["channel"],
            registry=self.registry,
        )

        self.publish_failures_total = Counter(
            "quotebridge_publish_failures_total",
            "Messages the bus refused",
            ["channel"],
            registry=self.registry,
        )

        self.publish_latency = Histogram(
            "quotebridge_publish_latency_seconds",
            "Time spent handing a message to the bus",
            ["channel"],
            registry=self.registry,
        )

        self.pending_requests = Gauge(
            "quotebridge_pending_requests",
            "Requests known to this process",
            registry=self.registry,
        )

        self.stored_results = Gauge(
            "quotebridge_stored_results",
            "Results held by the tracker",
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_memory_bytes = Gauge(
            "process_resident_memory_bytes",
            "Resident memory size in bytes",
            ["service"],
            registry=self.registry,
        )

        self.process_open_fds = Gauge(
            "process_open_fds",
            "Number of open file descriptors",
            ["service"],
            registry=self.registry,
        )

        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())
            self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)
            try:
                self.process_open_fds.labels(service=self.service_name).set(process.num_fds())
            except AttributeError:
                # num_fds() not available on all platforms
                pass
        except psutil.Error:
            pass

    def record_rejected(self, channel: str):
        self.messages_rejected_total.labels(channel=channel).inc()

    def record_publish_failure(self, channel: str):
        self.publish_failures_total.labels(channel=channel).inc()
