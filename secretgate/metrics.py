"""
Prometheus metrics for SecretGate service.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import structlog
import os

log = structlog.get_logger()


class Metrics:
    """
    Centralized metrics for SecretGate service.

    Each instance owns its registry so several apps (tests) can coexist in
    one process.
    """

    def __init__(self, service_name: str = "secretgate", version: str = "0.1.0", registry=None):
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

        # Business Metrics - SecretGate specific
        self.auth_decisions_total = Counter(
            "secretgate_auth_decisions_total",
            "Authorization decisions by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.key_operations_total = Counter(
            "secretgate_key_operations_total",
            "Key management operations (rotate, migrate, generate)",
            ["operation", "result"],
            registry=self.registry,
        )

        self.key_operation_items = Counter(
            "secretgate_key_operation_items_total",
            "Secrets processed by rotation and migration",
            ["operation", "outcome"],
            registry=self.registry,
        )

        # System Metrics
        self._setup_process_metrics()

    def _setup_process_metrics(self):
        """Set up process-level metrics using psutil."""
        self.process_cpu_seconds = Counter(
            "process_cpu_seconds_total",
            "Total CPU time consumed by process",
            ["service"],
            registry=self.registry,
        )

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

        self._last_cpu_total = 0.0
        self.update_system_metrics()

    def update_system_metrics(self):
        """Update system metrics from psutil."""
        try:
            process = psutil.Process(os.getpid())

            # Counter can't be set; add the delta since the last sample
            cpu_times = process.cpu_times()
            cpu_total = cpu_times.user + cpu_times.system
            cpu_diff = cpu_total - self._last_cpu_total
            if cpu_diff > 0:
                self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
            self._last_cpu_total = cpu_total

            self.process_memory_bytes.labels(service=self.service_name).set(process.memory_info().rss)

            try:
                self.process_open_fds.labels(service=self.service_name).set(process.num_fds())
            except AttributeError:
                # num_fds() not available on all platforms
                pass

        except psutil.Error as e:
            log.debug("metrics.process_sample_failed", error=str(e))

    def record_auth_decision(self, outcome: str):
        """Record one gateway decision (allowed, denied, unauthenticated, failed)."""
        self.auth_decisions_total.labels(outcome=outcome).inc()

    def record_key_operation(self, operation: str, result: str, report=None):
        """Record a rotate/migrate/generate call and, when given, its per-item counts."""
        self.key_operations_total.labels(operation=operation, result=result).inc()
        if report is not None:
            self.key_operation_items.labels(operation=operation, outcome="processed").inc(report.count)
            self.key_operation_items.labels(operation=operation, outcome="failed").inc(report.failures)
            self.key_operation_items.labels(operation=operation, outcome="skipped").inc(report.skipped)
