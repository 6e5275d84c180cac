"""
Prometheus metrics for the automation engine.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry
import psutil
import os


class Metrics:
    """
    Centralized metrics for the automation engine.
    """

    def __init__(self, service_name: str = "automation-engine", version: str = "0.1.0", registry=None):
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

        # Business Metrics - automation specific
        self.rules_evaluated_total = Counter(
            "automation_rules_evaluated_total",
            "Total rule evaluations",
            ["resource_type"],
            registry=self.registry,
        )

        self.rules_matched_total = Counter(
            "automation_rules_matched_total",
            "Total rule evaluations that matched",
            ["resource_type"],
            registry=self.registry,
        )

        self.actions_executed_total = Counter(
            "automation_actions_executed_total",
            "Total actions executed",
            ["action_type", "status"],
            registry=self.registry,
        )

        self.rules_active = Gauge(
            "automation_rules_active",
            "Number of enabled rules",
            registry=self.registry,
        )

        self.webhooks_received_total = Counter(
            "automation_webhooks_received_total",
            "Total GitHub webhook deliveries received",
            ["event"],
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

            cpu_times = process.cpu_times()
            cpu_total = cpu_times.user + cpu_times.system
            # Counters only increase, so feed the delta since the last sample
            cpu_diff = cpu_total - self._last_cpu_total
            if cpu_diff > 0:
                self.process_cpu_seconds.labels(service=self.service_name).inc(cpu_diff)
            self._last_cpu_total = cpu_total

            memory_info = process.memory_info()
            self.process_memory_bytes.labels(service=self.service_name).set(memory_info.rss)

            try:
                num_fds = process.num_fds()
                self.process_open_fds.labels(service=self.service_name).set(num_fds)
            except AttributeError:
                # num_fds() not available on all platforms
                pass

        except psutil.Error:
            pass

    def record_rule_evaluated(self, resource_type: str, matched: bool):
        """Record one rule evaluation."""
        self.rules_evaluated_total.labels(resource_type=resource_type).inc()
        if matched:
            self.rules_matched_total.labels(resource_type=resource_type).inc()

    def record_action(self, action_type: str, success: bool):
        """Record one executed action."""
        status = "success" if success else "failure"
        self.actions_executed_total.labels(action_type=action_type, status=status).inc()

    def record_webhook(self, event: str):
        """Record a received webhook delivery."""
        self.webhooks_received_total.labels(event=event).inc()

    def set_active_rules(self, count: int):
        """Set the number of enabled rules."""
        self.rules_active.set(count)
