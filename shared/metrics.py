"""
Shared metrics configuration for the case-management ledger services.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns a registry unless one is passed in, so several
    service instances can coexist in one process (tests create many).
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_ledger_metrics()

    def _setup_ledger_metrics(self):
        """Set up ledger-specific metrics."""
        self._metrics["ledger_invocations_total"] = Counter(
            "ledger_invocations_total",
            "Total ledger invocations",
            ["operation", "outcome"],
            registry=self.registry
        )

        self._metrics["ledger_invocation_duration_seconds"] = Histogram(
            "ledger_invocation_duration_seconds",
            "Ledger invocation duration in seconds",
            ["operation"],
            registry=self.registry
        )

        self._metrics["access_decisions_total"] = Counter(
            "access_decisions_total",
            "Total policy access decisions",
            ["entity", "decision"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_invocation(self, operation: str, outcome: str, duration: float):
        """Record a completed ledger invocation."""
        self._metrics["ledger_invocations_total"].labels(operation=operation, outcome=outcome).inc()
        self._metrics["ledger_invocation_duration_seconds"].labels(operation=operation).observe(duration)

    def record_access_decision(self, entity: str, allowed: bool):
        """Record a policy access decision."""
        decision = "allow" if allowed else "deny"
        self._metrics["access_decisions_total"].labels(entity=entity, decision=decision).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
