"""
Shared metrics configuration for the Ability Layer.
"""

from prometheus_client import Counter, Histogram, Info, CollectorRegistry
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized Prometheus metrics for ability checks and bulk compilation."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Private registry unless one is passed in
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["ability_checks_total"] = Counter(
            "ability_checks_total",
            "Total permission checks",
            ["decision"],
            registry=self.registry
        )

        self._metrics["ability_check_duration_seconds"] = Histogram(
            "ability_check_duration_seconds",
            "Permission check duration in seconds",
            registry=self.registry
        )

        self._metrics["filter_compilations_total"] = Counter(
            "filter_compilations_total",
            "Total bulk filter compilations",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

    def record_check(self, allowed: bool, duration: float):
        """Record a single permission decision."""
        self._metrics["ability_checks_total"].labels(
            decision="allow" if allowed else "deny"
        ).inc()
        self._metrics["ability_check_duration_seconds"].observe(duration)

    def record_compilation(self, status: str):
        """Record a bulk filter compilation outcome."""
        self._metrics["filter_compilations_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Current value of a metric sample, mostly for diagnostics and tests."""
        return self.registry.get_sample_value(metric_name, labels or None)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
