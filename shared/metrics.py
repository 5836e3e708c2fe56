"""
Shared metrics configuration for the token service.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for the token service."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # A private registry keeps several collectors in one process from colliding.
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up token lifecycle metrics."""
        self._metrics["tokens_created_total"] = Counter(
            "tokens_created_total",
            "Total tokens issued",
            ["service"],
            registry=self.registry
        )

        self._metrics["tokens_parsed_total"] = Counter(
            "tokens_parsed_total",
            "Total token parse attempts by result",
            ["service", "result"],
            registry=self.registry
        )

        self._metrics["tokens_revoked_total"] = Counter(
            "tokens_revoked_total",
            "Total revoke calls by result",
            ["service", "result"],
            registry=self.registry
        )

        self._metrics["token_cache_events_total"] = Counter(
            "token_cache_events_total",
            "Validated-token cache hits and misses",
            ["service", "event"],
            registry=self.registry
        )

        self._metrics["revocation_store_duration_seconds"] = Histogram(
            "revocation_store_duration_seconds",
            "Revocation store round trip duration in seconds",
            ["service", "operation"],
            registry=self.registry
        )

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            labels.setdefault("service", self.service_name)
            with self._lock:
                self._metrics[metric_name].labels(**labels).inc()

    def observe_histogram(self, metric_name: str, value: float, **labels):
        """Observe a histogram metric."""
        if metric_name in self._metrics:
            labels.setdefault("service", self.service_name)
            self._metrics[metric_name].labels(**labels).observe(value)

    def sample_value(self, metric_name: str, **labels) -> Optional[float]:
        """Read the current value of a sample from this collector's registry."""
        labels.setdefault("service", self.service_name)
        return self.registry.get_sample_value(metric_name, labels)

