"""Prometheus metrics for the relational core."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all relstore metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Transaction metrics
        self.transactions_total = Counter(
            "relstore_transactions_total",
            "Total number of finished transactions",
            ["status"],  # committed, aborted
            registry=self._registry,
        )

        self.transactions_active = Gauge(
            "relstore_transactions_active",
            "Number of active transactions",
            registry=self._registry,
        )

        # Mutation metrics
        self.mutations_total = Counter(
            "relstore_mutations_total",
            "Total row mutations applied to committed state",
            ["kind", "status"],  # kind: insert, update, delete; status: success, error
            registry=self._registry,
        )

        self.constraint_violations_total = Counter(
            "relstore_constraint_violations_total",
            "Total constraint violations",
            ["kind"],
            registry=self._registry,
        )

        self.write_lock_wait_seconds = Histogram(
            "relstore_write_lock_wait_seconds",
            "Time spent waiting for the global write scope",
            buckets=(0.0001, 0.001, 0.01, 0.1, 0.5, 1.0, 5.0, 30.0),
            registry=self._registry,
        )

        # Read path metrics
        self.scans_total = Counter(
            "relstore_scans_total",
            "Total table scans by access path",
            ["access_path"],  # seq_scan, index_scan
            registry=self._registry,
        )

        self.index_lookups_total = Counter(
            "relstore_index_lookups_total",
            "Total index lookup operations",
            ["index_name"],
            registry=self._registry,
        )

        # View metrics
        self.view_refreshes_total = Counter(
            "relstore_view_refreshes_total",
            "Total materialized view refreshes",
            ["view", "status"],
            registry=self._registry,
        )

        self.view_refresh_seconds = Histogram(
            "relstore_view_refresh_seconds",
            "Materialized view refresh latency in seconds",
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        # Server info
        self.info = Info(
            "relstore",
            "Relational core information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up the Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from relstore import __version__
    _metrics.info.info({
        "version": __version__,
    })

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
