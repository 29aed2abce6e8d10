"""Process-wide wiring of configuration, logging, tracing and metrics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

import structlog
from opentelemetry import trace

from relstore.infrastructure.config import Config, get_config
from relstore.infrastructure.logging import setup_logging
from relstore.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from relstore.infrastructure.tracing import setup_tracing


@dataclass
class Container:
    """Observability components configured from one Config.

    Usage:
        container = get_container()
        db = Database(container.config, container.metrics)
    """

    config: Config
    logger: structlog.BoundLogger
    tracer: trace.Tracer
    metrics: MetricsRegistry

    _instance: ClassVar[Container | None] = None

    @classmethod
    def create(cls, config: Config | None = None) -> Container:
        """Configure logging, tracing and metrics once per process.

        The Prometheus endpoint is only started when ``metrics.enabled``.
        """
        if cls._instance is not None:
            return cls._instance

        config = config or get_config()
        observability = config.observability
        logger = setup_logging(observability.log_level, observability.log_format)
        tracer = setup_tracing(
            service_name=observability.otel_service_name,
            otlp_endpoint=observability.otel_endpoint,
        )
        if config.metrics.enabled:
            metrics = setup_metrics(config.metrics.port)
        else:
            metrics = get_metrics()

        cls._instance = cls(config=config, logger=logger, tracer=tracer, metrics=metrics)
        logger.info(
            "relstore_container_initialized",
            log_level=observability.log_level,
            tracing_endpoint=observability.otel_endpoint,
            metrics_port=config.metrics.port if config.metrics.enabled else None,
        )
        return cls._instance

    @classmethod
    def get(cls) -> Container:
        if cls._instance is None:
            return cls.create()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None


def get_container() -> Container:
    """Get the process-wide container, creating it on first use."""
    return Container.get()
