"""
Prometheus metrics collection for throttlekit

Counts lifecycle events of bound throttles and exposes queue depth and
in-flight level as gauges read at scrape time.
"""

import logging
from typing import TYPE_CHECKING, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
    start_http_server,
)

from ..config import MetricsConfig
from ..events import DRAINED, ERROR, RECEIVED, SENT, Subscription

if TYPE_CHECKING:
    from ..scheduler import Throttle

logger = logging.getLogger(__name__)


class ThrottleMetrics:
    """
    Metrics collector for one or more throttles

    Each bound throttle is labelled by its configured name.
    """

    def __init__(
        self,
        config: Optional[MetricsConfig] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.config = config or MetricsConfig(enabled=True)
        self.registry = registry or CollectorRegistry()
        labelnames = ["throttle"] + list(self.config.default_labels.keys())

        self.sent_total = Counter(
            "throttlekit_sent_total",
            "Total number of dispatched operations",
            labelnames=labelnames,
            registry=self.registry,
        )
        self.received_total = Counter(
            "throttlekit_received_total",
            "Total number of completed operations",
            labelnames=labelnames,
            registry=self.registry,
        )
        self.errors_total = Counter(
            "throttlekit_errors_total",
            "Total number of failed operations",
            labelnames=labelnames + ["error_type"],
            registry=self.registry,
        )
        self.drained_total = Counter(
            "throttlekit_drained_total",
            "Number of times the queue fully drained",
            labelnames=labelnames,
            registry=self.registry,
        )
        self.queue_depth = Gauge(
            "throttlekit_queue_depth",
            "Operations waiting for admission",
            labelnames=labelnames,
            registry=self.registry,
        )
        self.in_flight = Gauge(
            "throttlekit_in_flight",
            "Effective concurrency level",
            labelnames=labelnames,
            registry=self.registry,
        )

        if self.config.port:
            start_http_server(self.config.port, registry=self.registry)
            logger.info(f"Metrics server started on port {self.config.port}")

    def _labels(self, name: str) -> dict[str, str]:
        return {"throttle": name, **self.config.default_labels}

    def bind(self, throttle: "Throttle") -> list[Subscription]:
        """Subscribe to `throttle` events and register its gauges"""
        labels = self._labels(throttle.config.name)

        def on_error(error, request):
            self.errors_total.labels(
                **labels, error_type=type(error).__name__
            ).inc()

        self.queue_depth.labels(**labels).set_function(lambda: throttle.queued)
        self.in_flight.labels(**labels).set_function(
            throttle.current_concurrency_level
        )

        return [
            throttle.on(SENT, lambda request: self.sent_total.labels(**labels).inc()),
            throttle.on(
                RECEIVED, lambda request: self.received_total.labels(**labels).inc()
            ),
            throttle.on(ERROR, on_error),
            throttle.on(DRAINED, lambda: self.drained_total.labels(**labels).inc()),
        ]

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format"""
        return generate_latest(self.registry).decode("utf-8")
