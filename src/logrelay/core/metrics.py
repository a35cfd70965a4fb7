"""
Prometheus metrics collection.

In-memory counters for the masking and batching pipeline. Metrics can only
be registered once per registry: share ``get_metrics_collector()`` on the
default registry, or inject a dedicated registry (as tests do).
"""

from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for LogRelay.
    
    Keep metrics simple,
    use in-memory counters, let Prometheus handle storage.
    """
    
    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else REGISTRY
        
        # Record metrics
        self.records_submitted_total = Counter(
            "logrelay_records_submitted_total",
            "Total records handed to the dispatcher",
            registry=self.registry,
        )
        
        self.records_dropped_total = Counter(
            "logrelay_records_dropped_total",
            "Total records dropped before buffering",
            ["reason"],
            registry=self.registry,
        )
        
        self.records_masked_total = Counter(
            "logrelay_records_masked_total",
            "Total records whose message was masked",
            registry=self.registry,
        )
        
        # Batch metrics
        self.batches_sent_total = Counter(
            "logrelay_batches_sent_total",
            "Total batches delivered successfully",
            registry=self.registry,
        )
        
        self.batch_size_records = Histogram(
            "logrelay_batch_size_records",
            "Number of records per delivered batch",
            buckets=[1, 2, 5, 10, 25, 50, 100, 250, 500],
            registry=self.registry,
        )
        
        self.delivery_failures_total = Counter(
            "logrelay_delivery_failures_total",
            "Total batches that failed delivery",
            ["error_code"],
            registry=self.registry,
        )
    
    def record_submitted(self) -> None:
        self.records_submitted_total.inc()
    
    def record_dropped(self, reason: str) -> None:
        """Record a record dropped before it reached the buffer."""
        self.records_dropped_total.labels(reason=reason).inc()
    
    def record_masked(self) -> None:
        self.records_masked_total.inc()
    
    def record_batch_sent(self, records: int) -> None:
        """Record a successfully delivered batch."""
        self.batches_sent_total.inc()
        self.batch_size_records.observe(records)
    
    def record_delivery_failure(self, error_code: str) -> None:
        self.delivery_failures_total.labels(error_code=error_code).inc()


# Global collector on the default registry
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create the collector registered on the default registry."""
    global _metrics_collector
    
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    
    return _metrics_collector
