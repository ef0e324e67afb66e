"""
Credential ledger metrics.

Prometheus counters for issuance and verification, plus a small in-memory
summary for the CLI and tests.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)


class LedgerMetrics:
    """
    Metrics collector for issuance and verification.

    Example:
        >>> metrics = LedgerMetrics()
        >>> metrics.record_issuance(success=True)
        >>> with metrics.verification_timer():
        ...     result = verifier.verify(token)
        >>> metrics.get_stats()["issued"]
        1
    """

    def __init__(self, namespace: str = "vcledger", registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collector.

        Args:
            namespace: Metric name prefix.
            registry: Prometheus registry. A private one is created if None, so
                several collectors can live in one process.
        """
        self._namespace = namespace
        self._lock = threading.Lock()
        self._counters: Dict[str, float] = {}
        self.registry = registry or CollectorRegistry()

        self._issued = Counter(
            f"{namespace}_credentials_issued_total",
            "Credentials signed and published",
            registry=self.registry,
        )
        self._issuance_failures = Counter(
            f"{namespace}_issuance_failures_total",
            "Issue attempts that moved a request to failed",
            registry=self.registry,
        )
        self._verifications = Counter(
            f"{namespace}_verifications_total",
            "Verification attempts by outcome",
            ["status", "reason"],
            registry=self.registry,
        )
        self._verification_duration = Histogram(
            f"{namespace}_verification_duration_seconds",
            "Verification latency in seconds",
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
            registry=self.registry,
        )

    def _inc(self, name: str) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + 1

    def record_issuance(self, success: bool) -> None:
        """Record the outcome of one issue attempt."""
        if success:
            self._inc("issued")
            self._issued.inc()
        else:
            self._inc("issuance_failures")
            self._issuance_failures.inc()

    def record_verification(self, success: bool, reason: str = "ok") -> None:
        """Record a verification attempt."""
        self._inc(f"verifications_{'success' if success else 'failure'}")
        self._verifications.labels(
            status="success" if success else "failure", reason=reason
        ).inc()

    @contextmanager
    def verification_timer(self):
        """Context manager for timing verifications."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._verification_duration.observe(time.perf_counter() - start)

    def get_stats(self) -> Dict[str, Any]:
        """Get current counters as a dictionary."""
        with self._lock:
            stats = dict(self._counters)

        total = stats.get("verifications_success", 0) + stats.get("verifications_failure", 0)
        if total > 0:
            stats["verification_success_rate"] = stats.get("verifications_success", 0) / total
        return stats

    def get_prometheus_metrics(self) -> bytes:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry)
