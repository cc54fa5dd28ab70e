"""
Prometheus metrics for the grant ledger.

Each ledger owns a ``LedgerMetrics`` bound to its own registry, so several
ledgers (or tests) in one process never collide on metric names. Expose a
registry with ``prometheus_client.start_http_server(port, registry=...)``.
"""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


class LedgerMetrics:
    """Counters and gauges for ledger operations."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        # ==================== OPERATION METRICS ====================
        self.operations_total = Counter(
            "vestledger_operations_total",
            "Ledger operations by outcome",
            ["operation", "outcome"],  # outcome: success or the error class name
            registry=self.registry,
        )

        self.sweep_duration = Histogram(
            "vestledger_vesting_sweep_seconds",
            "Time taken by a bulk vesting sweep",
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 5],
            registry=self.registry,
        )

        # ==================== OPTION METRICS ====================
        self.options_granted = Counter(
            "vestledger_options_granted_total",
            "Options granted to beneficiaries",
            registry=self.registry,
        )

        self.options_vested = Counter(
            "vestledger_options_vested_total",
            "Options recorded as vested by sweeps",
            registry=self.registry,
        )

        self.options_exercised = Counter(
            "vestledger_options_exercised_total",
            "Options exercised by beneficiaries",
            registry=self.registry,
        )

        self.tokens_transferred = Counter(
            "vestledger_tokens_transferred_total",
            "Value moved out through the token port",
            registry=self.registry,
        )

        # ==================== POOL METRICS ====================
        self.pool_remaining = Gauge(
            "vestledger_pool_remaining_options",
            "Ungranted options left in the pool",
            registry=self.registry,
        )

        self.pool_total_vested = Gauge(
            "vestledger_pool_total_vested_options",
            "Cumulative vested options across all beneficiaries",
            registry=self.registry,
        )

        self.beneficiaries = Gauge(
            "vestledger_beneficiaries",
            "Beneficiaries holding a grant",
            registry=self.registry,
        )

    def record_success(self, operation: str) -> None:
        self.operations_total.labels(operation=operation, outcome="success").inc()

    def record_failure(self, operation: str, error: BaseException) -> None:
        self.operations_total.labels(operation=operation, outcome=type(error).__name__).inc()

    def update_pool(self, total_options: int, total_vested: int, beneficiaries: int) -> None:
        self.pool_remaining.set(total_options)
        self.pool_total_vested.set(total_vested)
        self.beneficiaries.set(beneficiaries)

    def sample(self, name: str, labels: dict | None = None) -> float:
        """Read a sample value back from the registry (0.0 if absent)."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0
