# shop_api/core/metrics.py
"""Prometheus metrics for the API process."""
from prometheus_client import CollectorRegistry, Counter


def _build_registry():
    registry = CollectorRegistry()
    degraded_allocations = Counter(
        "sequence_degraded_allocations_total",
        "Identifiers issued without the atomic counter increment, by recovery path.",
        labelnames=("sequence_key", "path"),
        registry=registry,
    )
    allocations = Counter(
        "sequence_allocations_total",
        "Identifiers issued through the atomic counter increment.",
        labelnames=("sequence_key",),
        registry=registry,
    )
    return registry, degraded_allocations, allocations


REGISTRY, SEQUENCE_DEGRADED_TOTAL, SEQUENCE_ALLOCATIONS_TOTAL = _build_registry()


def reset_metrics_registry() -> None:
    global REGISTRY, SEQUENCE_DEGRADED_TOTAL, SEQUENCE_ALLOCATIONS_TOTAL
    REGISTRY, SEQUENCE_DEGRADED_TOTAL, SEQUENCE_ALLOCATIONS_TOTAL = _build_registry()


__all__ = [
    "REGISTRY",
    "SEQUENCE_DEGRADED_TOTAL",
    "SEQUENCE_ALLOCATIONS_TOTAL",
    "reset_metrics_registry",
]
