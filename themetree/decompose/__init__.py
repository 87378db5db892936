from .engine import DecompositionEngine, ExpansionReport, StopReason
from .expansion_breaker import BreakerDecision, ExpansionCircuitBreaker, ExpansionLedger
from .metrics import NodeMetrics, compute_metrics, count_changed_units

__all__ = [
    "DecompositionEngine",
    "ExpansionReport",
    "StopReason",
    "BreakerDecision",
    "ExpansionCircuitBreaker",
    "ExpansionLedger",
    "NodeMetrics",
    "compute_metrics",
    "count_changed_units",
]
