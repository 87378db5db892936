from .call_gateway import (
    CallGateway,
    GatewayError,
    GatewayResult,
    GatewayStatus,
    ModelCaller,
)
from .circuit_breaker import BreakerStatus, CircuitBreaker, CircuitState
from .clock import SYSTEM_CLOCK, Clock

__all__ = [
    "CallGateway",
    "GatewayError",
    "GatewayResult",
    "GatewayStatus",
    "ModelCaller",
    "BreakerStatus",
    "CircuitBreaker",
    "CircuitState",
    "Clock",
    "SYSTEM_CLOCK",
]
