from .analysis_config import (
    AnalysisConfig,
    CacheConfig,
    ConsolidationConfig,
    ExpansionConfig,
    FallbackConfig,
    GatewayConfig,
)

__all__ = [
    "AnalysisConfig",
    "CacheConfig",
    "ConsolidationConfig",
    "ExpansionConfig",
    "FallbackConfig",
    "GatewayConfig",
]
