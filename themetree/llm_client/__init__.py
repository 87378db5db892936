from .client import LLMClient, LLMConfig
from .errors import (
    ConfigError,
    FailureKind,
    ModelCallError,
    PermanentModelError,
    QueueClearedError,
    ResponseShapeError,
    ThemeTreeError,
    TransientModelError,
    classify_failure,
)
from .providers import LLMProvider, infer_provider
from .providers.llm_basics import LLMMessage, LLMResponse, LLMUsage

__all__ = [
    "LLMClient",
    "LLMConfig",
    "LLMProvider",
    "infer_provider",
    "LLMMessage",
    "LLMResponse",
    "LLMUsage",
    "ThemeTreeError",
    "ConfigError",
    "ModelCallError",
    "TransientModelError",
    "PermanentModelError",
    "ResponseShapeError",
    "QueueClearedError",
    "FailureKind",
    "classify_failure",
]
