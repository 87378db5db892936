"""Abstract base class for LLM clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .llm_basics import LLMMessage, LLMResponse

if TYPE_CHECKING:
    from ..client import LLMConfig


class BaseLLMClient(ABC):
    """
    Base class for all LLM provider clients.

    Providers make exactly one attempt per `chat` call and translate SDK
    failures into themetree errors; retry policy lives in the call gateway.
    """

    def __init__(self, config: LLMConfig):
        self.config = config
        self.model: str = config.model.strip()
        self.api_key: str | None = config.api_key
        self.base_url: str | None = config.base_url

    @abstractmethod
    def chat(self, messages: list[LLMMessage]) -> LLMResponse:
        """Send chat messages to the LLM and return a structured response."""
        pass
