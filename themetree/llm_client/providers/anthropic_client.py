"""Anthropic Claude API client."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import anthropic

from ..errors import to_model_error
from .base_client import BaseLLMClient
from .llm_basics import LLMMessage, LLMResponse, LLMUsage

if TYPE_CHECKING:
    from ..client import LLMConfig


class AnthropicClient(BaseLLMClient):
    def __init__(self, config: LLMConfig):
        super().__init__(config)
        api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        kwargs: dict = {"max_retries": 0}
        if api_key:
            kwargs["api_key"] = api_key
        if config.base_url:
            kwargs["base_url"] = config.base_url
        self.client: anthropic.Anthropic = anthropic.Anthropic(**kwargs)

    def chat(self, messages: list[LLMMessage]) -> LLMResponse:
        system: str | anthropic.NotGiven = anthropic.NOT_GIVEN
        history: list[anthropic.types.MessageParam] = []
        for msg in messages:
            if msg.role == "system":
                system = msg.content or ""
            else:
                history.append({"role": msg.role, "content": msg.content or ""})

        try:
            response = self.client.messages.create(
                model=self.model,
                messages=history,
                max_tokens=self.config.max_tokens,
                system=system,
                temperature=self.config.temperature,
                timeout=self.config.timeout,
            )
        except anthropic.AnthropicError as e:
            raise to_model_error(e) from e

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )
        usage = None
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.input_tokens or 0,
                output_tokens=response.usage.output_tokens or 0,
                cache_read_input_tokens=getattr(response.usage, "cache_read_input_tokens", 0) or 0,
            )
        return LLMResponse(
            content=content,
            usage=usage,
            model=response.model,
            finish_reason=response.stop_reason,
        )
