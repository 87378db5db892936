"""
Providers that speak the OpenAI chat.completions API: OpenAI itself and the
local vLLM and Ollama servers. They differ only in how the SDK client is
pointed at its endpoint, so each one is a row in `ENDPOINTS`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

import openai
from openai.types.chat import (
    ChatCompletion,
    ChatCompletionAssistantMessageParam,
    ChatCompletionMessageParam,
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam,
)

from ..errors import TransientModelError, to_model_error
from .base_client import BaseLLMClient
from .llm_basics import LLMMessage, LLMResponse, LLMUsage

if TYPE_CHECKING:
    from ..client import LLMConfig


@dataclass(frozen=True)
class Endpoint:
    name: str
    api_key_env: str
    default_api_key: Optional[str] = None
    default_base_url: Optional[str] = None
    base_url_env: Optional[str] = None
    # Ollama serves the compatible API under /v1 of its host
    force_v1_suffix: bool = False
    # Models that reject temperature/top_p and take max_completion_tokens
    reasoning_markers: Tuple[str, ...] = ()

    def base_url(self, config: LLMConfig) -> Optional[str]:
        url = config.base_url or (os.getenv(self.base_url_env) if self.base_url_env else None) or self.default_base_url
        if url and self.force_v1_suffix and not url.rstrip("/").endswith("/v1"):
            url = url.rstrip("/") + "/v1"
        return url

    def api_key(self, config: LLMConfig) -> Optional[str]:
        return config.api_key or os.getenv(self.api_key_env) or self.default_api_key

    def is_reasoning_model(self, model: str) -> bool:
        return any(marker in model for marker in self.reasoning_markers)


ENDPOINTS = {
    "openai": Endpoint("openai", "OPENAI_API_KEY", reasoning_markers=("o3", "o4-mini", "gpt-5")),
    "vllm": Endpoint("vllm", "VLLM_API_KEY", default_api_key="EMPTY", default_base_url="http://localhost:8000/v1"),
    "ollama": Endpoint(
        "ollama",
        "OLLAMA_API_KEY",
        default_api_key="ollama",
        default_base_url="http://localhost:11434",
        base_url_env="OLLAMA_HOST",
        force_v1_suffix=True,
    ),
}


class OpenAICompatibleClient(BaseLLMClient):
    """One chat.completions attempt per call; the SDK's own retries are off."""

    def __init__(self, config: LLMConfig, endpoint: Endpoint):
        super().__init__(config)
        self.endpoint = endpoint
        kwargs: dict = {"max_retries": 0}
        api_key = endpoint.api_key(config)
        if api_key:
            kwargs["api_key"] = api_key
        base_url = endpoint.base_url(config)
        if base_url:
            kwargs["base_url"] = base_url
        self.client = openai.OpenAI(**kwargs)

    def _request_params(self) -> dict:
        if self.endpoint.is_reasoning_model(self.model):
            return {"max_completion_tokens": self.config.max_tokens}
        params = {
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
        }
        if self.config.stop:
            params["stop"] = self.config.stop
        return params

    def chat(self, messages: list[LLMMessage]) -> LLMResponse:
        try:
            response: ChatCompletion = self.client.chat.completions.create(
                model=self.model,
                messages=to_chat_messages(messages),
                timeout=self.config.timeout,
                **self._request_params(),
            )
        except openai.OpenAIError as e:
            raise to_model_error(e) from e

        if not response.choices:
            raise TransientModelError(f"{self.endpoint.name} returned no choices")
        choice = response.choices[0]
        usage = None
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.prompt_tokens or 0,
                output_tokens=response.usage.completion_tokens or 0,
            )
        return LLMResponse(
            content=choice.message.content or "",
            usage=usage,
            model=response.model,
            finish_reason=choice.finish_reason,
        )


def to_chat_messages(messages: list[LLMMessage]) -> list[ChatCompletionMessageParam]:
    parsed: list[ChatCompletionMessageParam] = []
    for msg in messages:
        match msg.role:
            case "system":
                parsed.append(ChatCompletionSystemMessageParam(role="system", content=msg.content or ""))
            case "user":
                parsed.append(ChatCompletionUserMessageParam(role="user", content=msg.content or ""))
            case "assistant":
                parsed.append(ChatCompletionAssistantMessageParam(role="assistant", content=msg.content or ""))
            case _:
                raise ValueError(f"Unsupported message role: {msg.role}")
    return parsed
