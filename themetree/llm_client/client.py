"""LLM Client: thin factory/router over the provider implementations.

  - LLMConfig holds all configuration
  - LLMClient dispatches to the correct provider via lazy imports
  - Each provider makes a single attempt; retries belong to the call gateway
"""

import asyncio
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigError, TransientModelError
from .providers import ALL_PROVIDERS, LLMProvider, infer_provider
from .providers.base_client import BaseLLMClient
from .providers.llm_basics import LLMMessage, LLMResponse, LLMUsage
from themetree.utils.api import parse_thinking_output


# ---------------------------------------------------------------------------
# LLMConfig
# ---------------------------------------------------------------------------
@dataclass
class LLMConfig:
    """Model configuration for unified LLM access across providers."""

    model: str = "claude-sonnet-4-5"
    temperature: float = 0.0
    max_tokens: int = 4000
    top_p: float = 1.0
    stop: Optional[List[str]] = None
    timeout: float = 120.0

    # Provider & connection
    provider: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    # Provider-specific params that don't have explicit fields
    extra: Dict[str, Any] = field(default_factory=dict)

    def resolve_provider(self) -> str:
        """Return effective provider, auto-detecting from model name if not explicitly set."""
        if self.provider:
            return self.provider
        return infer_provider(self.model, self.base_url)

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "stop": self.stop,
            "timeout": self.timeout,
            "provider": self.provider,
            "api_key": self.api_key,
            "base_url": self.base_url,
        }
        if self.extra:
            d["extra"] = self.extra
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LLMConfig":
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {}
        extra: Dict[str, Any] = dict(data.get("extra") or {})
        for k, v in data.items():
            if k == "extra":
                continue
            if k in valid_fields:
                filtered[k] = v
            else:
                extra[k] = v
        cfg = cls(**filtered)
        cfg.extra.update(extra)
        return cfg

    @classmethod
    def from_source(cls, source: Union[str, Dict[str, Any], "LLMConfig"]) -> "LLMConfig":
        """
        Supports:
        - LLMConfig instance -> return as-is
        - dict -> from_dict
        - JSON/YAML string -> parse
        - JSON/YAML file path -> read & parse
        """
        if isinstance(source, cls):
            return source
        if isinstance(source, dict):
            return cls.from_dict(source)

        if isinstance(source, str):
            if os.path.exists(source):
                with open(source, "r", encoding="utf-8") as f:
                    text = f.read()
            else:
                text = source

            try:
                return cls.from_dict(json.loads(text))
            except json.JSONDecodeError:
                pass

            try:
                parsed = yaml.safe_load(text)
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse LLM config: {e}") from e
            if isinstance(parsed, dict):
                return cls.from_dict(parsed)
            raise ConfigError("Cannot parse LLM config: not valid JSON / YAML / dict / LLMConfig")

        raise ConfigError(f"Unsupported config type: {type(source)}")

    def save(self, path: str):
        data = self.to_dict()
        if path.endswith((".yml", ".yaml")):
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, allow_unicode=True)
        else:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# LLMClient: factory / router
# ---------------------------------------------------------------------------
class LLMClient:
    """
    Unified LLM client supporting multiple providers.

    Public API:
        - complete(prompt, system=None) -> str
        - acomplete(prompt, system=None) -> str  (runs `complete` in a worker thread)

    `acomplete` matches the call gateway's `ModelCaller` signature, so an
    instance can be handed to CallGateway directly.
    """

    def __init__(
        self,
        config: Optional[Union[LLMConfig, Dict[str, Any], str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = LLMConfig.from_source(config or {})
        self.logger = logger or logging.getLogger(__name__)
        self.model = self.config.model.strip()
        self.provider_name = self.config.resolve_provider()
        if self.provider_name not in ALL_PROVIDERS:
            raise ConfigError(f"Unknown provider '{self.provider_name}', expected one of {ALL_PROVIDERS}")
        self.provider = LLMProvider(self.provider_name)
        self.last_usage: Optional[LLMUsage] = None
        self.total_usage = LLMUsage()
        self._usage_lock = threading.Lock()

        # Lazy import: only the selected provider's SDK is loaded
        match self.provider:
            case LLMProvider.OPENAI | LLMProvider.VLLM | LLMProvider.OLLAMA:
                from .providers.openai_compatible import ENDPOINTS, OpenAICompatibleClient
                self.client: BaseLLMClient = OpenAICompatibleClient(self.config, ENDPOINTS[self.provider_name])
            case LLMProvider.ANTHROPIC:
                from .providers.anthropic_client import AnthropicClient
                self.client = AnthropicClient(self.config)
            case LLMProvider.CLAUDE_CLI:
                from .providers.claude_cli_client import ClaudeCLIClient
                self.client = ClaudeCLIClient(self.config)

    def complete(self, prompt: str, system: Optional[str] = None) -> str:
        messages: List[LLMMessage] = []
        if system:
            messages.append(LLMMessage(role="system", content=system))
        messages.append(LLMMessage(role="user", content=prompt))

        response: LLMResponse = self.client.chat(messages)
        with self._usage_lock:
            self.last_usage = response.usage
            if response.usage:
                self.total_usage = self.total_usage + response.usage

        content = parse_thinking_output(response.content or "")
        if not content.strip():
            raise TransientModelError(f"[LLMClient] {self.provider_name}/{self.model} returned an empty response")
        self.logger.debug(
            f"[LLMClient] {self.provider_name}/{self.model} answered "
            f"{len(content)} chars (finish={response.finish_reason})"
        )
        return content

    async def acomplete(self, prompt: str, system: Optional[str] = None) -> str:
        return await asyncio.to_thread(self.complete, prompt, system)

    async def __call__(self, prompt: str) -> str:
        return await self.acomplete(prompt)
