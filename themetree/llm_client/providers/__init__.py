"""LLM provider implementations.

- BaseLLMClient: abstract base
- OpenAICompatibleClient: OpenAI, vLLM and Ollama (one endpoint table)
- AnthropicClient, ClaudeCLIClient: the Claude API and the `claude` command
"""

from enum import Enum


class LLMProvider(Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    VLLM = "vllm"
    CLAUDE_CLI = "claude_cli"


PROVIDER_OPENAI = LLMProvider.OPENAI.value
PROVIDER_ANTHROPIC = LLMProvider.ANTHROPIC.value
PROVIDER_OLLAMA = LLMProvider.OLLAMA.value
PROVIDER_VLLM = LLMProvider.VLLM.value
PROVIDER_CLAUDE_CLI = LLMProvider.CLAUDE_CLI.value

ALL_PROVIDERS = [p.value for p in LLMProvider]

# Model prefix -> provider auto-detection
_MODEL_PREFIX_TO_PROVIDER = {
    "claude-cli": PROVIDER_CLAUDE_CLI,
    "claude": PROVIDER_ANTHROPIC,
    "llama": PROVIDER_OLLAMA,
    "qwen": PROVIDER_OLLAMA,
}


def infer_provider(model: str, base_url: str | None = None) -> str:
    """Infer provider from model name or base_url."""
    m = model.lower().strip()
    for prefix, provider in _MODEL_PREFIX_TO_PROVIDER.items():
        if m.startswith(prefix):
            return provider
    if base_url:
        u = base_url.lower()
        if "api.openai.com" in u:
            return PROVIDER_OPENAI
        if "anthropic.com" in u:
            return PROVIDER_ANTHROPIC
        if ":11434" in u:
            return PROVIDER_OLLAMA
        if "localhost" in u or "127.0.0.1" in u:
            return PROVIDER_VLLM
    return PROVIDER_OPENAI
