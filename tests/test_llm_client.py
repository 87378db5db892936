import subprocess
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from themetree.llm_client.client import LLMClient, LLMConfig
from themetree.llm_client.errors import ConfigError, PermanentModelError, TransientModelError
from themetree.llm_client.providers import infer_provider
from themetree.llm_client.providers.llm_basics import LLMResponse, LLMUsage


@pytest.mark.parametrize(
    "model, base_url, expected",
    [
        ("claude-sonnet-4-5", None, "anthropic"),
        ("claude-cli", None, "claude_cli"),
        ("gpt-4o", None, "openai"),
        ("llama3.1", None, "ollama"),
        ("my-model", "http://localhost:11434", "ollama"),
        ("my-model", "http://localhost:8000/v1", "vllm"),
    ],
)
def test_infer_provider(model, base_url, expected):
    assert infer_provider(model, base_url) == expected


def test_config_from_yaml_text_keeps_unknown_keys_as_extra():
    cfg = LLMConfig.from_source("model: gpt-4o\ntemperature: 0.2\nreasoning_effort: low\n")
    assert cfg.model == "gpt-4o"
    assert cfg.temperature == 0.2
    assert cfg.extra == {"reasoning_effort": "low"}
    assert cfg.resolve_provider() == "openai"


def test_config_round_trip_through_file(tmp_path):
    path = tmp_path / "llm.yaml"
    LLMConfig(model="qwen2.5-coder", base_url="http://localhost:11434").save(str(path))
    loaded = LLMConfig.from_source(str(path))
    assert loaded.model == "qwen2.5-coder"
    assert loaded.resolve_provider() == "ollama"


def test_config_rejects_unparseable_source():
    with pytest.raises(ConfigError):
        LLMConfig.from_source("just a sentence")


def test_unknown_provider_is_config_error():
    with pytest.raises(ConfigError):
        LLMClient(LLMConfig(model="x", provider="carrier-pigeon"))


class _Completed:
    def __init__(self, returncode, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _cli_client(monkeypatch, outcome):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    monkeypatch.setattr(subprocess, "run", fake_run)
    client = LLMClient(LLMConfig(model="claude-cli", extra={"cli_path": "claude"}))
    return client, calls


def test_cli_provider_sends_prompt_on_stdin(monkeypatch):
    client, calls = _cli_client(monkeypatch, _Completed(0, stdout='{"ok": true}\n'))
    assert client.complete("classify this") == '{"ok": true}'
    cmd, kwargs = calls[0]
    assert cmd == ["claude", "--print"]
    assert kwargs["input"] == "classify this"


def test_cli_rate_limit_exit_is_transient(monkeypatch):
    client, _ = _cli_client(monkeypatch, _Completed(1, stderr="Error: rate limit exceeded"))
    with pytest.raises(TransientModelError) as info:
        client.complete("x")
    assert info.value.status_code == 429


def test_cli_timeout_is_transient(monkeypatch):
    client, _ = _cli_client(monkeypatch, subprocess.TimeoutExpired(cmd="claude", timeout=1))
    with pytest.raises(TransientModelError):
        client.complete("x")


def test_missing_cli_is_permanent(monkeypatch):
    client, _ = _cli_client(monkeypatch, FileNotFoundError("claude"))
    with pytest.raises(PermanentModelError):
        client.complete("x")


def test_empty_answer_is_transient(monkeypatch):
    client, _ = _cli_client(monkeypatch, _Completed(0, stdout="   \n"))
    with pytest.raises(TransientModelError):
        client.complete("x")


@pytest.mark.asyncio
async def test_acomplete_runs_in_thread(monkeypatch):
    client, _ = _cli_client(monkeypatch, _Completed(0, stdout="answer"))
    assert await client.acomplete("x") == "answer"


# ---------------------------------------------------------------------------
# OpenAI-compatible endpoints
# ---------------------------------------------------------------------------
def test_ollama_endpoint_gets_v1_suffix(monkeypatch):
    from themetree.llm_client.providers.openai_compatible import ENDPOINTS

    monkeypatch.delenv("OLLAMA_HOST", raising=False)
    ollama = ENDPOINTS["ollama"]
    assert ollama.base_url(LLMConfig(model="llama3.1")) == "http://localhost:11434/v1"
    assert ollama.base_url(LLMConfig(model="llama3.1", base_url="http://gpu:11434/v1/")) == "http://gpu:11434/v1/"
    monkeypatch.setenv("OLLAMA_HOST", "http://box:11434")
    assert ollama.base_url(LLMConfig(model="llama3.1")) == "http://box:11434/v1"


def test_reasoning_models_use_completion_token_limit():
    client = LLMClient(LLMConfig(model="o4-mini", provider="openai", api_key="sk-test", max_tokens=321))
    assert client.client._request_params() == {"max_completion_tokens": 321}

    plain = LLMClient(LLMConfig(model="gpt-4o", provider="openai", api_key="sk-test", stop=["END"]))
    assert plain.client._request_params()["stop"] == ["END"]
    assert "max_completion_tokens" not in plain.client._request_params()


def test_vllm_client_points_at_local_server():
    client = LLMClient(LLMConfig(model="my-model", provider="vllm"))
    assert client.client.endpoint.name == "vllm"
    assert str(client.client.client.base_url).startswith("http://localhost:8000/v1")


class _SlowUsage(LLMUsage):
    """Widens the window between reading and writing the running total."""

    def __radd__(self, other):
        time.sleep(0.01)
        return LLMUsage.__add__(other, self)


class _CountingProvider:
    def chat(self, messages):
        return LLMResponse(content="ok", usage=_SlowUsage(input_tokens=3, output_tokens=2))


def test_usage_totals_survive_concurrent_calls(monkeypatch):
    client, _ = _cli_client(monkeypatch, _Completed(0, stdout="unused"))
    client.client = _CountingProvider()
    with ThreadPoolExecutor(max_workers=8) as pool:
        answers = list(pool.map(client.complete, ["x"] * 16))
    assert answers == ["ok"] * 16
    assert client.total_usage.input_tokens == 48
    assert client.total_usage.output_tokens == 32
