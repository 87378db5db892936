"""Local `claude` command-line tool as a provider (prompt on stdin)."""

from __future__ import annotations

import shutil
import subprocess
from typing import TYPE_CHECKING

from ..errors import PermanentModelError, TransientModelError, is_rate_limit_message
from .base_client import BaseLLMClient
from .llm_basics import LLMMessage, LLMResponse

if TYPE_CHECKING:
    from ..client import LLMConfig


class ClaudeCLIClient(BaseLLMClient):
    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.executable = config.extra.get("cli_path") or shutil.which("claude") or "claude"

    def _command(self) -> list[str]:
        cmd = [self.executable, "--print"]
        if self.model and self.model not in ("claude-cli", "claude_cli"):
            cmd += ["--model", self.model]
        return cmd

    def chat(self, messages: list[LLMMessage]) -> LLMResponse:
        prompt = "\n\n".join(m.content or "" for m in messages if m.content)
        try:
            proc = subprocess.run(
                self._command(),
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise TransientModelError(f"claude CLI timed out after {self.config.timeout}s") from e
        except FileNotFoundError as e:
            raise PermanentModelError(f"claude CLI not found: {self.executable}") from e

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            message = f"claude CLI exited with {proc.returncode}: {stderr[:500]}"
            if is_rate_limit_message(stderr):
                raise TransientModelError(message, status_code=429)
            raise TransientModelError(message)
        return LLMResponse(content=proc.stdout, model=self.model)
