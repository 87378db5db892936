import re
from functools import lru_cache
from typing import List

import tiktoken

from .envs import ANSWER_END_TAG, ANSWER_START_TAG, THINKING, TOKENIZER_MODEL


def parse_thinking_output(output: str) -> str:
    """Strip <think> blocks and keep the answer part for thinking models."""
    if not THINKING:
        return output.strip()
    output = re.sub(r"<think>.*?</think>", "", output, flags=re.DOTALL)
    if ANSWER_START_TAG in output:
        output = output.split(ANSWER_START_TAG, 1)[-1]
        output = output.split(ANSWER_END_TAG, 1)[0]
    return output.strip()


def parse_code_blocks(output: str, type: str = "general") -> List[str]:
    """
    Parse fenced code blocks of a given type from a string.

    Args:
        output (str): The text containing code blocks.
        type (str): "general" matches any fence, otherwise the fence language
                    (e.g. "json", "python").

    Returns:
        List[str]: The extracted block contents, in order of appearance.
    """
    if type == "general":
        pattern = r"```[\w+-]*[ \t]*\n?(.*?)```"
    else:
        pattern = rf"```{type}[ \t]*\n?(.*?)```"

    matches = re.findall(pattern, output, re.DOTALL)
    return [m.strip() for m in matches]


@lru_cache(maxsize=8)
def _encoding_for(model: str):
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


def truncate_by_token(
    text: str,
    max_tokens: int = 2000,
    model: str = TOKENIZER_MODEL,
) -> str:
    """
    Truncate text by token count:
    - If the token count does not exceed max_tokens, return the text as-is.
    - Otherwise keep the head and tail tokens and drop a middle segment.
    """
    # Every token spans at least one character
    if len(text) <= max_tokens:
        return text
    enc = _encoding_for(model)
    tokens = enc.encode(text, disallowed_special=())
    total = len(tokens)

    if total <= max_tokens:
        return text

    head_keep = max_tokens // 2 + max_tokens % 2
    tail_keep = max_tokens // 2
    removed = total - (head_keep + tail_keep)

    head_str = enc.decode(tokens[:head_keep])
    tail_str = enc.decode(tokens[-tail_keep:]) if tail_keep > 0 else ""
    marker = f"\n... [{removed} tokens omitted] ...\n"
    return head_str + marker + tail_str
