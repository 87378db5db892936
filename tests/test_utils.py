import logging

from themetree.utils import api
from themetree.utils.api import parse_code_blocks, parse_thinking_output, truncate_by_token
from themetree.utils.logs import setup_logger


def test_parse_code_blocks_by_language():
    text = "intro\n```json\n{\"a\": 1}\n```\nmore\n```python\nprint(1)\n```"
    assert parse_code_blocks(text, "json") == ['{"a": 1}']
    assert parse_code_blocks(text) == ['{"a": 1}', "print(1)"]
    assert parse_code_blocks("no fences", "json") == []


def test_thinking_tags_kept_when_disabled(monkeypatch):
    monkeypatch.setattr(api, "THINKING", False)
    assert parse_thinking_output("  <think>x</think> answer ") == "<think>x</think> answer"


def test_thinking_tags_stripped_when_enabled(monkeypatch):
    monkeypatch.setattr(api, "THINKING", True)
    output = "<think>\nlong reasoning\n</think>\n<answer>{\"ok\": true}</answer> trailing"
    assert parse_thinking_output(output) == '{"ok": true}'


def test_short_text_is_not_truncated():
    text = "x = 1\n" * 10
    assert truncate_by_token(text, max_tokens=500) == text


def test_setup_logger_does_not_duplicate_handlers(tmp_path):
    logger = logging.getLogger("themetree.test_setup_logger")
    log_file = tmp_path / "logs" / "run.log"
    setup_logger(logger, file_path=log_file, level=logging.DEBUG)
    setup_logger(logger, file_path=log_file, level=logging.DEBUG)

    assert len(logger.handlers) == 2
    assert logger.level == logging.DEBUG
    assert not logger.propagate
    logger.info("written")
    for handler in logger.handlers:
        handler.flush()
    assert "written" in log_file.read_text(encoding="utf-8")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_repeat_setup_relevels_existing_handlers():
    logger = logging.getLogger("themetree.test_relevel")
    setup_logger(logger, level="debug")
    setup_logger(logger, level="ERROR")

    assert len(logger.handlers) == 1
    assert logger.level == logging.ERROR
    assert logger.handlers[0].level == logging.ERROR
    logger.removeHandler(logger.handlers[0])


def test_unknown_level_name_defaults_to_info():
    from themetree.utils.logs import resolve_level

    assert resolve_level("chatty") == logging.INFO
    assert resolve_level(logging.WARNING) == logging.WARNING
