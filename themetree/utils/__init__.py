from .api import parse_code_blocks, parse_thinking_output, truncate_by_token
from .diff import DiffIndex, DiffLine, FileDiff, Hunk, LineKind, parse_unified_diff
from .logs import setup_logger

__all__ = [
    "parse_code_blocks",
    "parse_thinking_output",
    "truncate_by_token",
    "DiffIndex",
    "DiffLine",
    "FileDiff",
    "Hunk",
    "LineKind",
    "parse_unified_diff",
    "setup_logger",
]
