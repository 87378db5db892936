from .config.analysis_config import AnalysisConfig
from .themes.node import CodeRange, ExpansionStatus, ThemeNode
from .themetree import AnalysisResult, ThemeTree
from .utils.diff import DiffLine, FileDiff, Hunk, LineKind, parse_unified_diff

__version__ = "0.1.0"

__all__ = [
    "AnalysisConfig",
    "AnalysisResult",
    "CodeRange",
    "DiffLine",
    "ExpansionStatus",
    "FileDiff",
    "Hunk",
    "LineKind",
    "ThemeNode",
    "ThemeTree",
    "parse_unified_diff",
]
