from .builder import build_root_themes
from .cross_reference import detect_cross_references
from .node import (
    CodeRange,
    CrossReference,
    ExpansionStatus,
    ThemeNode,
    normalize_scope,
    scope_keys,
)
from .tree import find_node, forest_stats, iter_forest, validate_hierarchy

__all__ = [
    "CodeRange",
    "CrossReference",
    "ExpansionStatus",
    "ThemeNode",
    "normalize_scope",
    "scope_keys",
    "build_root_themes",
    "detect_cross_references",
    "find_node",
    "forest_stats",
    "iter_forest",
    "validate_hierarchy",
]
