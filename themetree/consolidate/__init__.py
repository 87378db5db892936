from .engine import ConsolidationEngine, ConsolidationReport, merge_themes, splice_out
from .similarity import PrefilterResult, PrefilterVerdict, jaccard, name_tokens, prefilter

__all__ = [
    "ConsolidationEngine",
    "ConsolidationReport",
    "merge_themes",
    "splice_out",
    "PrefilterResult",
    "PrefilterVerdict",
    "jaccard",
    "name_tokens",
    "prefilter",
]
