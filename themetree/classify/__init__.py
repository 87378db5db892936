from .classifier import Classifier, ModelClassifier
from .client import ClassificationClient
from .fallback import HeuristicClassifier, detect_patterns, minimal_payload, name_similarity
from .requests import (
    ClassificationRequest,
    ClassificationResult,
    Origin,
    RequestKind,
    batch_similarity_request,
    business_patterns_request,
    cross_level_request,
    expansion_request,
    similarity_request,
    theme_summary,
)
from .schemas import (
    BatchSimilarityVerdict,
    BusinessPatterns,
    CrossLevelVerdict,
    ExpansionDecision,
    MergeAction,
    PairVerdict,
    Relationship,
    ScopeSlice,
    SimilarityVerdict,
    SuggestedChild,
)

__all__ = [
    "Classifier",
    "ModelClassifier",
    "HeuristicClassifier",
    "ClassificationClient",
    "ClassificationRequest",
    "ClassificationResult",
    "Origin",
    "RequestKind",
    "batch_similarity_request",
    "business_patterns_request",
    "cross_level_request",
    "expansion_request",
    "similarity_request",
    "theme_summary",
    "detect_patterns",
    "minimal_payload",
    "name_similarity",
    "BatchSimilarityVerdict",
    "BusinessPatterns",
    "CrossLevelVerdict",
    "ExpansionDecision",
    "MergeAction",
    "PairVerdict",
    "Relationship",
    "ScopeSlice",
    "SimilarityVerdict",
    "SuggestedChild",
]
