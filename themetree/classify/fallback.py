"""
Heuristic classifier used when the model path is unavailable or failed.

Answers every request kind with the same payload schemas as the model path,
from static keyword tables and string similarity (rapidfuzz), then applies
a fixed confidence penalty so downstream thresholds treat it as weaker.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel
from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from themetree.config.analysis_config import FallbackConfig
from themetree.utils.diff import file_extension

from .classifier import Classifier
from .requests import ClassificationRequest, ClassificationResult, Origin, RequestKind
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
    payload_confidence,
)


BUSINESS_PATTERNS: Dict[str, Sequence[str]] = {
    "authentication": ("auth", "login", "logout", "session", "token", "password", "oauth", "credential"),
    "data_processing": ("data", "parse", "transform", "storage", "database", "query", "migration", "schema"),
    "api_service": ("api", "endpoint", "route", "handler", "request", "response", "service", "client"),
    "user_interface": ("ui", "component", "view", "page", "render", "style", "css", "button", "form"),
    "configuration": ("config", "setting", "env", "option", "yaml", "toml", "flag"),
    "error_handling": ("error", "exception", "retry", "fallback", "catch", "fail"),
    "performance": ("performance", "cache", "optimiz", "speed", "latency", "concurren", "parallel"),
    "testing": ("test", "spec", "mock", "fixture", "assert"),
    "documentation": ("doc", "readme", "comment", "changelog", "guide"),
    "deployment": ("deploy", "docker", "ci", "workflow", "release", "build", "pipeline"),
}

# Base confidences before the penalty
SPLIT_BY_FILE_CONFIDENCE = 0.9
SPLIT_BY_HUNK_CONFIDENCE = 0.8
ATOMIC_CONFIDENCE = 0.8
SIMILARITY_CONFIDENCE = 0.7
PATTERN_CONFIDENCE = 0.7


def detect_patterns(text: str) -> List[str]:
    lowered = text.lower()
    return [
        pattern
        for pattern, keywords in BUSINESS_PATTERNS.items()
        if any(keyword in lowered for keyword in keywords)
    ]


def name_similarity(first: str, second: str) -> float:
    """Blend of token-set ratio and normalized Levenshtein similarity, in [0, 1]."""
    a, b = first.lower().strip(), second.lower().strip()
    if not a or not b:
        return 0.0
    token = fuzz.token_set_ratio(a, b) / 100.0
    edit = Levenshtein.normalized_similarity(a, b)
    return 0.6 * token + 0.4 * edit


def file_overlap(first: Sequence[str], second: Sequence[str]) -> float:
    a, b = set(first), set(second)
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def summary_similarity(first: Dict[str, Any], second: Dict[str, Any]) -> float:
    names = name_similarity(first.get("name", ""), second.get("name", ""))
    descriptions = fuzz.token_set_ratio(
        first.get("description", "").lower(), second.get("description", "").lower()
    ) / 100.0
    files = file_overlap(first.get("files", []), second.get("files", []))
    return 0.5 * names + 0.2 * descriptions + 0.3 * files


class HeuristicClassifier(Classifier):
    name = "heuristic"

    def __init__(self, config: Optional[FallbackConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or FallbackConfig()
        self.logger = logger or logging.getLogger(__name__)

    def _discount(self, confidence: float) -> float:
        return max(0.0, confidence - self.config.confidence_penalty)

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        payload = self.decide(request)
        return ClassificationResult(
            success=True,
            payload=payload,
            confidence=payload_confidence(payload),
            origin=Origin.FALLBACK,
        )

    def decide(self, request: ClassificationRequest) -> BaseModel:
        params = request.params
        match request.kind:
            case RequestKind.EXPANSION:
                return self._expansion(params)
            case RequestKind.SIMILARITY:
                return self._similarity(params["first"], params["second"])
            case RequestKind.BATCH_SIMILARITY:
                return BatchSimilarityVerdict(
                    results=[
                        PairVerdict(pair_id=p["pair_id"], **self._similarity(p["first"], p["second"]).model_dump())
                        for p in params["pairs"]
                    ]
                )
            case RequestKind.CROSS_LEVEL:
                return self._cross_level(params["parent"], params["child"])
            case RequestKind.BUSINESS_PATTERNS:
                theme = params["theme"]
                text = " ".join([theme.get("name", ""), theme.get("description", ""), *theme.get("files", [])])
                return BusinessPatterns(
                    patterns=detect_patterns(text) or ["general"],
                    confidence=self._discount(PATTERN_CONFIDENCE),
                )
        raise ValueError(f"Unsupported request kind: {request.kind}")

    # ------------------------------------------------------------------
    # Expansion: split along file boundaries, then along hunk boundaries
    # ------------------------------------------------------------------
    def _expansion(self, params: Dict[str, Any]) -> ExpansionDecision:
        theme = params["theme"]
        scope = params.get("scope", [])
        by_file: Dict[str, List[Dict[str, Any]]] = OrderedDict()
        for rng in scope:
            by_file.setdefault(rng["file"], []).append(rng)

        patterns = detect_patterns(" ".join([theme.get("name", ""), theme.get("description", ""), *by_file]))
        business = ", ".join(patterns)
        max_children = params.get("max_children", 8)

        if 1 < len(by_file) <= max_children:
            children = [
                SuggestedChild(
                    name=f"Update {path}",
                    description=f"Changes to {path}",
                    business_context=", ".join(detect_patterns(path)),
                    files=[path],
                    scope=[ScopeSlice(file=path)],
                    rationale="separate file",
                )
                for path in by_file
            ]
            return ExpansionDecision(
                should_expand=True,
                confidence=self._discount(SPLIT_BY_FILE_CONFIDENCE),
                reasoning=f"split by file ({len(by_file)} files)",
                business_context=business,
                technical_context=", ".join(sorted({file_extension(p) for p in by_file})),
                children=children,
            )

        hunks = sorted({(r["file"], r["hunk"]) for r in scope})
        if len(by_file) == 1 and 1 < len(hunks) <= max_children:
            children = [
                SuggestedChild(
                    name=f"Update {path} (hunk {hunk})",
                    description=f"Hunk {hunk} of {path}",
                    files=[path],
                    scope=[ScopeSlice(file=path, hunk=hunk)],
                    rationale="separate hunk",
                )
                for path, hunk in hunks
            ]
            return ExpansionDecision(
                should_expand=True,
                confidence=self._discount(SPLIT_BY_HUNK_CONFIDENCE),
                reasoning=f"split by hunk ({len(hunks)} hunks)",
                business_context=business,
                children=children,
            )

        return ExpansionDecision(
            should_expand=False,
            is_atomic=True,
            confidence=self._discount(ATOMIC_CONFIDENCE),
            reasoning="no structural boundary to split along",
            business_context=business,
        )

    # ------------------------------------------------------------------
    # Similarity
    # ------------------------------------------------------------------
    def _similarity(self, first: Dict[str, Any], second: Dict[str, Any]) -> SimilarityVerdict:
        score = summary_similarity(first, second)
        return SimilarityVerdict(
            similarity_score=score,
            should_merge=score >= 0.8,
            confidence=self._discount(SIMILARITY_CONFIDENCE),
            reasoning="keyword and string similarity",
        )

    def _cross_level(self, parent: Dict[str, Any], child: Dict[str, Any]) -> CrossLevelVerdict:
        score = summary_similarity(parent, child)
        if score >= 0.9:
            relationship, action = Relationship.DUPLICATE, MergeAction.MERGE_UP
        elif score >= 0.7:
            relationship, action = Relationship.OVERLAP, MergeAction.MERGE_SIBLING
        elif score >= 0.4:
            relationship, action = Relationship.RELATED, MergeAction.KEEP_SEPARATE
        else:
            relationship, action = Relationship.DISTINCT, MergeAction.KEEP_SEPARATE
        return CrossLevelVerdict(
            similarity_score=score,
            relationship=relationship,
            action=action,
            confidence=self._discount(SIMILARITY_CONFIDENCE),
            reasoning="keyword and string similarity",
        )


def minimal_payload(request: ClassificationRequest, confidence: float) -> BaseModel:
    """Lowest-risk answer for a request when neither the model nor the fallback may be used."""
    match request.kind:
        case RequestKind.EXPANSION:
            return ExpansionDecision(
                should_expand=False,
                is_atomic=True,
                confidence=confidence,
                reasoning="classification unavailable",
            )
        case RequestKind.SIMILARITY:
            return SimilarityVerdict(similarity_score=0.0, should_merge=False, confidence=confidence)
        case RequestKind.BATCH_SIMILARITY:
            return BatchSimilarityVerdict(
                results=[
                    PairVerdict(pair_id=p["pair_id"], similarity_score=0.0, should_merge=False, confidence=confidence)
                    for p in request.params.get("pairs", [])
                ]
            )
        case RequestKind.CROSS_LEVEL:
            return CrossLevelVerdict(
                similarity_score=0.2,
                relationship=Relationship.DISTINCT,
                action=MergeAction.KEEP_SEPARATE,
                confidence=0.3,
                reasoning="classification unavailable",
            )
        case RequestKind.BUSINESS_PATTERNS:
            return BusinessPatterns(patterns=[], confidence=confidence)
    raise ValueError(f"Unsupported request kind: {request.kind}")
