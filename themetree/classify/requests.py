"""Typed classification requests and results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from themetree.cache.keys import make_key, pair_key
from themetree.themes.node import CodeRange, ThemeNode


class RequestKind(str, Enum):
    EXPANSION = "expansion"
    SIMILARITY = "similarity"
    BATCH_SIMILARITY = "batch_similarity"
    CROSS_LEVEL = "cross_level"
    BUSINESS_PATTERNS = "business_patterns"


SIMILARITY_KINDS = (RequestKind.SIMILARITY, RequestKind.BATCH_SIMILARITY, RequestKind.CROSS_LEVEL)


class Origin(str, Enum):
    FRESH = "fresh"
    CACHED = "cached"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ClassificationRequest:
    kind: RequestKind
    params: Dict[str, Any] = field(default_factory=dict)
    priority: int = 0

    @property
    def cache_key(self) -> str:
        if self.kind == RequestKind.SIMILARITY:
            return pair_key(self.kind.value, self.params["first"], self.params["second"])
        return make_key(self.kind.value, self.params)


@dataclass
class ClassificationResult:
    success: bool
    payload: Optional[BaseModel] = None
    confidence: float = 0.0
    origin: Origin = Origin.FRESH
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Request builders
# ---------------------------------------------------------------------------
def theme_summary(node: ThemeNode) -> Dict[str, Any]:
    return {
        "name": node.name,
        "description": node.description,
        "business_context": node.business_context,
        "files": sorted(node.affected_files),
    }


def expansion_request(
    node: ThemeNode,
    depth: int,
    snippets: str,
    max_children: int,
) -> ClassificationRequest:
    return ClassificationRequest(
        kind=RequestKind.EXPANSION,
        params={
            "theme": theme_summary(node),
            "scope": [rng.to_dict() for rng in node.scope],
            "snippets": snippets,
            "depth": depth,
            "max_children": max_children,
        },
    )


def similarity_request(first: ThemeNode, second: ThemeNode) -> ClassificationRequest:
    return ClassificationRequest(
        kind=RequestKind.SIMILARITY,
        params={"first": theme_summary(first), "second": theme_summary(second)},
    )


def batch_similarity_request(pairs: Sequence[tuple]) -> ClassificationRequest:
    """`pairs` holds (pair_id, first, second) triples."""
    return ClassificationRequest(
        kind=RequestKind.BATCH_SIMILARITY,
        params={
            "pairs": [
                {"pair_id": pair_id, "first": theme_summary(a), "second": theme_summary(b)}
                for pair_id, a, b in pairs
            ]
        },
    )


def cross_level_request(ancestor: ThemeNode, descendant: ThemeNode) -> ClassificationRequest:
    return ClassificationRequest(
        kind=RequestKind.CROSS_LEVEL,
        params={
            "parent": theme_summary(ancestor),
            "child": theme_summary(descendant),
            "level_distance": descendant.level - ancestor.level,
        },
    )


def business_patterns_request(node: ThemeNode) -> ClassificationRequest:
    return ClassificationRequest(kind=RequestKind.BUSINESS_PATTERNS, params={"theme": theme_summary(node)})


def scope_from_params(params: Dict[str, Any]) -> List[CodeRange]:
    return [CodeRange.from_dict(r) for r in params.get("scope", [])]
