"""
Payload schemas, one per request kind.

Model output is extracted as JSON and validated into these models; callers
match on the type instead of probing dictionaries.
"""

from enum import Enum
from typing import Annotated, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, BeforeValidator, Field

from themetree.extract.json_extractor import ExpectedShape, Shape

from .requests import RequestKind


def _clamp_unit(value):
    if value is None:
        return 0.0
    value = float(value)
    # Some models answer on a 0-100 scale
    if 1.5 < value <= 100.0:
        value = value / 100.0
    return min(1.0, max(0.0, value))


Score = Annotated[float, BeforeValidator(_clamp_unit)]


class ScopeSlice(BaseModel):
    file: str = Field(description="Path of a file inside the parent theme's scope")
    hunk: Optional[int] = Field(default=None, description="Hunk index; omit to take every parent range of the file")
    start: Optional[int] = Field(default=None, description="First 1-based line position inside the hunk")
    end: Optional[int] = Field(default=None, description="Last 1-based line position inside the hunk (inclusive)")


class SuggestedChild(BaseModel):
    name: str = Field(description="Short name of the sub-theme")
    description: str = Field(default="", description="What this sub-theme changes")
    business_context: str = Field(default="", description="Why the change matters to the product")
    files: List[str] = Field(default_factory=list, description="Files this sub-theme touches")
    scope: List[ScopeSlice] = Field(default_factory=list, description="Exact slice of the parent scope owned by this sub-theme")
    rationale: str = Field(default="", description="Why this is a separate sub-theme")


class ExpansionDecision(BaseModel):
    should_expand: bool = Field(description="Whether the theme should be split into sub-themes")
    is_atomic: bool = Field(default=False, description="Whether the theme is indivisible")
    confidence: Score = Field(description="Confidence in the decision, 0..1")
    reasoning: str = Field(default="", description="Reasoning behind the decision")
    business_context: str = Field(default="", description="Business context of the theme")
    technical_context: str = Field(default="", description="Technical context of the theme")
    children: List[SuggestedChild] = Field(default_factory=list, description="Sub-themes when expanding")


class SimilarityVerdict(BaseModel):
    similarity_score: Score = Field(description="How similar the two themes are, 0..1")
    should_merge: bool = Field(description="Whether the two themes describe the same concern")
    confidence: Score = Field(default=0.5, description="Confidence in the verdict, 0..1")
    reasoning: str = Field(default="", description="Reasoning behind the verdict")


class PairVerdict(SimilarityVerdict):
    pair_id: str = Field(description="Identifier of the compared pair, echoed from the request")


class BatchSimilarityVerdict(BaseModel):
    results: List[PairVerdict] = Field(description="One verdict per requested pair")

    @property
    def confidence(self) -> float:
        if not self.results:
            return 0.0
        return sum(r.confidence for r in self.results) / len(self.results)


class Relationship(str, Enum):
    DUPLICATE = "duplicate"
    OVERLAP = "overlap"
    RELATED = "related"
    DISTINCT = "distinct"


class MergeAction(str, Enum):
    MERGE_UP = "merge_up"
    MERGE_DOWN = "merge_down"
    MERGE_SIBLING = "merge_sibling"
    KEEP_SEPARATE = "keep_separate"


class CrossLevelVerdict(BaseModel):
    similarity_score: Score = Field(description="How similar ancestor and descendant are, 0..1")
    relationship: Relationship = Field(description="duplicate | overlap | related | distinct")
    action: MergeAction = Field(description="merge_up | merge_down | merge_sibling | keep_separate")
    confidence: Score = Field(default=0.5, description="Confidence in the verdict, 0..1")
    reasoning: str = Field(default="", description="Reasoning behind the verdict")


class BusinessPatterns(BaseModel):
    patterns: List[str] = Field(default_factory=list, description="Business patterns the change belongs to")
    confidence: Score = Field(default=0.5, description="Confidence in the patterns, 0..1")


KIND_SCHEMAS: Dict[RequestKind, Tuple[Type[BaseModel], ExpectedShape]] = {
    RequestKind.EXPANSION: (ExpansionDecision, ExpectedShape(Shape.OBJECT, ("should_expand", "confidence"))),
    RequestKind.SIMILARITY: (SimilarityVerdict, ExpectedShape(Shape.OBJECT, ("similarity_score", "should_merge"))),
    RequestKind.BATCH_SIMILARITY: (BatchSimilarityVerdict, ExpectedShape(Shape.OBJECT, ("results",))),
    RequestKind.CROSS_LEVEL: (CrossLevelVerdict, ExpectedShape(Shape.OBJECT, ("relationship", "action"))),
    RequestKind.BUSINESS_PATTERNS: (BusinessPatterns, ExpectedShape(Shape.OBJECT, ("patterns",))),
}


def schema_for(kind: RequestKind) -> Tuple[Type[BaseModel], ExpectedShape]:
    return KIND_SCHEMAS[kind]


def payload_confidence(payload: BaseModel) -> float:
    return float(getattr(payload, "confidence", 0.0))
