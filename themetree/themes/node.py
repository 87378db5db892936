"""ThemeNode: one coherent unit of change in the theme hierarchy."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Set

from themetree.utils.diff import DiffIndex, LineKey


class ExpansionStatus(str, Enum):
    UNEVALUATED = "unevaluated"
    ATOMIC = "atomic"
    EXPANDED = "expanded"


@dataclass(frozen=True, order=True)
class CodeRange:
    """Inclusive 1-based positions `start..end` inside hunk `hunk` of `file`."""

    file: str
    hunk: int
    start: int
    end: int

    def overlaps(self, other: "CodeRange") -> bool:
        return (
            self.file == other.file
            and self.hunk == other.hunk
            and self.start <= other.end
            and other.start <= self.end
        )

    def to_dict(self) -> Dict:
        return {"file": self.file, "hunk": self.hunk, "start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Dict) -> "CodeRange":
        return cls(data["file"], int(data["hunk"]), int(data["start"]), int(data["end"]))


def normalize_scope(ranges: Iterable[CodeRange]) -> List[CodeRange]:
    """Sort ranges and merge overlapping or touching ones within the same hunk."""
    merged: List[CodeRange] = []
    for rng in sorted(ranges):
        if merged:
            last = merged[-1]
            if last.file == rng.file and last.hunk == rng.hunk and rng.start <= last.end + 1:
                merged[-1] = CodeRange(last.file, last.hunk, last.start, max(last.end, rng.end))
                continue
        merged.append(rng)
    return merged


def scope_keys(scope: Iterable[CodeRange], index: DiffIndex) -> Set[LineKey]:
    """Changed lines covered by a scope."""
    keys: Set[LineKey] = set()
    for rng in scope:
        keys |= index.line_keys(rng.file, rng.hunk, rng.start, rng.end)
    return keys


@dataclass
class CrossReference:
    """Non-owning link to another node; never carries scope."""

    target_id: str
    label: str

    def to_dict(self) -> Dict:
        return {"target_id": self.target_id, "label": self.label}


@dataclass(eq=False)
class ThemeNode:
    name: str
    description: str = ""
    business_context: str = ""
    technical_context: str = ""
    confidence: float = 0.5
    scope: List[CodeRange] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    parent_id: Optional[str] = None
    level: int = 0
    children: List["ThemeNode"] = field(default_factory=list)
    cross_references: List[CrossReference] = field(default_factory=list)
    status: ExpansionStatus = ExpansionStatus.UNEVALUATED
    status_reason: Optional[str] = None
    origin: Optional[str] = None

    def __post_init__(self):
        self.scope = normalize_scope(self.scope)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------
    @property
    def affected_files(self) -> List[str]:
        seen: List[str] = []
        for rng in self.scope:
            if rng.file not in seen:
                seen.append(rng.file)
        return seen

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_nodes(self) -> Iterator["ThemeNode"]:
        """Pre-order traversal including self."""
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def leaves(self) -> List["ThemeNode"]:
        return [n for n in self.iter_nodes() if n.is_leaf]

    def max_depth(self) -> int:
        return max(n.level for n in self.iter_nodes())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add_child(self, child: "ThemeNode"):
        child.parent_id = self.id
        child.relevel(self.level + 1)
        self.children.append(child)

    def relevel(self, level: int):
        self.level = level
        for child in self.children:
            child.relevel(level + 1)

    def mark_atomic(self, reason: str):
        self.status = ExpansionStatus.ATOMIC
        self.status_reason = reason

    def mark_expanded(self, reason: Optional[str] = None):
        self.status = ExpansionStatus.EXPANDED
        self.status_reason = reason

    def add_cross_reference(self, target_id: str, label: str):
        if target_id == self.id:
            return
        if any(ref.target_id == target_id and ref.label == label for ref in self.cross_references):
            return
        self.cross_references.append(CrossReference(target_id, label))

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "level": self.level,
            "name": self.name,
            "description": self.description,
            "business_context": self.business_context,
            "technical_context": self.technical_context,
            "confidence": self.confidence,
            "status": self.status.value,
            "status_reason": self.status_reason,
            "origin": self.origin,
            "affected_files": self.affected_files,
            "scope": [rng.to_dict() for rng in self.scope],
            "cross_references": [ref.to_dict() for ref in self.cross_references],
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ThemeNode":
        node = cls(
            id=data["id"],
            parent_id=data.get("parent_id"),
            level=data.get("level", 0),
            name=data.get("name", ""),
            description=data.get("description", ""),
            business_context=data.get("business_context", ""),
            technical_context=data.get("technical_context", ""),
            confidence=data.get("confidence", 0.5),
            status=ExpansionStatus(data.get("status", ExpansionStatus.UNEVALUATED.value)),
            status_reason=data.get("status_reason"),
            origin=data.get("origin"),
            scope=[CodeRange.from_dict(r) for r in data.get("scope", [])],
            cross_references=[
                CrossReference(r["target_id"], r["label"]) for r in data.get("cross_references", [])
            ],
        )
        node.children = [cls.from_dict(c) for c in data.get("children", [])]
        return node

    def __repr__(self) -> str:
        return (
            f"ThemeNode(id={self.id!r}, name={self.name!r}, level={self.level}, "
            f"status={self.status.value}, children={len(self.children)})"
        )
