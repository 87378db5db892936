"""
Consolidation engine.

Two passes over the forest, both routed through the classification client
for every pair the pre-filter cannot decide:

1. Sibling pass, per level from the roots down: pairs of siblings are
   pre-filtered, uncertain pairs are scored in batches, and themes judged
   the same concern are merged (transitively).
2. Cross-level pass: each theme is compared with its children and
   grandchildren. A duplicate collapses the deeper theme toward the root;
   an overlap between adjacent levels hands the child's children to its
   parent so they sit next to their former siblings.

Both passes repeat until a round merges nothing, since promoted themes meet
siblings they were never compared with. Consolidating the result again is a
no-op.

Every merge keeps the forest invariants: levels follow parents, and the
leaves under any theme still cover its changed lines exactly once.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from themetree.classify.client import ClassificationClient
from themetree.classify.requests import batch_similarity_request, cross_level_request
from themetree.classify.schemas import BatchSimilarityVerdict, CrossLevelVerdict, MergeAction, Relationship
from themetree.config.analysis_config import ConsolidationConfig
from themetree.themes.node import ExpansionStatus, ThemeNode, normalize_scope

from .similarity import PrefilterVerdict, prefilter


@dataclass
class ConsolidationReport:
    sibling_merges: int = 0
    prefilter_merges: int = 0
    prefilter_skips: int = 0
    escalated_pairs: int = 0
    model_batches: int = 0
    cross_level_comparisons: int = 0
    duplicates_collapsed: int = 0
    overlaps_resolved: int = 0
    collapses_skipped: int = 0
    rounds: int = 0

    @property
    def total_merges(self) -> int:
        return self.sibling_merges + self.duplicates_collapsed + self.overlaps_resolved

    def to_dict(self) -> Dict[str, int]:
        return {
            "sibling_merges": self.sibling_merges,
            "prefilter_merges": self.prefilter_merges,
            "prefilter_skips": self.prefilter_skips,
            "escalated_pairs": self.escalated_pairs,
            "model_batches": self.model_batches,
            "cross_level_comparisons": self.cross_level_comparisons,
            "duplicates_collapsed": self.duplicates_collapsed,
            "overlaps_resolved": self.overlaps_resolved,
            "collapses_skipped": self.collapses_skipped,
            "rounds": self.rounds,
            "total_merges": self.total_merges,
        }


# ---------------------------------------------------------------------------
# Merge primitives
# ---------------------------------------------------------------------------
def _join_text(first: str, second: str) -> str:
    first, second = first.strip(), second.strip()
    if not second or second in first:
        return first
    if not first:
        return second
    return f"{first}; {second}"


def merge_themes(survivor: ThemeNode, other: ThemeNode) -> ThemeNode:
    """
    Fold sibling `other` into `survivor` and return the survivor.

    Scope and files are unioned. When the survivor has children and `other`
    is a leaf, `other` is adopted as a child so its lines keep a leaf owner.
    """
    if survivor.is_leaf and not other.is_leaf:
        raise ValueError("merge a theme with children into a survivor that has children")
    survivor.scope = normalize_scope(survivor.scope + other.scope)
    survivor.description = _join_text(survivor.description, other.description)
    survivor.business_context = _join_text(survivor.business_context, other.business_context)
    survivor.technical_context = _join_text(survivor.technical_context, other.technical_context)
    survivor.confidence = max(survivor.confidence, other.confidence)

    if not survivor.is_leaf and other.is_leaf:
        survivor.add_child(other)
        survivor.mark_expanded(survivor.status_reason)
        return survivor

    for ref in other.cross_references:
        survivor.add_cross_reference(ref.target_id, ref.label)
    if survivor.is_leaf:
        # both leaves: survivor simply owns more lines
        return survivor
    for child in other.children:
        survivor.add_child(child)
    other.children = []
    survivor.mark_expanded(survivor.status_reason)
    return survivor


def splice_out(node: ThemeNode, parent: ThemeNode):
    """Replace `node` in `parent.children` by its own children (moved up one level)."""
    position = parent.children.index(node)
    promoted = node.children
    node.children = []
    for child in promoted:
        child.parent_id = parent.id
        child.relevel(parent.level + 1)
    parent.children[position:position + 1] = promoted


class _UnionFind:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int):
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            self.parent[max(ra, rb)] = min(ra, rb)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class ConsolidationEngine:
    def __init__(
        self,
        client: ClassificationClient,
        config: Optional[ConsolidationConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.config = config or ConsolidationConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.report = ConsolidationReport()

    async def consolidate(self, roots: List[ThemeNode]) -> List[ThemeNode]:
        """Run both passes until nothing merges; returns the (possibly shorter) list of roots."""
        self.report = ConsolidationReport()
        while True:
            self.report.rounds += 1
            merged_before = self.report.total_merges
            if not self.config.skip_sibling_dedup:
                roots = await self.merge_level(roots)
                await self._merge_descendants(roots)
            if not self.config.skip_cross_level_dedup:
                await self.cross_level(roots)
            if self.report.total_merges == merged_before:
                break
            if self.report.rounds >= self.config.max_rounds:
                self.logger.warning(
                    f"[ConsolidationEngine] Still merging after {self.report.rounds} rounds, stopping"
                )
                break
        self.logger.info(f"[ConsolidationEngine] {self.report.to_dict()}")
        return roots

    async def _merge_descendants(self, nodes: List[ThemeNode]):
        for node in nodes:
            if len(node.children) > 1:
                node.children = await self.merge_level(node.children)
        children = [c for n in nodes for c in n.children]
        if children:
            await self._merge_descendants(children)

    # ------------------------------------------------------------------
    # Sibling pass
    # ------------------------------------------------------------------
    async def merge_level(self, siblings: List[ThemeNode]) -> List[ThemeNode]:
        """Merge same-concern themes among one list of siblings."""
        if len(siblings) < 2:
            return siblings

        groups = _UnionFind(len(siblings))
        uncertain: List[Tuple[int, int]] = []
        for i in range(len(siblings)):
            for j in range(i + 1, len(siblings)):
                result = prefilter(siblings[i], siblings[j], self.config.name_merge_threshold)
                if result.verdict == PrefilterVerdict.MERGE:
                    self.report.prefilter_merges += 1
                    groups.union(i, j)
                elif result.verdict == PrefilterVerdict.KEEP:
                    self.report.prefilter_skips += 1
                else:
                    uncertain.append((i, j))

        for i, j in await self._escalate(siblings, uncertain):
            groups.union(i, j)

        members: Dict[int, List[int]] = {}
        for i in range(len(siblings)):
            members.setdefault(groups.find(i), []).append(i)

        merged: List[ThemeNode] = []
        for root_index in sorted(members):
            group = [siblings[i] for i in members[root_index]]
            # keep a theme with children as survivor so leaves stay leaves
            survivor = next((n for n in group if not n.is_leaf), group[0])
            for other in group:
                if other is survivor:
                    continue
                self.logger.info(f"[ConsolidationEngine] Merging '{other.name}' into '{survivor.name}'")
                merge_themes(survivor, other)
                self.report.sibling_merges += 1
            merged.append(survivor)
        return merged

    async def _escalate(self, siblings: List[ThemeNode], pairs: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        size = self.config.batch_size
        batches = [pairs[k:k + size] for k in range(0, len(pairs), size)]
        verdicts = await asyncio.gather(*(self._score_batch(siblings, batch) for batch in batches))
        return [pair for batch in verdicts for pair in batch]

    async def _score_batch(self, siblings: List[ThemeNode], batch: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        by_id = {f"{i}-{j}": (i, j) for i, j in batch}
        request = batch_similarity_request(
            [(pair_id, siblings[i], siblings[j]) for pair_id, (i, j) in by_id.items()]
        )
        self.report.escalated_pairs += len(batch)
        self.report.model_batches += 1
        result = await self.client.classify(request)
        verdict: BatchSimilarityVerdict = result.payload
        to_merge = []
        for item in verdict.results:
            pair = by_id.get(item.pair_id)
            if pair and item.should_merge and item.similarity_score >= self.config.merge_score_threshold:
                to_merge.append(pair)
        return to_merge

    # ------------------------------------------------------------------
    # Cross-level pass
    # ------------------------------------------------------------------
    async def cross_level(self, roots: List[ThemeNode]):
        for root in roots:
            await self._cross_level_node(root)

    async def _cross_level_node(self, node: ThemeNode):
        pairs = self._descendant_pairs(node)
        if pairs:
            verdicts = await asyncio.gather(*(self._compare(node, d) for d, _, _ in pairs))
            for (descendant, parent, distance), verdict in zip(pairs, verdicts):
                self._apply(node, descendant, parent, distance, verdict)
        for child in list(node.children):
            await self._cross_level_node(child)

    @staticmethod
    def _descendant_pairs(node: ThemeNode) -> List[Tuple[ThemeNode, ThemeNode, int]]:
        """(descendant, its parent, level distance) for children and grandchildren."""
        pairs = []
        for child in node.children:
            pairs.append((child, node, 1))
            for grandchild in child.children:
                pairs.append((grandchild, child, 2))
        return pairs

    async def _compare(self, ancestor: ThemeNode, descendant: ThemeNode) -> CrossLevelVerdict:
        self.report.cross_level_comparisons += 1
        quick = prefilter(ancestor, descendant, self.config.name_merge_threshold)
        if quick.verdict == PrefilterVerdict.MERGE:
            return CrossLevelVerdict(
                similarity_score=quick.name_similarity,
                relationship=Relationship.DUPLICATE,
                action=MergeAction.MERGE_UP,
                confidence=1.0,
                reasoning=quick.reason,
            )
        result = await self.client.classify(cross_level_request(ancestor, descendant))
        return result.payload

    def _apply(
        self,
        ancestor: ThemeNode,
        descendant: ThemeNode,
        parent: ThemeNode,
        distance: int,
        verdict: CrossLevelVerdict,
    ):
        if descendant not in parent.children:
            return  # already moved by an earlier decision in this pass
        if verdict.similarity_score < self.config.merge_score_threshold:
            return

        if verdict.relationship == Relationship.DUPLICATE:
            if not descendant.is_leaf:
                splice_out(descendant, parent)
            elif len(parent.children) == 1:
                parent.children = []
                parent.mark_atomic(f"collapsed duplicate child '{descendant.name}'")
            else:
                self.report.collapses_skipped += 1
                return
            ancestor.business_context = _join_text(ancestor.business_context, descendant.business_context)
            self.report.duplicates_collapsed += 1
            self.logger.info(
                f"[ConsolidationEngine] Collapsed duplicate '{descendant.name}' (level {descendant.level}) "
                f"into '{ancestor.name}' (level {ancestor.level})"
            )
        elif verdict.relationship == Relationship.OVERLAP and distance == 1 and not descendant.is_leaf:
            splice_out(descendant, parent)
            ancestor.description = _join_text(ancestor.description, descendant.description)
            self.report.overlaps_resolved += 1
            self.logger.info(
                f"[ConsolidationEngine] Resolved overlap: children of '{descendant.name}' "
                f"now sit directly under '{ancestor.name}'"
            )
        if parent.children:
            parent.status = ExpansionStatus.EXPANDED
