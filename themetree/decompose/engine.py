"""
Decomposition engine.

Recursively asks the classification client whether each theme should be
split, gated by the expansion circuit breaker. Per theme:

    Unevaluated -> Atomic(reason)                        [terminal]
    Unevaluated -> Expanded -> children (each Unevaluated)

Children must partition the parent's changed lines exactly. Any problem
with a proposed split, or any unexpected error while expanding one theme,
degrades that theme to Atomic with the reason recorded; siblings are
unaffected.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from themetree.classify.client import ClassificationClient
from themetree.classify.requests import expansion_request
from themetree.classify.schemas import ExpansionDecision, ScopeSlice, SuggestedChild
from themetree.config.analysis_config import ExpansionConfig
from themetree.themes.node import CodeRange, ThemeNode, scope_keys
from themetree.utils.api import truncate_by_token
from themetree.utils.diff import DiffIndex, LineKey

from .expansion_breaker import ExpansionCircuitBreaker, ExpansionLedger
from .metrics import compute_metrics


class StopReason(str, Enum):
    BREAKER = "breaker"
    MODEL_ATOMIC = "model_atomic"
    LOW_CONFIDENCE = "low_confidence"
    INVALID_SPLIT = "invalid_split"
    ERROR = "error"


@dataclass
class ExpansionReport:
    themes_evaluated: int = 0
    themes_expanded: int = 0
    atomic_count: int = 0
    max_depth_reached: int = 0
    model_calls: int = 0
    origins: Counter = field(default_factory=Counter)
    stop_reasons: Counter = field(default_factory=Counter)
    stops: List[Dict] = field(default_factory=list)

    @property
    def expansion_rate(self) -> float:
        return self.themes_expanded / self.themes_evaluated if self.themes_evaluated else 0.0

    def to_dict(self) -> Dict:
        return {
            "themes_evaluated": self.themes_evaluated,
            "themes_expanded": self.themes_expanded,
            "expansion_rate": self.expansion_rate,
            "atomic_count": self.atomic_count,
            "max_depth_reached": self.max_depth_reached,
            "model_calls": self.model_calls,
            "origins": dict(self.origins),
            "stop_reasons": {k.value if isinstance(k, Enum) else k: v for k, v in self.stop_reasons.items()},
            "stops": list(self.stops),
        }


class InvalidSplit(Exception):
    pass


class DecompositionEngine:
    def __init__(
        self,
        client: ClassificationClient,
        index: DiffIndex,
        config: Optional[ExpansionConfig] = None,
        breaker: Optional[ExpansionCircuitBreaker] = None,
        ledger: Optional[ExpansionLedger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.client = client
        self.index = index
        self.config = config or ExpansionConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.breaker = breaker or ExpansionCircuitBreaker(self.config, ledger, logger=self.logger)
        self.ledger = self.breaker.ledger
        self.report = ExpansionReport()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    async def decompose(self, roots: List[ThemeNode]) -> ExpansionReport:
        self.report = ExpansionReport()
        await asyncio.gather(*(self.expand(root, root.level) for root in roots))
        self._log_summary()
        return self.report

    async def expand(self, node: ThemeNode, depth: int):
        """Expand one theme and, recursively, all of its children."""
        try:
            children = await self._evaluate(node, depth)
        except Exception as e:
            self.logger.exception(f"[DecompositionEngine] Error expanding '{node.name}': {e}")
            node.children = []
            self._stop(node, depth, StopReason.ERROR, f"error during expansion: {type(e).__name__}: {e}")
            return
        if children:
            await asyncio.gather(*(self.expand(child, depth + 1) for child in children))

    # ------------------------------------------------------------------
    # One theme
    # ------------------------------------------------------------------
    async def _evaluate(self, node: ThemeNode, depth: int) -> List[ThemeNode]:
        self.report.themes_evaluated += 1
        self.report.max_depth_reached = max(self.report.max_depth_reached, depth)

        metrics = compute_metrics(node, self.index)
        gate = self.breaker.allow(node, depth, metrics)
        if not gate.allowed:
            self._stop(node, depth, StopReason.BREAKER, gate.reason, rule=gate.rule)
            return []

        request = expansion_request(node, depth, self._snippets(node), self.config.max_children)
        result = await self.client.classify(request)
        self.report.model_calls += 1
        self.report.origins[result.origin.value] += 1

        decision: ExpansionDecision = result.payload
        node.origin = result.origin.value
        node.confidence = result.confidence
        if decision.business_context and not node.business_context:
            node.business_context = decision.business_context
        if decision.technical_context:
            node.technical_context = decision.technical_context

        if decision.is_atomic or not decision.should_expand or not decision.children:
            reason = f"judged atomic: {decision.reasoning or 'no split proposed'}"
            self.ledger.mark_atomic(node.id, reason)
            self._stop(node, depth, StopReason.MODEL_ATOMIC, reason)
            return []

        threshold = self.breaker.dynamic_threshold(depth, metrics)
        if result.confidence < threshold:
            self._stop(
                node, depth, StopReason.LOW_CONFIDENCE,
                f"expand confidence {result.confidence:.2f} below threshold {threshold:.2f}",
            )
            return []

        try:
            children = self._build_children(node, decision.children)
        except InvalidSplit as e:
            self._stop(node, depth, StopReason.INVALID_SPLIT, f"invalid decomposition: {e}")
            return []

        node.mark_expanded(decision.reasoning or None)
        for child in children:
            node.add_child(child)
        self.report.themes_expanded += 1
        self.logger.debug(
            f"[DecompositionEngine] Expanded '{node.name}' at depth {depth} into {len(children)} children"
        )
        return children

    def _stop(self, node: ThemeNode, depth: int, reason: StopReason, detail: str, rule: Optional[str] = None):
        node.mark_atomic(detail)
        self.report.atomic_count += 1
        self.report.stop_reasons[reason] += 1
        self.report.stops.append(
            {"id": node.id, "name": node.name, "depth": depth, "reason": reason.value, "rule": rule, "detail": detail}
        )
        self.logger.info(f"[DecompositionEngine] '{node.name}' (depth {depth}) stops: {reason.value}: {detail}")

    # ------------------------------------------------------------------
    # Prompt material
    # ------------------------------------------------------------------
    def _snippets(self, node: ThemeNode) -> str:
        parts = []
        for rng in node.scope[: self.config.max_snippets]:
            text = self.index.snippet(rng.file, rng.hunk, rng.start, rng.end, numbered=True)
            parts.append(truncate_by_token(text, self.config.snippet_max_tokens))
        omitted = len(node.scope) - len(parts)
        if omitted > 0:
            parts.append(f"... {omitted} more ranges omitted")
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Split validation
    # ------------------------------------------------------------------
    def _resolve_slice(self, node: ThemeNode, piece: ScopeSlice) -> List[CodeRange]:
        matching = [
            rng for rng in node.scope
            if rng.file == piece.file and (piece.hunk is None or rng.hunk == piece.hunk)
        ]
        if not matching:
            where = piece.file if piece.hunk is None else f"{piece.file} hunk {piece.hunk}"
            raise InvalidSplit(f"{where} is outside the parent scope")
        if piece.start is None and piece.end is None:
            return matching

        resolved = []
        for rng in matching:
            start = max(rng.start, piece.start if piece.start is not None else rng.start)
            end = min(rng.end, piece.end if piece.end is not None else rng.end)
            if start <= end:
                resolved.append(CodeRange(rng.file, rng.hunk, start, end))
        if not resolved:
            raise InvalidSplit(f"{piece.file} lines {piece.start}-{piece.end} are outside the parent scope")
        return resolved

    def _build_children(self, node: ThemeNode, suggested: List[SuggestedChild]) -> List[ThemeNode]:
        if len(suggested) > self.config.max_children:
            raise InvalidSplit(f"{len(suggested)} children exceed the limit of {self.config.max_children}")

        parent_keys = scope_keys(node.scope, self.index)
        claimed: Set[LineKey] = set()
        children: List[ThemeNode] = []
        for suggestion in suggested:
            pieces = suggestion.scope or [ScopeSlice(file=f) for f in suggestion.files]
            if not pieces:
                raise InvalidSplit(f"child '{suggestion.name}' has no scope")
            ranges: List[CodeRange] = []
            for piece in pieces:
                ranges.extend(self._resolve_slice(node, piece))
            keys = scope_keys(ranges, self.index)
            if not keys:
                raise InvalidSplit(f"child '{suggestion.name}' owns no changed lines")
            overlap = claimed & keys
            if overlap:
                raise InvalidSplit(f"child '{suggestion.name}' overlaps its siblings on {len(overlap)} lines")
            claimed |= keys
            children.append(
                ThemeNode(
                    name=suggestion.name,
                    description=suggestion.description,
                    business_context=suggestion.business_context,
                    technical_context=suggestion.rationale,
                    confidence=node.confidence,
                    scope=ranges,
                )
            )

        uncovered = parent_keys - claimed
        if uncovered:
            raise InvalidSplit(f"children leave {len(uncovered)} changed lines uncovered")
        if len(children) == 1:
            raise InvalidSplit("a single child covering the whole theme is not a split")
        return children

    # ------------------------------------------------------------------
    def _log_summary(self):
        report = self.report
        reasons = ", ".join(f"{k.value}={v}" for k, v in sorted(report.stop_reasons.items(), key=lambda kv: kv[0].value))
        self.logger.info(
            f"[DecompositionEngine] Evaluated {report.themes_evaluated} themes, expanded {report.themes_expanded} "
            f"({report.expansion_rate * 100:.0f}%), max depth {report.max_depth_reached}, "
            f"{report.model_calls} classification calls; stops: {reasons or 'none'}"
        )
        ledger = self.ledger.stats()
        self.logger.debug(f"[DecompositionEngine] Ledger: {ledger}")
