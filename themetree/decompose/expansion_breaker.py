"""
Expansion circuit breaker: may this theme still be decomposed?

Refuses (forcing the theme atomic) when any of these holds, checked in order:
    1. depth >= max_depth
    2. the theme id was already expanded `same_theme_expansion_limit` times
    3. the theme is structurally atomic (one changed line, or a single file
       with few changed lines and at most one changed unit)
    4. the description or name reads like an atomic change (typo, rename, ...)
    5. the theme id was memoized as atomic earlier in the run
    6. depth exceeds ceil(complexity_score * complexity_depth_ratio)
"""

import logging
import math
import re
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from themetree.config.analysis_config import ExpansionConfig
from themetree.themes.node import ThemeNode

from .metrics import NodeMetrics

ATOMIC_KEYWORDS = (
    "single line",
    "one line",
    "typo",
    "rename",
    "fix spelling",
    "update version",
    "change value",
    "modify constant",
)

ATOMIC_NAME_PATTERNS = [
    re.compile(r"^(add|remove|update|fix|change) \w+ (constant|variable|value|parameter)$"),
    re.compile(r"^(fix|correct) (typo|spelling)"),
    re.compile(r"^rename \w+$"),
    re.compile(r"^update \w+ to \w+$"),
]


class ExpansionLedger:
    """Per-theme expansion attempts and atomic memo, shared by one analysis run."""

    def __init__(self):
        self._lock = threading.Lock()
        self._attempts: Dict[str, int] = {}
        self._atomic: Dict[str, str] = {}

    def record_attempt(self, theme_id: str) -> int:
        with self._lock:
            self._attempts[theme_id] = self._attempts.get(theme_id, 0) + 1
            return self._attempts[theme_id]

    def attempts(self, theme_id: str) -> int:
        with self._lock:
            return self._attempts.get(theme_id, 0)

    def mark_atomic(self, theme_id: str, reason: str):
        with self._lock:
            self._atomic.setdefault(theme_id, reason)

    def atomic_reason(self, theme_id: str) -> Optional[str]:
        with self._lock:
            return self._atomic.get(theme_id)

    def reset(self):
        with self._lock:
            self._attempts.clear()
            self._atomic.clear()

    def stats(self) -> Dict[str, float]:
        with self._lock:
            counts = list(self._attempts.values())
            return {
                "themes_tracked": len(counts),
                "average_expansions": sum(counts) / len(counts) if counts else 0.0,
                "max_expansions": max(counts, default=0),
                "atomic_themes": len(self._atomic),
            }


@dataclass(frozen=True)
class BreakerDecision:
    allowed: bool
    rule: str
    reason: str = ""


ALLOWED = BreakerDecision(allowed=True, rule="allowed")


class ExpansionCircuitBreaker:
    def __init__(
        self,
        config: Optional[ExpansionConfig] = None,
        ledger: Optional[ExpansionLedger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ExpansionConfig()
        self.ledger = ledger or ExpansionLedger()
        self.logger = logger or logging.getLogger(__name__)

    def max_depth_for(self, metrics: NodeMetrics) -> int:
        return math.ceil(metrics.complexity_score * self.config.complexity_depth_ratio)

    def is_high_complexity(self, metrics: NodeMetrics) -> bool:
        return metrics.complexity_score >= self.config.high_complexity_score

    def dynamic_threshold(self, depth: int, metrics: NodeMetrics) -> float:
        """Confidence an expand decision needs at this depth."""
        cfg = self.config
        threshold = max(cfg.confidence_floor, cfg.confidence_base - depth * cfg.confidence_decay)
        if self.is_high_complexity(metrics):
            threshold += cfg.high_complexity_bonus
        return min(1.0, threshold)

    def structural_atomic_reason(self, metrics: NodeMetrics) -> Optional[str]:
        cfg = self.config
        if metrics.changed_lines == 0:
            return "no changed lines"
        if metrics.changed_lines == 1:
            return "single changed line"
        if (
            metrics.is_single_file
            and metrics.changed_lines <= cfg.atomic_max_lines
            and metrics.changed_units <= cfg.atomic_max_units
        ):
            return (
                f"small single-file change: {metrics.changed_lines} changed lines "
                f"(limit {cfg.atomic_max_lines}) in {metrics.changed_units} unit"
            )
        return None

    def atomic_indicator_reason(self, node: ThemeNode) -> Optional[str]:
        if self.config.atomic_description_keywords:
            description = node.description.lower()
            for keyword in ATOMIC_KEYWORDS:
                if keyword in description:
                    return f"description indicates an atomic change ('{keyword}')"
        if self.config.atomic_name_patterns:
            name = node.name.strip().lower()
            if any(pattern.search(name) for pattern in ATOMIC_NAME_PATTERNS):
                return f"name indicates an atomic change ('{node.name}')"
        return None

    def allow(self, node: ThemeNode, depth: int, metrics: NodeMetrics) -> BreakerDecision:
        """Decide whether `node` may be expanded; records the attempt when it may."""
        cfg = self.config
        if depth >= cfg.max_depth:
            return BreakerDecision(False, "max_depth", f"depth {depth} reached the limit of {cfg.max_depth}")

        attempts = self.ledger.attempts(node.id)
        if attempts >= cfg.same_theme_expansion_limit:
            return BreakerDecision(
                False, "repetition", f"already expanded {attempts} times (limit {cfg.same_theme_expansion_limit})"
            )

        structural = self.structural_atomic_reason(metrics)
        if structural:
            self.ledger.mark_atomic(node.id, structural)
            return BreakerDecision(False, "structural_atomic", structural)

        indicated = self.atomic_indicator_reason(node)
        if indicated:
            self.ledger.mark_atomic(node.id, indicated)
            return BreakerDecision(False, "atomic_indicator", indicated)

        memo = self.ledger.atomic_reason(node.id)
        if memo:
            return BreakerDecision(False, "memoized_atomic", f"previously judged atomic: {memo}")

        allowed_depth = self.max_depth_for(metrics)
        if depth > allowed_depth:
            return BreakerDecision(
                False,
                "complexity_depth",
                f"depth {depth} exceeds {allowed_depth} allowed for complexity {metrics.complexity_score:.1f}",
            )

        self.ledger.record_attempt(node.id)
        return ALLOWED
