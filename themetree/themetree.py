import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .cache.response_cache import ResponseCache
from .classify.classifier import ModelClassifier
from .classify.client import ClassificationClient
from .classify.fallback import HeuristicClassifier
from .classify.requests import business_patterns_request
from .classify.schemas import BusinessPatterns
from .config.analysis_config import AnalysisConfig
from .consolidate.engine import ConsolidationEngine, ConsolidationReport
from .decompose.engine import DecompositionEngine, ExpansionReport
from .decompose.expansion_breaker import ExpansionLedger
from .gateway.call_gateway import CallGateway, ModelCaller
from .gateway.clock import Clock
from .llm_client.client import LLMClient
from .themes.builder import build_root_themes
from .themes.cross_reference import detect_cross_references
from .themes.node import ThemeNode
from .themes.tree import forest_stats, validate_hierarchy
from .utils.diff import DiffIndex, FileDiff


@dataclass
class AnalysisResult:
    """Everything one run hands to report formatting; read-only by convention."""

    roots: List[ThemeNode]
    expansion: ExpansionReport
    consolidation: ConsolidationReport
    gateway: Dict[str, Any] = field(default_factory=dict)
    cache: Dict[str, Any] = field(default_factory=dict)
    classification: Dict[str, int] = field(default_factory=dict)
    problems: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "themes": [root.to_dict() for root in self.roots],
            "stats": forest_stats(self.roots),
            "expansion": self.expansion.to_dict(),
            "consolidation": self.consolidation.to_dict(),
            "gateway": self.gateway,
            "cache": self.cache,
            "classification": self.classification,
            "problems": self.problems,
            "elapsed": self.elapsed,
        }

    def save(self, path: Union[str, Path]):
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)


class ThemeTree:
    """
    Orchestrates one analysis run:
    diff -> root themes -> business annotation -> decomposition -> consolidation
    -> cross references -> validation.

    The gateway, cache and expansion ledger are built once per instance and
    shared by every engine, so repeated runs reuse cached classifications.
    """

    def __init__(
        self,
        config: Union[str, Dict[str, Any], AnalysisConfig, None] = None,
        caller: Optional[ModelCaller] = None,
        offline: bool = False,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = AnalysisConfig.from_source(config)
        self.logger = logger or logging.getLogger(__name__)

        self.llm: Optional[LLMClient] = None
        if caller is None and not offline:
            self.llm = LLMClient(self.config.llm, logger=self.logger)
            caller = self.llm.acomplete

        self.gateway: Optional[CallGateway] = None
        model = None
        if caller is not None:
            self.gateway = CallGateway(caller, self.config.gateway, clock=clock, logger=self.logger)
            model = ModelClassifier(self.gateway, logger=self.logger)

        self.cache = ResponseCache(self.config.cache, clock=clock, logger=self.logger)
        self.ledger = ExpansionLedger()
        self.client = ClassificationClient(
            model=model,
            cache=self.cache,
            fallback=HeuristicClassifier(self.config.fallback, logger=self.logger),
            cache_config=self.config.cache,
            fallback_config=self.config.fallback,
            logger=self.logger,
        )

    def reset(self):
        """Forget expansion history and cached classifications before an unrelated run."""
        self.ledger.reset()
        self.cache.clear()

    async def analyze(self, files: List[FileDiff]) -> AnalysisResult:
        started = time.monotonic()
        index = DiffIndex(files)
        roots = build_root_themes(files)
        self.logger.info(f"[ThemeTree] {len(files)} files -> {len(roots)} root themes")

        if self.config.annotate_business_patterns:
            await self._annotate(roots)

        decomposer = DecompositionEngine(
            self.client, index, self.config.expansion, ledger=self.ledger, logger=self.logger
        )
        expansion = await decomposer.decompose(roots)

        consolidator = ConsolidationEngine(self.client, self.config.consolidation, logger=self.logger)
        roots = await consolidator.consolidate(roots)

        if self.config.consolidation.cross_references:
            links = detect_cross_references(roots)
            self.logger.info(f"[ThemeTree] Added {links} cross references")

        self.cache.purge_expired()
        problems = validate_hierarchy(roots, index)
        for problem in problems:
            self.logger.warning(f"[ThemeTree] Hierarchy problem: {problem}")

        result = AnalysisResult(
            roots=roots,
            expansion=expansion,
            consolidation=consolidator.report,
            gateway=self.gateway.status().to_dict() if self.gateway else {},
            cache=self.cache.metrics(),
            classification=self.client.stats(),
            problems=problems,
            elapsed=time.monotonic() - started,
        )
        stats = forest_stats(roots)
        self.logger.info(
            f"[ThemeTree] Done in {result.elapsed:.1f}s: {stats['nodes']} themes, "
            f"{stats['leaves']} leaves, max level {stats['max_level']}"
        )
        return result

    def analyze_sync(self, files: List[FileDiff]) -> AnalysisResult:
        return asyncio.run(self.analyze(files))

    async def _annotate(self, roots: List[ThemeNode]):
        results = await asyncio.gather(*(self.client.classify(business_patterns_request(r)) for r in roots))
        for root, result in zip(roots, results):
            payload: BusinessPatterns = result.payload
            if payload.patterns and not root.business_context:
                root.business_context = ", ".join(payload.patterns)
