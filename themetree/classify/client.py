"""
Classification client: cache -> model classifier -> fallback.

    client = ClassificationClient(model=ModelClassifier(gateway), cache=cache)
    result = await client.classify(expansion_request(node, depth, snippets, 8))
    match result.payload:
        case ExpansionDecision(should_expand=True): ...

Never raises for model problems. When the model path fails the heuristic
fallback answers (origin=fallback); with the fallback disabled a minimal
low-confidence payload is returned instead.
"""

import logging
from collections import Counter
from typing import Dict, Optional

from pydantic import ValidationError

from themetree.cache.response_cache import ResponseCache
from themetree.config.analysis_config import CacheConfig, FallbackConfig

from .classifier import Classifier
from .fallback import minimal_payload
from .requests import SIMILARITY_KINDS, ClassificationRequest, ClassificationResult, Origin
from .schemas import payload_confidence, schema_for


class ClassificationClient:
    def __init__(
        self,
        model: Optional[Classifier] = None,
        cache: Optional[ResponseCache] = None,
        fallback: Optional[Classifier] = None,
        cache_config: Optional[CacheConfig] = None,
        fallback_config: Optional[FallbackConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.model = model
        self.cache = cache
        self.fallback = fallback
        self.cache_config = cache_config or (cache.config if cache else CacheConfig())
        self.fallback_config = fallback_config or FallbackConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.counts: Counter = Counter()

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        kind = request.kind.value
        key = request.cache_key

        cached = self._from_cache(request, key)
        if cached is not None:
            self.counts["cached"] += 1
            return cached

        error: Optional[str] = "model classifier unavailable"
        if self.model is not None:
            result = await self.model.classify(request)
            if result.success:
                self.counts["fresh"] += 1
                self._store(request, key, result)
                return result
            error = result.error
            self.counts["model_failures"] += 1

        if self.fallback is not None and self.fallback_config.enabled:
            result = await self.fallback.classify(request)
            result.error = error
            self.counts["fallback"] += 1
            self.logger.info(f"[ClassificationClient] {kind} answered by fallback: {error}")
            return result

        self.counts["default"] += 1
        self.logger.warning(f"[ClassificationClient] {kind} failed with no fallback: {error}")
        payload = minimal_payload(request, self.fallback_config.default_confidence)
        return ClassificationResult(
            success=False,
            payload=payload,
            confidence=payload_confidence(payload),
            origin=Origin.FALLBACK,
            error=error,
        )

    def stats(self) -> Dict[str, int]:
        return dict(self.counts)

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------
    def _from_cache(self, request: ClassificationRequest, key: str) -> Optional[ClassificationResult]:
        if self.cache is None:
            return None
        raw = self.cache.get(key)
        if raw is None:
            return None
        schema, _ = schema_for(request.kind)
        try:
            payload = schema.model_validate(raw)
        except ValidationError:
            self.logger.warning(f"[ClassificationClient] Dropping unreadable cached {request.kind.value} entry")
            return None
        return ClassificationResult(
            success=True,
            payload=payload,
            confidence=payload_confidence(payload),
            origin=Origin.CACHED,
        )

    def _store(self, request: ClassificationRequest, key: str, result: ClassificationResult):
        if self.cache is None or result.payload is None:
            return
        if request.kind in SIMILARITY_KINDS and result.confidence <= self.cache_config.similarity_min_confidence:
            return
        self.cache.set(key, result.payload.model_dump(mode="json"), self.cache_config.ttl_for(request.kind.value))
