"""
Classifier strategies.

Two implementations share one interface: the model-backed classifier here,
and the keyword/heuristic one in `fallback.py`. The classification client
picks between them by availability.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from themetree.extract.json_extractor import extract
from themetree.gateway.call_gateway import CallGateway
from themetree.utils.api import parse_thinking_output

from .prompts import render_prompt
from .requests import ClassificationRequest, ClassificationResult, Origin
from .schemas import payload_confidence, schema_for


class Classifier(ABC):
    name: str = "classifier"

    @abstractmethod
    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        """Answer one request; failures are reported in the result, not raised."""
        pass


class ModelClassifier(Classifier):
    """Prompt -> gateway -> extractor -> schema validation."""

    name = "model"

    def __init__(self, gateway: CallGateway, logger: Optional[logging.Logger] = None):
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        kind = request.kind.value
        prompt = render_prompt(request)
        outcome = await self.gateway.submit(prompt, context=kind)
        if not outcome.ok:
            err = outcome.error
            return ClassificationResult(
                success=False,
                origin=Origin.FRESH,
                error=f"{kind} call failed ({err.kind}, {err.attempts} attempts): {err.error_type}: {err.message}",
            )

        schema, shape = schema_for(request.kind)
        extraction = extract(parse_thinking_output(outcome.text or ""), shape)
        if not extraction.success:
            self.logger.warning(
                f"[ModelClassifier] {kind}: {extraction.error}; response preview: {extraction.preview!r}"
            )
            return ClassificationResult(success=False, origin=Origin.FRESH, error=f"{kind}: {extraction.error}")

        try:
            payload = schema.model_validate(extraction.data)
        except ValidationError as e:
            self.logger.warning(f"[ModelClassifier] {kind}: payload failed validation: {e}")
            return ClassificationResult(
                success=False,
                origin=Origin.FRESH,
                error=f"{kind}: payload failed validation ({e.error_count()} errors)",
            )

        return ClassificationResult(
            success=True,
            payload=payload,
            confidence=payload_confidence(payload),
            origin=Origin.FRESH,
        )
