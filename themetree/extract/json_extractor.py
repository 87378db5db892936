"""
Recover a JSON payload from free-form model text.

Strategies, in order, each accepted only if the result also matches the
expected shape:
    1. the whole trimmed text
    2. fenced code blocks (```json first, then any fence)
    3. top-level balanced {...} / [...] regions, left to right

`extract` is pure: no I/O, no logging, deterministic for a given input.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import json5

from themetree.llm_client.errors import ResponseShapeError
from themetree.utils.api import parse_code_blocks


PREVIEW_CHARS = 200


class Shape(str, Enum):
    OBJECT = "object"
    ARRAY = "array"


@dataclass(frozen=True)
class ExpectedShape:
    kind: Shape = Shape.OBJECT
    required_fields: Tuple[str, ...] = ()


@dataclass
class ExtractionResult:
    success: bool
    data: Any = None
    strategy: Optional[str] = None
    error: Optional[str] = None
    preview: str = ""
    missing_fields: List[str] = field(default_factory=list)

    def unwrap(self) -> Any:
        if not self.success:
            raise ResponseShapeError(self.error or "extraction failed", self.missing_fields, self.preview)
        return self.data


def _preview(text: str) -> str:
    text = text.strip()
    if len(text) <= PREVIEW_CHARS:
        return text
    return text[:PREVIEW_CHARS] + "..."


def _parse(candidate: str) -> Tuple[bool, Any]:
    candidate = candidate.strip()
    if not candidate:
        return False, None
    try:
        return True, json.loads(candidate)
    except (ValueError, RecursionError):
        pass
    # Lenient second pass: trailing commas, single quotes, comments
    try:
        return True, json5.loads(candidate)
    except (ValueError, RecursionError):
        return False, None


def _missing(data: Any, expected: ExpectedShape) -> Optional[List[str]]:
    """None when the shape is wrong, else the list of missing required fields."""
    if expected.kind == Shape.ARRAY:
        return [] if isinstance(data, list) else None
    if not isinstance(data, dict):
        return None
    return [f for f in expected.required_fields if f not in data]


def balanced_regions(text: str) -> Iterator[str]:
    """
    Yield top-level balanced bracketed regions from left to right in one pass.

    An opener that is never closed, or is closed by the wrong delimiter, is
    dropped together with every opener still pending; regions that already
    closed inside them are yielded instead.
    """
    closers = {"{": "}", "[": "]"}
    # frame: [start, expected closer, regions closed directly inside it]
    stack: List[list] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            # strings only matter inside a candidate region
            in_string = bool(stack)
        elif ch in closers:
            stack.append([i, closers[ch], []])
        elif ch in "}]" and stack:
            if ch != stack[-1][1]:
                yield from _orphaned(text, stack)
                stack = []
                continue
            start, _, _ = stack.pop()
            if stack:
                stack[-1][2].append((start, i))
            else:
                yield text[start:i + 1]
    yield from _orphaned(text, stack)


def _orphaned(text: str, stack: List[list]) -> Iterator[str]:
    for _, _, inner in stack:
        for start, end in inner:
            yield text[start:end + 1]


def _candidates(text: str) -> Iterator[Tuple[str, str]]:
    yield "direct", text
    fenced = parse_code_blocks(text, "json") or parse_code_blocks(text)
    for block in fenced:
        yield "fenced", block
    for region in balanced_regions(text):
        yield "balanced", region


def extract(raw_text: Optional[str], expected: ExpectedShape = ExpectedShape()) -> ExtractionResult:
    """
    Pull a structured value matching `expected` out of `raw_text`.

    Args:
        raw_text: Model output, possibly wrapped in prose or code fences.
        expected: Object vs array, plus required top-level fields for objects.

    Returns:
        ExtractionResult: `success` with `data` and the winning strategy, or
        a diagnostic with a truncated preview and the missing fields of the
        closest candidate.
    """
    text = (raw_text or "").strip()
    preview = _preview(text)
    if not text:
        return ExtractionResult(success=False, error="empty response", preview=preview)

    parsed_any = False
    closest_missing: Optional[List[str]] = None
    for strategy, candidate in _candidates(text):
        ok, data = _parse(candidate)
        if not ok:
            continue
        parsed_any = True
        missing = _missing(data, expected)
        if missing == []:
            return ExtractionResult(success=True, data=data, strategy=strategy, preview=preview)
        if missing and (closest_missing is None or len(missing) < len(closest_missing)):
            closest_missing = missing

    if closest_missing:
        return ExtractionResult(
            success=False,
            error=f"missing required fields: {', '.join(closest_missing)}",
            preview=preview,
            missing_fields=closest_missing,
        )
    if parsed_any:
        error = f"no {expected.kind.value} found in response"
    else:
        error = "no parseable JSON found in response"
    return ExtractionResult(
        success=False,
        error=error,
        preview=preview,
        missing_fields=list(expected.required_fields),
    )


def validate_shape(data: Any, kind: Shape, required_fields: Sequence[str] = ()) -> List[str]:
    """Problems with `data` against the shape; empty when it conforms."""
    missing = _missing(data, ExpectedShape(kind, tuple(required_fields)))
    if missing is None:
        return [f"expected {kind.value}, got {type(data).__name__}"]
    return [f"missing field: {name}" for name in missing]
