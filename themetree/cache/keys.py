"""Deterministic cache keys: `<kind>:<sha256 of canonical parameters>`."""

import hashlib
import json
from typing import Any, Mapping


def canonicalize(value: Any) -> Any:
    """Sort mapping keys and set members so equal parameters serialize identically."""
    if isinstance(value, Mapping):
        return {str(k): canonicalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (set, frozenset)):
        return sorted(canonicalize(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    return value


def _digest(payload: Any) -> str:
    text = json.dumps(canonicalize(payload), sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]


def make_key(kind: str, params: Mapping[str, Any]) -> str:
    return f"{kind}:{_digest(params)}"


def pair_key(kind: str, first: Mapping[str, Any], second: Mapping[str, Any], **extra: Any) -> str:
    """Key for a symmetric comparison: (a, b) and (b, a) map to the same entry."""
    ordered = sorted([_digest(first), _digest(second)])
    return make_key(kind, {"pair": ordered, **extra})


def key_kind(key: str) -> str:
    return key.split(":", 1)[0] if ":" in key else "unknown"
