"""
Analysis configuration.

One `AnalysisConfig` aggregates the settings of every component. It loads
from a dict, a JSON/YAML string or a JSON/YAML file and applies
`THEMETREE_*` environment overrides once, at load time.
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import yaml

from themetree.llm_client.client import LLMConfig
from themetree.llm_client.errors import ConfigError
from themetree.utils.envs import ENV_PREFIX


MINUTE = 60.0


@dataclass
class GatewayConfig:
    max_concurrency: int = 10
    min_request_interval: float = 0.2
    max_retries: int = 3
    backoff_base: float = 2.0
    backoff_max: float = 30.0
    breaker_failure_threshold: int = 5
    breaker_cooldown: float = 30.0
    breaker_poll_interval: float = 1.0
    # Retries jump ahead of fresh work; set False to append them instead
    retry_at_front: bool = True
    max_queue_length: int = 1000
    summary_every: int = 10

    def validate(self):
        if not 1 <= self.max_concurrency <= 20:
            raise ConfigError(f"gateway.max_concurrency must be in 1..20, got {self.max_concurrency}")
        _non_negative("gateway", self, "min_request_interval", "max_retries", "backoff_base",
                      "backoff_max", "breaker_cooldown")
        _positive("gateway", self, "breaker_failure_threshold", "breaker_poll_interval",
                  "max_queue_length", "summary_every")


@dataclass
class CacheConfig:
    enabled: bool = True
    max_bytes: int = 100 * 1024 * 1024
    default_ttl: float = 30 * MINUTE
    ttl: Dict[str, float] = field(default_factory=lambda: {
        "expansion": 30 * MINUTE,
        "similarity": 60 * MINUTE,
        "batch_similarity": 60 * MINUTE,
        "cross_level": 60 * MINUTE,
        "business_patterns": 30 * MINUTE,
    })
    lru: bool = False
    similarity_min_confidence: float = 0.7

    def ttl_for(self, kind: str) -> float:
        return self.ttl.get(kind, self.default_ttl)

    def validate(self):
        _positive("cache", self, "max_bytes", "default_ttl")
        for kind, ttl in self.ttl.items():
            if ttl <= 0:
                raise ConfigError(f"cache.ttl[{kind}] must be positive, got {ttl}")
        _unit_interval("cache", self, "similarity_min_confidence")


@dataclass
class ExpansionConfig:
    max_depth: int = 10
    same_theme_expansion_limit: int = 2
    atomic_max_lines: int = 15
    atomic_max_units: int = 1
    atomic_description_keywords: bool = True
    atomic_name_patterns: bool = True
    complexity_depth_ratio: float = 2.0
    confidence_base: float = 0.6
    confidence_decay: float = 0.05
    confidence_floor: float = 0.3
    high_complexity_bonus: float = 0.05
    high_complexity_score: float = 10.0
    max_children: int = 8
    max_snippets: int = 12
    snippet_max_tokens: int = 600

    def validate(self):
        _positive("expansion", self, "max_depth", "same_theme_expansion_limit", "atomic_max_lines",
                  "complexity_depth_ratio", "max_children", "max_snippets", "snippet_max_tokens")
        _non_negative("expansion", self, "atomic_max_units", "high_complexity_score")
        _unit_interval("expansion", self, "confidence_base", "confidence_decay",
                       "confidence_floor", "high_complexity_bonus")


@dataclass
class ConsolidationConfig:
    name_merge_threshold: float = 0.95
    merge_score_threshold: float = 0.7
    batch_size: int = 10
    skip_sibling_dedup: bool = False
    skip_cross_level_dedup: bool = False
    max_rounds: int = 10
    cross_references: bool = True

    def validate(self):
        _unit_interval("consolidation", self, "name_merge_threshold", "merge_score_threshold")
        _positive("consolidation", self, "batch_size", "max_rounds")


@dataclass
class FallbackConfig:
    enabled: bool = True
    confidence_penalty: float = 0.3
    default_confidence: float = 0.1

    def validate(self):
        _unit_interval("fallback", self, "confidence_penalty", "default_confidence")


_SECTIONS = {
    "gateway": GatewayConfig,
    "cache": CacheConfig,
    "expansion": ExpansionConfig,
    "consolidation": ConsolidationConfig,
    "fallback": FallbackConfig,
}

# env suffix -> (section, field, parser)
_ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "MAX_DEPTH": ("expansion", "max_depth", int),
    "ATOMIC_MAX_LINES": ("expansion", "atomic_max_lines", int),
    "REPETITION_LIMIT": ("expansion", "same_theme_expansion_limit", int),
    "MAX_CONCURRENCY": ("gateway", "max_concurrency", int),
    "MIN_REQUEST_INTERVAL": ("gateway", "min_request_interval", float),
    "MAX_RETRIES": ("gateway", "max_retries", int),
    "BREAKER_THRESHOLD": ("gateway", "breaker_failure_threshold", int),
    "BREAKER_COOLDOWN": ("gateway", "breaker_cooldown", float),
    "CACHE_MAX_BYTES": ("cache", "max_bytes", int),
    "CACHE_ENABLED": ("cache", "enabled", lambda v: _parse_bool(v)),
    "SKIP_SIBLING_DEDUP": ("consolidation", "skip_sibling_dedup", lambda v: _parse_bool(v)),
    "SKIP_CROSS_LEVEL_DEDUP": ("consolidation", "skip_cross_level_dedup", lambda v: _parse_bool(v)),
    "FALLBACK_ENABLED": ("fallback", "enabled", lambda v: _parse_bool(v)),
}


@dataclass
class AnalysisConfig:
    """Settings for one analysis run."""

    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    expansion: ExpansionConfig = field(default_factory=ExpansionConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    annotate_business_patterns: bool = True

    def validate(self) -> "AnalysisConfig":
        for name in _SECTIONS:
            getattr(self, name).validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {name: asdict(getattr(self, name)) for name in _SECTIONS}
        data["llm"] = self.llm.to_dict()
        data["annotate_business_patterns"] = self.annotate_business_patterns
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> "AnalysisConfig":
        """
        Build a config from a plain mapping, then apply environment overrides.

        Args:
            data: Section name -> field mapping. Unknown sections or fields raise ConfigError.
            env: Environment to read `THEMETREE_*` overrides from (defaults to os.environ).

        Returns:
            AnalysisConfig: A validated configuration.
        """
        kwargs: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            if key in _SECTIONS:
                kwargs[key] = _build_section(key, _SECTIONS[key], value or {})
            elif key == "llm":
                kwargs["llm"] = LLMConfig.from_source(value or {})
            elif key == "annotate_business_patterns":
                kwargs[key] = bool(value)
            else:
                raise ConfigError(f"Unknown config section: {key}")
        cfg = cls(**kwargs)
        cfg.apply_env(os.environ if env is None else env)
        return cfg.validate()

    @classmethod
    def from_source(
        cls,
        source: Union[str, Dict[str, Any], "AnalysisConfig", None],
        env: Optional[Mapping[str, str]] = None,
    ) -> "AnalysisConfig":
        """
        Supports:
        - None -> defaults (plus env overrides)
        - AnalysisConfig instance -> return as-is
        - dict -> from_dict
        - JSON/YAML string or file path -> read & parse
        """
        if source is None:
            return cls.from_dict({}, env=env)
        if isinstance(source, cls):
            return source
        if isinstance(source, dict):
            return cls.from_dict(source, env=env)

        if isinstance(source, str):
            if os.path.exists(source):
                with open(source, "r", encoding="utf-8") as f:
                    text = f.read()
            else:
                text = source

            try:
                return cls.from_dict(json.loads(text), env=env)
            except json.JSONDecodeError:
                pass

            try:
                parsed = yaml.safe_load(text)
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse config: {e}") from e
            if isinstance(parsed, dict):
                return cls.from_dict(parsed, env=env)
            raise ConfigError("Cannot parse config: not valid JSON / YAML / dict / AnalysisConfig")

        raise ConfigError(f"Unsupported config type: {type(source)}")

    def apply_env(self, env: Mapping[str, str]):
        for suffix, (section, name, parse) in _ENV_OVERRIDES.items():
            raw = env.get(ENV_PREFIX + suffix)
            if raw is None or raw == "":
                continue
            try:
                value = parse(raw)
            except ValueError as e:
                raise ConfigError(f"{ENV_PREFIX + suffix}={raw!r} is not a valid {name}") from e
            setattr(getattr(self, section), name, value)

    def save(self, path: str):
        data = self.to_dict()
        if path.endswith((".yml", ".yaml")):
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False)
        else:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------
def _build_section(name: str, section_cls, values: Mapping[str, Any]):
    valid = {f.name for f in fields(section_cls)}
    unknown = set(values) - valid
    if unknown:
        raise ConfigError(f"Unknown {name} settings: {sorted(unknown)}")
    if name == "cache" and "ttl" in values:
        merged = CacheConfig().ttl
        merged.update(values["ttl"] or {})
        values = {**values, "ttl": merged}
    return section_cls(**values)


def _parse_bool(raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(raw)


def _check(section: str, obj, names, predicate, expectation: str):
    for name in names:
        value = getattr(obj, name)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or not predicate(value):
            raise ConfigError(f"{section}.{name} must be {expectation}, got {value!r}")


def _positive(section: str, obj, *names):
    _check(section, obj, names, lambda v: v > 0, "positive")


def _non_negative(section: str, obj, *names):
    _check(section, obj, names, lambda v: v >= 0, "non-negative")


def _unit_interval(section: str, obj, *names):
    _check(section, obj, names, lambda v: 0.0 <= v <= 1.0, "within [0, 1]")
