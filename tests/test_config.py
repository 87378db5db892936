import pytest

from themetree.config.analysis_config import AnalysisConfig, CacheConfig
from themetree.llm_client.errors import ConfigError


def test_defaults():
    cfg = AnalysisConfig.from_source(None, env={})
    assert cfg.gateway.max_concurrency == 10
    assert cfg.gateway.min_request_interval == 0.2
    assert cfg.gateway.max_retries == 3
    assert cfg.gateway.breaker_failure_threshold == 5
    assert cfg.gateway.breaker_cooldown == 30.0
    assert cfg.gateway.retry_at_front is True
    assert cfg.expansion.max_depth == 10
    assert cfg.expansion.same_theme_expansion_limit == 2
    assert cfg.expansion.atomic_max_lines == 15
    assert cfg.cache.max_bytes == 100 * 1024 * 1024
    assert cfg.consolidation.name_merge_threshold == 0.95


def test_cache_ttl_per_kind():
    cache = CacheConfig()
    assert cache.ttl_for("expansion") == 1800
    assert cache.ttl_for("similarity") == 3600
    assert cache.ttl_for("cross_level") == 3600
    assert cache.ttl_for("something_else") == cache.default_ttl


def test_partial_ttl_override_keeps_other_kinds():
    cfg = AnalysisConfig.from_dict({"cache": {"ttl": {"expansion": 60}}}, env={})
    assert cfg.cache.ttl_for("expansion") == 60
    assert cfg.cache.ttl_for("similarity") == 3600


def test_yaml_text_and_env_overrides():
    text = "gateway:\n  max_concurrency: 4\nexpansion:\n  max_depth: 6\nllm:\n  model: gpt-4o\n"
    env = {"THEMETREE_MAX_DEPTH": "3", "THEMETREE_SKIP_CROSS_LEVEL_DEDUP": "yes"}
    cfg = AnalysisConfig.from_source(text, env=env)
    assert cfg.gateway.max_concurrency == 4
    assert cfg.expansion.max_depth == 3
    assert cfg.consolidation.skip_cross_level_dedup is True
    assert cfg.llm.model == "gpt-4o"


def test_save_and_reload(tmp_path):
    cfg = AnalysisConfig.from_dict({"expansion": {"max_children": 5}}, env={})
    path = tmp_path / "themetree.yaml"
    cfg.save(str(path))
    reloaded = AnalysisConfig.from_source(str(path), env={})
    assert reloaded.expansion.max_children == 5
    assert reloaded.to_dict() == cfg.to_dict()


def test_instance_passes_through():
    cfg = AnalysisConfig()
    assert AnalysisConfig.from_source(cfg) is cfg


@pytest.mark.parametrize(
    "data",
    [
        {"gateway": {"max_concurrency": 0}},
        {"gateway": {"max_concurrency": 21}},
        {"gateway": {"max_retries": -1}},
        {"expansion": {"confidence_floor": 1.5}},
        {"consolidation": {"merge_score_threshold": -0.1}},
        {"cache": {"max_bytes": 0}},
        {"cache": {"ttl": {"expansion": 0}}},
        {"gateway": {"no_such_setting": 1}},
        {"mystery_section": {}},
    ],
)
def test_invalid_values_raise(data):
    with pytest.raises(ConfigError):
        AnalysisConfig.from_dict(data, env={})


def test_invalid_env_value_raises():
    with pytest.raises(ConfigError):
        AnalysisConfig.from_source(None, env={"THEMETREE_MAX_CONCURRENCY": "many"})


def test_env_value_is_validated():
    with pytest.raises(ConfigError):
        AnalysisConfig.from_source(None, env={"THEMETREE_MAX_CONCURRENCY": "50"})
