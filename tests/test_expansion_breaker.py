import pytest

from conftest import make_file
from themetree.config.analysis_config import ExpansionConfig
from themetree.decompose.expansion_breaker import ExpansionCircuitBreaker, ExpansionLedger
from themetree.decompose.metrics import NodeMetrics, compute_metrics, count_changed_units
from themetree.themes.builder import build_root_themes
from themetree.utils.diff import DiffIndex


def metrics(**overrides) -> NodeMetrics:
    values = dict(
        file_count=2, changed_lines=40, changed_units=3, snippet_count=2, description_length=0, child_count=0
    )
    values.update(overrides)
    return NodeMetrics(**values)


class _Node:
    def __init__(self, node_id, name="Session cache", description="Cache warm-up for sessions"):
        self.id = node_id
        self.name = name
        self.description = description


def test_complexity_score():
    m = metrics(file_count=3, snippet_count=4, description_length=400, child_count=1)
    assert m.complexity_score == pytest.approx(3 * 2 + 4 + 2 + 1)


def test_rename_counts_as_one_unit(rename_diff):
    index = DiffIndex(rename_diff)
    root = build_root_themes(rename_diff)[0]
    assert count_changed_units(root, index) == 1
    m = compute_metrics(root, index)
    assert m.changed_lines == 3
    assert m.is_single_file


def test_changes_without_declarations_count_one_unit():
    files = [make_file("src/a.py", [" x = 1", "-y = 2", "+y = 3"])]
    root = build_root_themes(files)[0]
    assert count_changed_units(root, DiffIndex(files)) == 1


def test_max_depth_rule():
    breaker = ExpansionCircuitBreaker(ExpansionConfig(max_depth=3))
    decision = breaker.allow(_Node("a"), 3, metrics())
    assert not decision.allowed
    assert decision.rule == "max_depth"


def test_repetition_rule():
    ledger = ExpansionLedger()
    breaker = ExpansionCircuitBreaker(ExpansionConfig(same_theme_expansion_limit=2), ledger)
    node = _Node("a")
    assert breaker.allow(node, 0, metrics()).allowed
    assert breaker.allow(node, 0, metrics()).allowed
    refused = breaker.allow(node, 0, metrics())
    assert refused.rule == "repetition"
    assert ledger.attempts("a") == 2


@pytest.mark.parametrize(
    "overrides, reason",
    [
        (dict(changed_lines=0), "no changed lines"),
        (dict(changed_lines=1), "single changed line"),
        (dict(file_count=1, changed_lines=15, changed_units=1), "small single-file change: 15 changed lines"),
    ],
)
def test_structural_atomic(overrides, reason):
    ledger = ExpansionLedger()
    breaker = ExpansionCircuitBreaker(ExpansionConfig(), ledger)
    decision = breaker.allow(_Node("a"), 0, metrics(**overrides))
    assert decision.rule == "structural_atomic"
    assert decision.reason.startswith(reason)
    assert ledger.atomic_reason("a") == decision.reason


def test_single_file_with_several_units_is_not_structural():
    breaker = ExpansionCircuitBreaker(ExpansionConfig())
    assert breaker.allow(_Node("a"), 0, metrics(file_count=1, changed_lines=10, changed_units=2)).allowed


def test_memoized_atomic_rule():
    ledger = ExpansionLedger()
    ledger.mark_atomic("a", "judged atomic: tiny")
    breaker = ExpansionCircuitBreaker(ExpansionConfig(), ledger)
    decision = breaker.allow(_Node("a"), 0, metrics())
    assert decision.rule == "memoized_atomic"
    assert "judged atomic: tiny" in decision.reason


def test_complexity_depth_rule():
    breaker = ExpansionCircuitBreaker(ExpansionConfig(max_depth=10, complexity_depth_ratio=0.5))
    # score 2*2 + 2 = 6 -> allowed depth 3
    assert breaker.allow(_Node("a"), 3, metrics()).allowed
    refused = breaker.allow(_Node("b"), 4, metrics())
    assert refused.rule == "complexity_depth"


def test_dynamic_threshold():
    breaker = ExpansionCircuitBreaker(ExpansionConfig())
    assert breaker.dynamic_threshold(0, metrics()) == pytest.approx(0.6)
    assert breaker.dynamic_threshold(4, metrics()) == pytest.approx(0.4)
    assert breaker.dynamic_threshold(9, metrics()) == pytest.approx(0.3)
    busy = metrics(file_count=5, snippet_count=5)
    assert breaker.dynamic_threshold(0, busy) == pytest.approx(0.65)


def test_ledger_stats_and_reset():
    ledger = ExpansionLedger()
    ledger.record_attempt("a")
    ledger.record_attempt("a")
    ledger.record_attempt("b")
    ledger.mark_atomic("c", "first")
    ledger.mark_atomic("c", "second")
    assert ledger.atomic_reason("c") == "first"
    assert ledger.stats() == {
        "themes_tracked": 2,
        "average_expansions": 1.5,
        "max_expansions": 2,
        "atomic_themes": 1,
    }
    ledger.reset()
    assert ledger.stats()["themes_tracked"] == 0


@pytest.mark.parametrize(
    "name, description, reason",
    [
        ("Docs cleanup", "Fix a typo in the login error message", "description indicates an atomic change ('typo')"),
        ("Version bump", "Update version of the client to 2.1", "description indicates an atomic change ('update version')"),
        ("Rename handler", "Handler clean-up", "name indicates an atomic change ('Rename handler')"),
        ("Fix spelling in README", "Docs", "name indicates an atomic change"),
        ("Change retry constant", "Tuning", "name indicates an atomic change"),
        ("Update pydantic to v2", "Dependencies", "name indicates an atomic change"),
    ],
)
def test_atomic_indicator_rule(name, description, reason):
    ledger = ExpansionLedger()
    breaker = ExpansionCircuitBreaker(ExpansionConfig(), ledger)
    decision = breaker.allow(_Node("a", name, description), 0, metrics())
    assert decision.rule == "atomic_indicator"
    assert decision.reason.startswith(reason)
    assert ledger.atomic_reason("a") == decision.reason
    assert ledger.attempts("a") == 0


def test_atomic_indicators_can_be_disabled():
    config = ExpansionConfig(atomic_description_keywords=False, atomic_name_patterns=False)
    breaker = ExpansionCircuitBreaker(config)
    assert breaker.allow(_Node("a", "Rename handler", "Fix a typo"), 0, metrics()).allowed


def test_name_pattern_needs_the_whole_shape():
    breaker = ExpansionCircuitBreaker(ExpansionConfig())
    # more than one word after "rename" is not a single-symbol rename
    assert breaker.allow(_Node("a", "Rename session handling and cache", "Session rework"), 0, metrics()).allowed


def test_structural_rule_runs_before_indicators():
    breaker = ExpansionCircuitBreaker(ExpansionConfig())
    decision = breaker.allow(_Node("a", "Rename handler"), 0, metrics(changed_lines=1))
    assert decision.rule == "structural_atomic"
