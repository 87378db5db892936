import pytest

from themetree.classify.fallback import HeuristicClassifier, detect_patterns, minimal_payload, name_similarity
from themetree.classify.requests import (
    Origin,
    RequestKind,
    batch_similarity_request,
    business_patterns_request,
    cross_level_request,
    expansion_request,
    similarity_request,
)
from themetree.classify.schemas import MergeAction, Relationship
from themetree.config.analysis_config import FallbackConfig
from themetree.themes.node import CodeRange, ThemeNode


def theme(name, scope, description=""):
    return ThemeNode(name=name, description=description, scope=scope)


def test_detect_patterns():
    assert detect_patterns("Refresh OAuth token on login") == ["authentication"]
    assert "testing" in detect_patterns("tests/test_login.py")
    assert detect_patterns("zzz") == []


def test_name_similarity_bounds():
    assert name_similarity("Add input validation", "Add input validation") == pytest.approx(1.0)
    assert name_similarity("Add input validation", "") == 0.0
    assert name_similarity("Add input validation", "Rewrite docs") < 0.5


def test_expansion_splits_by_file_with_penalty():
    node = theme("Auth", [CodeRange("src/a.py", 0, 1, 4), CodeRange("src/b.py", 0, 1, 2)])
    decision = HeuristicClassifier().decide(expansion_request(node, 0, "", 8))
    assert decision.should_expand
    assert [c.files for c in decision.children] == [["src/a.py"], ["src/b.py"]]
    assert decision.confidence == pytest.approx(0.6)


def test_expansion_splits_single_file_by_hunk():
    node = theme("Auth", [CodeRange("src/a.py", 0, 1, 4), CodeRange("src/a.py", 1, 1, 2)])
    decision = HeuristicClassifier().decide(expansion_request(node, 0, "", 8))
    assert decision.should_expand
    assert [(c.scope[0].file, c.scope[0].hunk) for c in decision.children] == [("src/a.py", 0), ("src/a.py", 1)]
    assert decision.confidence == pytest.approx(0.5)


def test_expansion_atomic_without_boundary():
    node = theme("Auth", [CodeRange("src/a.py", 0, 1, 4)])
    decision = HeuristicClassifier().decide(expansion_request(node, 0, "", 8))
    assert not decision.should_expand
    assert decision.is_atomic


def test_expansion_too_many_files_is_atomic():
    scope = [CodeRange(f"src/f{i}.py", 0, 1, 2) for i in range(5)]
    decision = HeuristicClassifier().decide(expansion_request(theme("Many", scope), 0, "", 3))
    assert decision.is_atomic


def test_similarity_of_identical_summaries_merges():
    scope = [CodeRange("src/a.py", 0, 1, 4)]
    a = theme("Add input validation", scope, "validate form input")
    b = theme("Add input validation", scope, "validate form input")
    verdict = HeuristicClassifier().decide(similarity_request(a, b))
    assert verdict.should_merge
    assert verdict.similarity_score == pytest.approx(1.0)


def test_batch_similarity_echoes_pair_ids():
    a = theme("Login", [CodeRange("src/login.py", 0, 1, 2)])
    b = theme("Docs", [CodeRange("README.md", 0, 1, 2)])
    verdict = HeuristicClassifier().decide(batch_similarity_request([("0-1", a, b), ("1-0", b, a)]))
    assert [r.pair_id for r in verdict.results] == ["0-1", "1-0"]
    assert not any(r.should_merge for r in verdict.results)


def test_cross_level_duplicate_and_distinct():
    scope = [CodeRange("src/a.py", 0, 1, 4)]
    parent = theme("Token refresh", scope, "refresh expired tokens")
    dup = HeuristicClassifier().decide(cross_level_request(parent, theme("Token refresh", scope, "refresh expired tokens")))
    assert dup.relationship == Relationship.DUPLICATE
    assert dup.action == MergeAction.MERGE_UP

    other = theme("Rewrite changelog", [CodeRange("CHANGELOG.md", 0, 1, 2)], "release notes")
    distinct = HeuristicClassifier().decide(cross_level_request(parent, other))
    assert distinct.relationship in (Relationship.DISTINCT, Relationship.RELATED)
    assert distinct.action == MergeAction.KEEP_SEPARATE


@pytest.mark.asyncio
async def test_business_patterns_default_to_general():
    result = await HeuristicClassifier().classify(business_patterns_request(theme("zzz", [])))
    assert result.origin == Origin.FALLBACK
    assert result.payload.patterns == ["general"]
    assert result.confidence == pytest.approx(0.4)


def test_custom_penalty():
    node = theme("Auth", [CodeRange("src/a.py", 0, 1, 4)])
    decision = HeuristicClassifier(FallbackConfig(confidence_penalty=0.0)).decide(expansion_request(node, 0, "", 8))
    assert decision.confidence == pytest.approx(0.8)


@pytest.mark.parametrize("kind", list(RequestKind))
def test_minimal_payload_for_every_kind(kind):
    a = theme("A", [CodeRange("a.py", 0, 1, 2)])
    b = theme("B", [CodeRange("b.py", 0, 1, 2)])
    request = {
        RequestKind.EXPANSION: expansion_request(a, 0, "", 8),
        RequestKind.SIMILARITY: similarity_request(a, b),
        RequestKind.BATCH_SIMILARITY: batch_similarity_request([("0-1", a, b)]),
        RequestKind.CROSS_LEVEL: cross_level_request(a, b),
        RequestKind.BUSINESS_PATTERNS: business_patterns_request(a),
    }[kind]
    payload = minimal_payload(request, 0.1)
    if kind == RequestKind.EXPANSION:
        assert payload.is_atomic and not payload.should_expand
    elif kind == RequestKind.BATCH_SIMILARITY:
        assert payload.results[0].pair_id == "0-1"
        assert not payload.results[0].should_merge
    elif kind == RequestKind.CROSS_LEVEL:
        assert payload.action == MergeAction.KEEP_SEPARATE
