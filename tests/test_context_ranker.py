"""Tests for relevance scoring."""

from datetime import timedelta

import pytest

from agentflow.domain.context.context_ranker import ContextRanker, MAX_SCORE
from agentflow.domain.models.context import ContextRequest, MemoryItem, MemoryMetadata, SourceKind


def make_item(clock, key="item", data="", age=timedelta(days=30), **metadata):
    return MemoryItem(
        key=key,
        data=data,
        metadata=MemoryMetadata(created_at=clock.now() - age, **metadata)
    )


@pytest.fixture
def ranker(clock):
    return ContextRanker(clock=clock)


class TestComponents:
    """Individual score components."""

    def test_keyword_fraction(self, ranker, clock):
        item = make_item(clock, data="Deploy the API service")
        assert ranker.calculate_keyword_score(item, ["deploy", "api", "database"]) == pytest.approx(2 / 3)

    def test_accented_keywords(self, ranker, clock):
        item = make_item(clock, data="Déploiement du café")
        assert ranker.calculate_keyword_score(item, ["café", "déploiement"]) == 1.0

    def test_no_keywords(self, ranker, clock):
        assert ranker.calculate_keyword_score(make_item(clock, data="x"), []) == 0.0

    def test_type_score_capped(self, ranker, clock):
        item = make_item(clock, type="agent", category="agent", tags=["agent", "planner"], agent_type="planner")
        request = ContextRequest(type="agent", target="planner")
        assert ranker.calculate_type_score(item, request) == 1.0

    def test_type_score_partial(self, ranker, clock):
        item = make_item(clock, category="agent")
        request = ContextRequest(type="agent")
        assert ranker.calculate_type_score(item, request) == pytest.approx(0.3)

    @pytest.mark.parametrize("age, expected", [
        (timedelta(minutes=30), 0.5),
        (timedelta(hours=5), 0.3),
        (timedelta(days=3), 0.1),
        (timedelta(days=30), 0.05),
    ])
    def test_recency(self, ranker, clock, age, expected):
        assert ranker.calculate_time_score(make_item(clock, age=age)) == expected

    def test_quality_capped(self, ranker, clock):
        item = make_item(clock, priority=9, tags=["success", "verified"])
        assert ranker.calculate_quality_score(item) == pytest.approx(0.3)

    def test_quality_priority_only(self, ranker, clock):
        assert ranker.calculate_quality_score(make_item(clock, priority=1)) == pytest.approx(0.1)


class TestTotal:
    """Combined score."""

    def test_formula(self, ranker, clock):
        item = make_item(clock, data="deploy", age=timedelta(minutes=1), priority=1)
        request = ContextRequest(type="agent", keywords=frozenset({"deploy"}))

        score = ranker.score(item, request, SourceKind.WORKING)

        assert score.base == 1.0
        assert score.total == pytest.approx(1.0 * 2.0 * 1.0 * 1.5 * 1.1)

    def test_source_weights_order(self, ranker, clock):
        item = make_item(clock, data="same")
        request = ContextRequest(type="agent")

        totals = [
            ranker.score(item, request, kind).total
            for kind in (SourceKind.WORKING, SourceKind.PROCEDURAL, SourceKind.SEMANTIC, SourceKind.EPISODIC)
        ]
        assert totals == sorted(totals, reverse=True)
        assert len(set(totals)) == 4

    def test_capped_at_max(self, clock):
        ranker = ContextRanker(weights={SourceKind.WORKING: 50.0}, clock=clock)
        item = make_item(clock, data="x")

        score = ranker.score(item, ContextRequest(type="agent"), SourceKind.WORKING)

        assert score.total == MAX_SCORE

    def test_more_matching_keywords_never_lower(self, ranker, clock):
        request = ContextRequest(type="agent", keywords=frozenset({"deploy", "api"}))
        one = make_item(clock, data="deploy")
        both = make_item(clock, data="deploy api")

        assert ranker.score(both, request, SourceKind.SEMANTIC).total >= ranker.score(one, request, SourceKind.SEMANTIC).total

    def test_rank_snapshots_metadata(self, ranker, clock):
        item = make_item(clock, key="k", data={"a": 1}, category="notes")

        ranked = ranker.rank([item], ContextRequest(type="agent"), "notes", SourceKind.GENERIC)

        assert ranked[0].key == "k"
        assert ranked[0].source == "notes"
        assert ranked[0].metadata["category"] == "notes"
        assert isinstance(ranked[0].metadata["created_at"], str)
