"""
entity_directory/test_search_service.py

Tests for the search pipeline: authentication, role-scoped candidates,
ranking and suggestions.

Run:
    pytest entity_directory/test_search_service.py -v
"""

import pytest

from conftest import caller, entity_doc
from entity_directory.errors import AuthError
from entity_directory.scoring import SHORT_QUERY_SUGGESTIONS


def test_requires_caller(live_services):
    with pytest.raises(AuthError):
        live_services.search.search("robot", None)


def test_short_query_returns_generic_suggestions(live_services, seed):
    seed(live_services.store, entity_doc(name="Acme Robotics", type="robotics"))
    response = live_services.search.search(" r ", caller("visitor"))
    assert response.results == []
    assert response.total_results == 0
    assert response.suggestions == SHORT_QUERY_SUGGESTIONS


def test_ranks_by_relevance(live_services, seed):
    weak, strong, _ = seed(
        live_services.store,
        entity_doc(name="Northwind", type="robotics", tags=["robot arms"]),
        entity_doc(name="Acme Robotics", type="robotics"),
        entity_doc(name="Bakery", type="manufacturing"),
    )
    response = live_services.search.search("robot", caller("visitor"))
    assert [r.entity.id for r in response.results] == [strong.id, weak.id]
    assert response.results[0].relevance_score > response.results[1].relevance_score
    assert response.search_time_ms >= 0


def test_equal_scores_keep_newest_first(live_services, seed):
    older, newer = seed(
        live_services.store,
        entity_doc(name="Robot One"),
        entity_doc(name="Robot Two"),
    )
    for _ in range(3):
        response = live_services.search.search("robot", caller("visitor"))
        assert [r.entity.id for r in response.results] == [newer.id, older.id]


def test_candidates_respect_visibility(live_services, seed):
    public, member, secret = seed(
        live_services.store,
        entity_doc(name="Robot Public"),
        entity_doc(name="Robot Members", visibility="member"),
        entity_doc(name="Robot Secret", is_confidential=True),
    )

    def _ids(role):
        return {r.entity.id for r in live_services.search.search("robot", caller(role)).results}

    assert _ids("visitor") == {public.id}
    assert _ids("member") == {public.id, member.id}
    assert _ids("admin") == {public.id, member.id, secret.id}


def test_type_filter_single_and_multiple(live_services, seed):
    robots, bio, _ = seed(
        live_services.store,
        entity_doc(name="Lab Robots", type="robotics"),
        entity_doc(name="Lab Genomics", type="biotechnology"),
        entity_doc(name="Lab Metal", type="manufacturing"),
    )
    one = live_services.search.search("lab", caller("visitor"), types=["robotics"])
    assert [r.entity.id for r in one.results] == [robots.id]

    two = live_services.search.search("lab", caller("visitor"), types=["robotics", "biotechnology"])
    assert {r.entity.id for r in two.results} == {robots.id, bio.id}


def test_max_results_and_thin_result_suggestions(live_services, seed):
    seed(live_services.store, *[entity_doc(name=f"Robot {i}") for i in range(6)])
    response = live_services.search.search("robot", caller("visitor"), max_results=2)
    assert response.total_results == 2
    assert response.suggestions == ["Try broader search terms for more results"]

    full = live_services.search.search("robot", caller("visitor"))
    assert full.total_results == 6
    assert full.suggestions is None


def test_no_results(live_services, seed):
    seed(live_services.store, entity_doc(name="Acme"))
    response = live_services.search.search("zeppelin", caller("visitor"))
    assert response.results == []
    assert "Try broader search terms" in response.suggestions


def test_typo_match(live_services, seed):
    (entity,) = seed(live_services.store, entity_doc(name="Acme Robotics", type="robotics"))
    response = live_services.search.search("robtics", caller("visitor"))
    assert [r.entity.id for r in response.results] == [entity.id]
    assert live_services.search.search("robtics", caller("visitor"), fuzzy=False).results == []


def test_build_phase_searches_public_snapshot(build_phase_services, seed):
    public, _ = seed(
        build_phase_services.store,
        entity_doc(name="Robot Public"),
        entity_doc(name="Robot Members", visibility="member"),
    )
    response = build_phase_services.search.search("robot", caller("member"))
    assert [r.entity.id for r in response.results] == [public.id]


def test_suggestions(live_services):
    assert live_services.search.suggestions("energy") == ["clean energy"]
