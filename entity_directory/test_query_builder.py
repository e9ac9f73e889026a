"""
entity_directory/test_query_builder.py

Tests for query descriptors and the shared filter/sort semantics.

Run:
    pytest entity_directory/test_query_builder.py -v
"""

import pytest

from conftest import entity_doc
from entity_directory.errors import QueryError
from entity_directory.models import Entity, Role
from entity_directory.query_builder import (
    Cursor,
    EntityFilters,
    Filter,
    OrderBy,
    Pagination,
    SortSpec,
    after_cursor,
    apply_client_filters,
    build,
    matches,
    resolve_cursor,
    sort_value,
)


class TestBuild:
    def test_visitor_base_predicate(self):
        q = build(Role.visitor)
        assert q.collection == "entities"
        assert Filter("visibility", "in", ["public"]) in q.filters
        assert Filter("is_confidential", "==", False) in q.filters

    def test_member_allow_set(self):
        q = build("member")
        vis = [f for f in q.filters if f.field == "visibility"][0]
        assert sorted(vis.value) == ["member", "public", "subscriber"]

    def test_bypass_roles_have_no_base_predicate(self):
        assert build(Role.admin).filters == []
        assert build(Role.confidential).filters == []

    def test_default_sort_and_limit(self):
        q = build(Role.visitor)
        assert q.order_by == [OrderBy("date_added", "desc")]
        assert q.pagination.limit == 20

    def test_single_and_multiple_types(self):
        one = build(Role.admin, EntityFilters(types=["robotics"]))
        assert one.filters == [Filter("type", "==", "robotics")]
        many = build(Role.admin, EntityFilters(types=["robotics", "biotechnology"]))
        assert many.filters == [Filter("type", "in", ["robotics", "biotechnology"])]

    def test_range_and_array_filters(self):
        q = build(Role.admin, EntityFilters(
            employee_count_min=10,
            founded_year_max=2020,
            has_certifications=True,
            has_partnerships=False,
        ))
        assert Filter("employee_count", ">=", 10) in q.filters
        assert Filter("founded_year", "<=", 2020) in q.filters
        assert Filter("certifications", "is_not_null") in q.filters
        assert Filter("partnerships", "is_null") in q.filters

    def test_membership_tier(self):
        q = build(Role.admin, EntityFilters(membership_tier="member"))
        assert q.filters == [Filter("visibility", "==", "member")]
        q = build(Role.admin, EntityFilters(membership_tier="confidential"))
        assert q.filters == [Filter("is_confidential", "==", True)]
        assert build(Role.admin, EntityFilters(membership_tier="all")).filters == []

    def test_unsupported_sort_field_fails_fast(self):
        with pytest.raises(QueryError) as exc:
            build(Role.visitor, sort=SortSpec(field="memberSince"))
        assert exc.value.operation == "build_query"
        assert exc.value.public_detail == "Database error"

    def test_unsupported_direction(self):
        with pytest.raises(QueryError):
            build(Role.visitor, sort=SortSpec(field="name", direction="up"))

    @pytest.mark.parametrize("limit,expected", [(0, 1), (-5, 1), (50, 50), (5000, 200)])
    def test_limit_is_clamped(self, limit, expected):
        assert build(Role.visitor, pagination=Pagination(limit=limit)).pagination.limit == expected


class TestResolveCursor:
    def test_known_id_becomes_keyset_cursor(self):
        doc = entity_doc(id="abc", date_added="2024-05-01T00:00:00Z")
        q = build(Role.visitor, pagination=Pagination(start_after_id="abc"))
        resolved = resolve_cursor(q, lambda i: doc if i == "abc" else None)
        assert resolved.pagination.cursor == Cursor("2024-05-01T00:00:00Z", "abc")

    def test_unknown_id_is_ignored(self, capsys):
        q = build(Role.visitor, pagination=Pagination(start_after_id="missing"))
        resolved = resolve_cursor(q, lambda i: None)
        assert resolved.pagination.cursor is None
        assert resolved.pagination.start_after_id is None
        assert "start_after id not found" in capsys.readouterr().out


class TestMatches:
    def test_null_array_means_absent_or_empty(self):
        assert matches({"certifications": []}, [Filter("certifications", "is_null")])
        assert matches({}, [Filter("certifications", "is_null")])
        assert matches({"certifications": ["ISO"]}, [Filter("certifications", "is_not_null")])

    def test_missing_visibility_defaults_to_public(self):
        assert matches({"id": "x"}, [Filter("visibility", "in", ["public"])])
        assert matches({"id": "x"}, [Filter("is_confidential", "==", False)])

    def test_missing_numeric_never_matches_range(self):
        assert not matches({"employee_count": None}, [Filter("employee_count", ">=", 0)])

    def test_unknown_operator(self):
        with pytest.raises(QueryError):
            matches({"name": "a"}, [Filter("name", "like", "a")])

    def test_sort_value_sentinels(self):
        assert sort_value({}, "employee_count") == -1
        assert sort_value({}, "name") == ""

    def test_after_cursor_desc_uses_id_tiebreak(self):
        order = OrderBy("date_added", "desc")
        cursor = Cursor("2024-01-02", "m")
        assert after_cursor({"id": "a", "date_added": "2024-01-02"}, order, cursor)
        assert not after_cursor({"id": "z", "date_added": "2024-01-02"}, order, cursor)
        assert after_cursor({"id": "z", "date_added": "2024-01-01"}, order, cursor)


class TestClientFilters:
    def _entities(self):
        return [
            Entity.model_validate(entity_doc(
                name="Lagos Robotics", location="Lagos, NG",
                services=["Robot Integration"], certifications=["ISO 9001"], partnerships=["Acme"],
            )),
            Entity.model_validate(entity_doc(name="Berlin Bio", location="Berlin", tags=["genomics"])),
        ]

    def test_search_location_services(self):
        es = self._entities()
        assert [e.name for e in apply_client_filters(es, EntityFilters(search="genom"))] == ["Berlin Bio"]
        assert [e.name for e in apply_client_filters(es, EntityFilters(location="lagos"))] == ["Lagos Robotics"]
        assert [e.name for e in apply_client_filters(es, EntityFilters(services=["integration"]))] == ["Lagos Robotics"]

    def test_verification_status(self):
        es = self._entities()
        assert len(apply_client_filters(es, EntityFilters(verification_status="verified"))) == 1
        assert [e.name for e in apply_client_filters(es, EntityFilters(verification_status="unverified"))] == ["Berlin Bio"]
        assert len(apply_client_filters(es, EntityFilters(verification_status="premium"))) == 1
        assert len(apply_client_filters(es, EntityFilters(verification_status="all"))) == 2
