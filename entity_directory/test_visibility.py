"""
entity_directory/test_visibility.py

Tests for the five-tier visibility policy.

Run:
    pytest entity_directory/test_visibility.py -v
"""

import itertools

import pytest

from conftest import entity_doc
from entity_directory.errors import EntityPermissionError
from entity_directory.models import Entity, Role
from entity_directory.visibility import (
    ALL_BUCKETS,
    bucket_for_role,
    can_view,
    filter_visible,
    normalize_role,
    role_at_least,
    role_level,
    visibility_filter_for,
)


VISIBILITIES = ["public", "subscriber", "member", "confidential", None]
ORDERED_ROLES = [Role.visitor, Role.subscriber, Role.member, Role.admin, Role.confidential]


def _entity(visibility, is_confidential=False) -> Entity:
    return Entity.model_validate(entity_doc(visibility=visibility, is_confidential=is_confidential))


class TestCanView:
    def test_visitor_sees_public_only(self):
        assert can_view(_entity("public"), Role.visitor)
        assert not can_view(_entity("subscriber"), Role.visitor)
        assert not can_view(_entity("member"), Role.visitor)

    def test_subscriber_and_member_tiers(self):
        assert can_view(_entity("subscriber"), Role.subscriber)
        assert not can_view(_entity("member"), Role.subscriber)
        assert can_view(_entity("member"), Role.member)
        assert not can_view(_entity("confidential"), Role.member)

    def test_missing_visibility_counts_as_public(self):
        assert can_view(_entity(None), Role.visitor)

    def test_bypass_roles_see_everything(self):
        for role in (Role.admin, Role.confidential):
            assert can_view(_entity("member", is_confidential=True), role)
            assert can_view(_entity("confidential"), role)

    def test_accepts_role_strings(self):
        assert can_view(_entity("subscriber"), "Subscriber")


def test_visibility_monotonicity():
    """Anything a lower role can see, every higher role can see too."""
    hierarchy = [Role.visitor, Role.subscriber, Role.member]
    for vis, confidential in itertools.product(VISIBILITIES, (False, True)):
        entity = _entity(vis, confidential)
        for lower, higher in itertools.combinations(hierarchy, 2):
            if can_view(entity, lower):
                assert can_view(entity, higher), (vis, confidential, lower, higher)
        for low in hierarchy:
            if can_view(entity, low):
                assert can_view(entity, Role.admin)
                assert can_view(entity, Role.confidential)


@pytest.mark.parametrize("visibility", VISIBILITIES)
@pytest.mark.parametrize("role", [Role.visitor, Role.subscriber, Role.member])
def test_confidential_flag_overrides_visibility(visibility, role):
    assert not can_view(_entity(visibility, is_confidential=True), role)


def test_visibility_filter_for():
    assert visibility_filter_for(Role.visitor) == frozenset({"public"})
    assert visibility_filter_for(Role.member) == frozenset({"public", "subscriber", "member"})
    assert visibility_filter_for(Role.admin) is None
    assert visibility_filter_for(Role.confidential) is None


def test_unknown_role_is_rejected():
    with pytest.raises(EntityPermissionError) as exc:
        normalize_role("superuser")
    assert exc.value.status_code == 403
    with pytest.raises(EntityPermissionError):
        normalize_role(None)


def test_filter_visible_drops_and_keeps_order(capsys):
    keep_a = _entity("public")
    drop = _entity("member")
    keep_b = _entity("subscriber")
    secret = _entity("public", is_confidential=True)

    visible = filter_visible([keep_a, drop, keep_b, secret], Role.subscriber, "unit")

    assert [e.id for e in visible] == [keep_a.id, keep_b.id]
    assert "dropped 2 row(s) in unit" in capsys.readouterr().out


def test_role_hierarchy_helpers():
    assert [role_level(r) for r in ORDERED_ROLES] == [1, 2, 3, 4, 4]
    assert role_level("nobody") == 0
    assert role_at_least(Role.admin, Role.member)
    assert not role_at_least(Role.subscriber, Role.member)


def test_buckets():
    assert bucket_for_role(Role.visitor) == "public"
    assert bucket_for_role("member") == "member"
    assert ALL_BUCKETS == frozenset({"public", "subscriber", "member", "admin", "confidential"})
