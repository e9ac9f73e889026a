"""
entity_directory/test_mutations.py

Tests for create/update/delete: role gates, validation, defaults, presence
side-data (including failed presence writes) and cache invalidation.

Run:
    pytest entity_directory/test_mutations.py -v
"""

import pytest

from conftest import caller, entity_doc
from entity_directory.dependencies import build_services
from entity_directory.errors import (
    AuthError,
    EntityPermissionError,
    NotFoundError,
    ValidationError,
)
from entity_directory.mutation_service import normalize_keys, validate_fields
from entity_directory.presence import PRESENCE_COLLECTION
from entity_directory.query_builder import ENTITIES_COLLECTION
from entity_directory.store import MemoryEntityStore, StoreResult


VALID = {"name": "Acme Robotics", "type": "robotics", "shortDescription": "Industrial automation"}


def _invalidations(services) -> int:
    return services.coordinator.stats()["invalidations"]


def _stored(services, entity_id):
    return services.store.get(ENTITIES_COLLECTION, entity_id).data


class TestCreate:
    def test_member_creates_with_defaults(self, live_services):
        entity = live_services.mutations.create(VALID, caller("member", "user-7"))
        assert entity.added_by == "user-7"
        assert entity.visibility == "public"
        assert entity.is_confidential is False
        assert entity.tags == [] and entity.certifications == []
        assert entity.date_added == entity.last_updated
        assert entity.date_added.endswith("Z")
        assert _stored(live_services, entity.id)["name"] == "Acme Robotics"
        assert _invalidations(live_services) == 1

    def test_server_fields_in_payload_are_ignored(self, live_services):
        entity = live_services.mutations.create(
            {**VALID, "id": "chosen", "addedBy": "someone-else"},
            caller("member", "user-7"),
        )
        assert entity.id != "chosen"
        assert entity.added_by == "user-7"

    def test_subscriber_may_not_create(self, live_services):
        with pytest.raises(EntityPermissionError):
            live_services.mutations.create({**VALID, "isConfidential": False}, caller("subscriber"))
        assert live_services.directory.list_for_role("admin").entities == []
        assert _invalidations(live_services) == 0

    def test_permission_is_checked_before_validation(self, live_services):
        with pytest.raises(EntityPermissionError):
            live_services.mutations.create({}, caller("visitor"))

    def test_confidential_create_needs_clearance(self, live_services):
        with pytest.raises(EntityPermissionError):
            live_services.mutations.create({**VALID, "isConfidential": True}, caller("member"))
        entity = live_services.mutations.create({**VALID, "isConfidential": True}, caller("confidential"))
        assert entity.is_confidential is True

    def test_requires_caller(self, live_services):
        with pytest.raises(AuthError):
            live_services.mutations.create(VALID, None)

    def test_missing_fields_are_listed(self, live_services):
        with pytest.raises(ValidationError) as exc:
            live_services.mutations.create({"name": "  ", "type": "robotics"}, caller("member"))
        assert exc.value.fields == ["name", "shortDescription"]
        assert exc.value.public_detail == "Missing or invalid fields: name, shortDescription"
        assert _invalidations(live_services) == 0

    def test_unknown_type_and_visibility(self, live_services):
        with pytest.raises(ValidationError) as exc:
            live_services.mutations.create(
                {**VALID, "type": "spaceships", "visibility": "secret"}, caller("member"),
            )
        assert exc.value.fields == ["type", "visibility"]

    def test_presence_for_admin_and_confidential_only(self, live_services):
        registry = live_services.mutations.presence
        by_member = live_services.mutations.create(VALID, caller("member"))
        by_admin = live_services.mutations.create(VALID, caller("admin"))
        assert registry.get(by_member.id) is None
        presence = registry.get(by_admin.id)
        assert presence["online"] is True
        assert presence["entity_id"] == by_admin.id


class TestUpdate:
    def test_owner_updates(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1", name="Old"))
        updated = live_services.mutations.update(entity.id, {"name": "New"}, caller("member", "user-1"))
        assert updated.name == "New"
        assert updated.last_updated != entity.last_updated
        assert updated.date_added == entity.date_added
        assert _invalidations(live_services) == 1

    def test_admin_updates_any(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1"))
        updated = live_services.mutations.update(entity.id, {"location": "Nairobi"}, caller("admin", "boss"))
        assert updated.location == "Nairobi"

    def test_non_owner_is_rejected_without_side_effects(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1", name="Old"))
        before = _stored(live_services, entity.id)

        with pytest.raises(EntityPermissionError):
            live_services.mutations.update(entity.id, {"name": "Hijacked"}, caller("member", "user-2"))

        assert _stored(live_services, entity.id) == before
        assert _invalidations(live_services) == 0

    def test_immutable_fields(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1"))
        with pytest.raises(ValidationError) as exc:
            live_services.mutations.update(entity.id, {"addedBy": "user-2"}, caller("member", "user-1"))
        assert exc.value.fields == ["addedBy"]

        # Echoing the stored value back is not a change
        same = live_services.mutations.update(
            entity.id, {"id": entity.id, "name": "Renamed"}, caller("member", "user-1"),
        )
        assert same.name == "Renamed"

    def test_marking_confidential_needs_clearance(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1"))
        with pytest.raises(EntityPermissionError):
            live_services.mutations.update(entity.id, {"isConfidential": True}, caller("member", "user-1"))
        updated = live_services.mutations.update(entity.id, {"isConfidential": True}, caller("admin"))
        assert updated.is_confidential is True

    def test_confidential_entity_needs_clearance_even_for_owner(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1", name="Secret Co", is_confidential=True))
        before = _stored(live_services, entity.id)

        for change in ({"name": "Renamed"}, {"isConfidential": False}, {"isConfidential": None}):
            with pytest.raises(EntityPermissionError):
                live_services.mutations.update(entity.id, change, caller("member", "user-1"))

        assert _stored(live_services, entity.id) == before
        assert _invalidations(live_services) == 0
        assert live_services.directory.list_for_role("visitor").entities == []

    def test_clearing_confidential_needs_clearance(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1", is_confidential=True))
        updated = live_services.mutations.update(entity.id, {"isConfidential": None}, caller("confidential", "user-1"))
        assert updated.is_confidential is False
        assert _stored(live_services, entity.id)["is_confidential"] is False
        assert [e.id for e in live_services.directory.list_for_role("visitor").entities] == [entity.id]

    def test_partial_validation(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1"))
        with pytest.raises(ValidationError) as exc:
            live_services.mutations.update(entity.id, {"employeeCount": "many"}, caller("admin"))
        assert exc.value.fields == ["employeeCount"]

    def test_missing_entity(self, live_services):
        with pytest.raises(NotFoundError):
            live_services.mutations.update("nope", {"name": "x"}, caller("admin"))


class TestDelete:
    def test_owner_deletes(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1"))
        live_services.mutations.delete(entity.id, caller("member", "user-1"))
        assert _stored(live_services, entity.id) is None
        assert _invalidations(live_services) == 1

    def test_non_owner_rejected(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1"))
        with pytest.raises(EntityPermissionError):
            live_services.mutations.delete(entity.id, caller("member", "user-2"))
        assert _stored(live_services, entity.id) is not None

    def test_owner_of_confidential_entity_needs_clearance(self, live_services, seed):
        (entity,) = seed(live_services.store, entity_doc(added_by="user-1", is_confidential=True))
        with pytest.raises(EntityPermissionError):
            live_services.mutations.delete(entity.id, caller("member", "user-1"))
        live_services.mutations.delete(entity.id, caller("confidential", "user-1"))
        assert _stored(live_services, entity.id) is None

    def test_delete_removes_presence(self, live_services):
        entity = live_services.mutations.create(VALID, caller("admin", "boss"))
        live_services.mutations.delete(entity.id, caller("admin", "boss"))
        assert live_services.mutations.presence.get(entity.id) is None

    def test_missing_entity(self, live_services):
        with pytest.raises(NotFoundError):
            live_services.mutations.delete("nope", caller("admin"))


class FlakyPresenceStore(MemoryEntityStore):
    """Memory store whose presence writes fail, by result or by raising."""

    def __init__(self, mode: str):
        super().__init__()
        self.mode = mode

    def _presence_write(self, collection, write):
        if collection != PRESENCE_COLLECTION:
            return write()
        if self.mode == "raise":
            raise RuntimeError("presence backend unavailable")
        return StoreResult.fail("presence backend unavailable")

    def insert(self, collection, doc):
        return self._presence_write(collection, lambda: super(FlakyPresenceStore, self).insert(collection, doc))

    def delete(self, collection, doc_id):
        return self._presence_write(collection, lambda: super(FlakyPresenceStore, self).delete(collection, doc_id))


@pytest.mark.parametrize("mode", ["fail", "raise"])
class TestPresenceFailures:
    def test_create_still_succeeds_and_invalidates(self, mode, capsys):
        services = build_services(FlakyPresenceStore(mode), phase="live", use_mock_data=False)
        entity = services.mutations.create(VALID, caller("admin", "boss"))

        assert _stored(services, entity.id)["name"] == "Acme Robotics"
        assert services.mutations.presence.get(entity.id) is None
        assert _invalidations(services) == 1
        assert f"presence setup failed for entity {entity.id}" in capsys.readouterr().out

    def test_delete_still_removes_entity_and_invalidates(self, mode, seed, capsys):
        store = FlakyPresenceStore(mode)
        services = build_services(store, phase="live", use_mock_data=False)
        (entity,) = seed(store, entity_doc(added_by="boss"))

        services.mutations.delete(entity.id, caller("admin", "boss"))

        assert _stored(services, entity.id) is None
        assert _invalidations(services) == 1
        assert f"presence cleanup failed for entity {entity.id}" in capsys.readouterr().out


def test_normalize_keys_accepts_both_casings():
    out = normalize_keys({"shortDescription": "a", "employee_count": 3, "bogus": 1})
    assert out == {"short_description": "a", "employee_count": 3}


def test_validate_fields_rejects_non_string_arrays():
    with pytest.raises(ValidationError) as exc:
        validate_fields({"tags": ["ok", 3], "founded_year": True}, partial=True)
    assert exc.value.fields == ["tags", "foundedYear"]
