"""
entity_directory/mutation_service.py

Create, update and delete with role gates, validation and cache
invalidation.

Order for every write:
1. authenticate the caller
2. permission + validation (a rejected call neither writes nor invalidates)
3. store write
4. side-data (presence)
5. invalidate every cache bucket
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from entity_directory.authz import (
    assert_can_change_confidential,
    assert_can_create,
    assert_can_delete,
    assert_can_update,
    records_presence,
    require_caller,
)
from entity_directory.cache import CacheCoordinator
from entity_directory.config import IS_DEV
from entity_directory.directory_service import to_entities
from entity_directory.entity_types import is_valid_entity_type
from entity_directory.errors import NotFoundError, ValidationError
from entity_directory.models import ARRAY_FIELDS, CallerIdentity, Entity, Visibility, now_iso
from entity_directory.presence import PresenceRegistry
from entity_directory.query_builder import ENTITIES_COLLECTION
from entity_directory.store import EntityStore, unwrap
from entity_directory.visibility import ALL_BUCKETS, normalize_role


REQUIRED_FIELDS = ("name", "type", "short_description")
IMMUTABLE_FIELDS = ("id", "added_by", "date_added")
SERVER_FIELDS = ("id", "added_by", "date_added", "last_updated")
INTEGER_FIELDS = ("employee_count", "founded_year")
TEXT_FIELDS = ("full_description", "location")
VISIBILITY_VALUES = frozenset(v.value for v in Visibility)

ENTITY_FIELDS = frozenset(Entity.model_fields)
FIELD_BY_ALIAS = {to_camel(name): name for name in Entity.model_fields}


def normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Accept camelCase or snake_case keys; drop keys that are not entity fields."""
    out: Dict[str, Any] = {}
    for key, value in (data or {}).items():
        name = FIELD_BY_ALIAS.get(key, key)
        if name in ENTITY_FIELDS:
            out[name] = value
        elif IS_DEV:
            print(f"[MUTATION] Ignoring unknown field: {key}")
    return out


def _public_name(field: str) -> str:
    return to_camel(field)


def validate_fields(data: Mapping[str, Any], partial: bool) -> None:
    """
    Raises:
        ValidationError: listing every missing or invalid field (camelCase)
    """
    bad: List[str] = []

    for name in REQUIRED_FIELDS:
        if partial and name not in data:
            continue
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            bad.append(name)

    for name in ARRAY_FIELDS:
        value = data.get(name)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            bad.append(name)

    if "type" in data and "type" not in bad and not is_valid_entity_type(data.get("type")):
        bad.append("type")

    visibility = data.get("visibility")
    if visibility is not None and visibility not in VISIBILITY_VALUES:
        bad.append("visibility")

    confidential = data.get("is_confidential")
    if confidential is not None and not isinstance(confidential, bool):
        bad.append("is_confidential")

    for name in INTEGER_FIELDS:
        value = data.get(name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            bad.append(name)

    for name in TEXT_FIELDS:
        value = data.get(name)
        if value is not None and not isinstance(value, str):
            bad.append(name)

    if bad:
        raise ValidationError("Missing or invalid fields", fields=[_public_name(b) for b in bad])


def _to_entity(doc: Dict[str, Any]) -> Entity:
    try:
        return Entity.model_validate(doc)
    except PydanticValidationError as e:
        fields = sorted({_public_name(str(err["loc"][0])) for err in e.errors() if err.get("loc")})
        raise ValidationError("Missing or invalid fields", fields=fields)


class MutationService:
    def __init__(self, store: EntityStore, coordinator: CacheCoordinator, presence: PresenceRegistry):
        self.store = store
        self.coordinator = coordinator
        self.presence = presence

    def _load(self, entity_id: str, operation: str, role: str) -> Entity:
        doc = unwrap(self.store.get(ENTITIES_COLLECTION, entity_id), operation, role, entity_id=entity_id)
        if doc is None:
            raise NotFoundError(entity_id)
        return to_entities([doc], operation, role)[0]

    def _invalidate(self, operation: str, entity_id: str) -> None:
        self.coordinator.invalidate(ALL_BUCKETS)
        if IS_DEV:
            print(f"[MUTATION] {operation} {entity_id}: cache invalidated")

    def create(self, data: Mapping[str, Any], caller: Optional[CallerIdentity]) -> Entity:
        caller = require_caller(caller)
        role = normalize_role(caller.role)
        fields = normalize_keys(data)
        for name in SERVER_FIELDS:
            fields.pop(name, None)

        assert_can_create(caller, fields.get("is_confidential") is True)
        validate_fields(fields, partial=False)

        now = now_iso()
        doc: Dict[str, Any] = {
            **fields,
            "id": uuid.uuid4().hex,
            "added_by": caller.user_id,
            "visibility": fields.get("visibility") or Visibility.public.value,
            "is_confidential": bool(fields.get("is_confidential", False)),
            "date_added": now,
            "last_updated": now,
        }
        for name in ARRAY_FIELDS:
            if doc.get(name) is None:
                doc[name] = []
        entity = _to_entity(doc)

        unwrap(self.store.insert(ENTITIES_COLLECTION, entity.to_document()), "create_entity", role.value)
        print(f"[MUTATION] Created entity {entity.id} by user={caller.user_id} role={role.value}")

        if records_presence(caller):
            self.presence.record(entity.id)

        self._invalidate("create", entity.id)
        return entity

    def update(self, entity_id: str, partial: Mapping[str, Any], caller: Optional[CallerIdentity]) -> Entity:
        caller = require_caller(caller)
        role = normalize_role(caller.role)
        changes = normalize_keys(partial)
        current = self._load(entity_id, "update_entity", role.value)

        assert_can_update(current, caller)

        stored = current.to_document()
        immutable = [f for f in IMMUTABLE_FIELDS if f in changes and changes[f] != stored.get(f)]
        if immutable:
            raise ValidationError("Fields cannot be changed", fields=[_public_name(f) for f in immutable])
        for name in SERVER_FIELDS:
            changes.pop(name, None)

        # null clears the flag like false does
        if "is_confidential" in changes and bool(changes["is_confidential"]) != current.is_confidential:
            assert_can_change_confidential(caller)
        if "is_confidential" in changes and changes["is_confidential"] is None:
            changes["is_confidential"] = False
        validate_fields(changes, partial=True)

        changes["last_updated"] = now_iso()
        _to_entity({**stored, **changes})

        merged = unwrap(
            self.store.update(ENTITIES_COLLECTION, entity_id, changes),
            "update_entity",
            role.value,
            entity_id=entity_id,
        )
        if merged is None:
            # Deleted between the read and the write
            raise NotFoundError(entity_id)

        updated = to_entities([merged], "update_entity", role.value)[0]
        print(f"[MUTATION] Updated entity {entity_id} fields={sorted(k for k in changes if k != 'last_updated')}")
        self._invalidate("update", entity_id)
        return updated

    def delete(self, entity_id: str, caller: Optional[CallerIdentity]) -> None:
        caller = require_caller(caller)
        role = normalize_role(caller.role)
        current = self._load(entity_id, "delete_entity", role.value)

        assert_can_delete(current, caller)

        removed = unwrap(
            self.store.delete(ENTITIES_COLLECTION, entity_id),
            "delete_entity",
            role.value,
            entity_id=entity_id,
        )
        if not removed:
            raise NotFoundError(entity_id)
        print(f"[MUTATION] Deleted entity {entity_id} by user={caller.user_id}")

        self.presence.remove(entity_id)
        self._invalidate("delete", entity_id)
