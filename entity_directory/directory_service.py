"""
entity_directory/directory_service.py

Role-aware entity reads: paginated listing, single and batch lookup,
owner listing and the confidential listing.

Every read goes store -> visibility guard. The store query already carries
the role's visibility predicate; filter_visible() runs anyway on every path
that serves a role-scoped result.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from entity_directory.authz import can_handle_confidential, require_caller
from entity_directory.cache import CacheCoordinator
from entity_directory.config import DEFAULT_PAGE_SIZE, IS_DEV, MAX_BATCH_IDS, MAX_PAGE_SIZE
from entity_directory.errors import (
    AccessDeniedError,
    EntityPermissionError,
    NotFoundError,
    QueryError,
)
from entity_directory.models import CallerIdentity, Entity, EntityPage, Role
from entity_directory.query_builder import (
    ENTITIES_COLLECTION,
    EntityFilters,
    Filter,
    OrderBy,
    Pagination,
    QueryDescriptor,
    SortSpec,
    apply_client_filters,
    build,
    resolve_cursor,
)
from entity_directory.store import EntityStore, unwrap
from entity_directory.visibility import (
    RoleLike,
    bucket_for_role,
    can_view,
    filter_visible,
    normalize_role,
)


def to_entities(docs: Sequence[Dict[str, Any]], operation: str, role: Optional[str] = None) -> List[Entity]:
    """Validate stored documents; a malformed document is a QueryError."""
    try:
        return [Entity.model_validate(d) for d in docs]
    except PydanticValidationError as e:
        err = QueryError("Malformed entity document", e, operation=operation, role=role)
        print(f"[DIRECTORY] ERROR: {err.log_line()}")
        raise err


class DirectoryService:
    def __init__(self, store: EntityStore, coordinator: CacheCoordinator):
        self.store = store
        self.coordinator = coordinator

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _lookup(self, entity_id: str) -> Optional[Dict[str, Any]]:
        return unwrap(self.store.get(ENTITIES_COLLECTION, entity_id), "cursor_lookup", entity_id=entity_id)

    def run_query(self, descriptor: QueryDescriptor, role: Role, operation: str) -> List[Entity]:
        descriptor = resolve_cursor(descriptor, self._lookup)
        docs = unwrap(self.store.query(descriptor), operation, role.value, limit=descriptor.pagination.limit)
        return to_entities(docs, operation, role.value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_for_role(
        self,
        role: RoleLike,
        limit: int = DEFAULT_PAGE_SIZE,
        start_after: Optional[str] = None,
        filters: Optional[EntityFilters] = None,
        sort: Optional[SortSpec] = None,
        with_total: bool = False,
    ) -> EntityPage:
        """
        One page of entities visible to role, newest first by default.

        last_visible_id is the last visible row the store returned, so
        client-side refinements that empty a page do not end pagination.
        """
        r = normalize_role(role)
        descriptor = build(r, filters, sort, Pagination(limit=limit, start_after_id=start_after))

        def _live() -> List[Entity]:
            return self.run_query(descriptor, r, "list_for_role")

        plain_read = start_after is None and filters is None and (sort is None or sort == SortSpec())
        if plain_read:
            entities = self.coordinator.read(bucket_for_role(r), descriptor.pagination.limit, _live)
        else:
            entities = _live()

        entities = filter_visible(entities, r, "list_for_role")
        last_visible_id = entities[-1].id if entities else None
        entities = apply_client_filters(entities, filters)

        total = None
        if with_total:
            total = unwrap(
                self.store.count(ENTITIES_COLLECTION, descriptor.filters),
                "count_entities",
                r.value,
            )

        if IS_DEV:
            print(f"[DIRECTORY] list_for_role role={r.value} returned={len(entities)} last={last_visible_id}")
        return EntityPage(entities=entities, last_visible_id=last_visible_id, total_count=total)

    def get_by_id(self, entity_id: str, caller: Optional[CallerIdentity] = None) -> Entity:
        """
        Single entity lookup. No caller means an anonymous visitor.

        Raises:
            NotFoundError: no entity with this id
            AccessDeniedError: the entity exists but the caller may not see it
        """
        role = normalize_role(caller.role) if caller is not None else Role.visitor
        doc = unwrap(self.store.get(ENTITIES_COLLECTION, entity_id), "get_by_id", role.value, entity_id=entity_id)
        if doc is None:
            raise NotFoundError(entity_id)

        entity = to_entities([doc], "get_by_id", role.value)[0]
        if not can_view(entity, role):
            if entity.is_confidential:
                reason = "confidential entity"
            else:
                reason = f"{entity.effective_visibility} access required"
            print(f"[DIRECTORY] Access denied: entity={entity_id} role={role.value}")
            raise AccessDeniedError(reason)
        return entity

    def get_by_ids(self, ids: Sequence[str], role: RoleLike) -> List[Entity]:
        """
        Batch lookup in request order. More than MAX_BATCH_IDS ids are
        truncated (logged, not an error); duplicates are collapsed.
        """
        r = normalize_role(role)
        ids = list(ids or [])
        if len(ids) > MAX_BATCH_IDS:
            print(f"[DIRECTORY] get_by_ids: {len(ids)} ids requested, truncating to {MAX_BATCH_IDS}")
            ids = ids[:MAX_BATCH_IDS]

        unique = list(dict.fromkeys(i for i in ids if i))
        if not unique:
            return []

        descriptor = build(r, pagination=Pagination(limit=len(unique)))
        descriptor = replace(descriptor, filters=descriptor.filters + [Filter("id", "in", unique)])
        by_id = {e.id: e for e in self.run_query(descriptor, r, "get_by_ids")}

        ordered = [by_id[i] for i in unique if i in by_id]
        return filter_visible(ordered, r, "get_by_ids")

    def get_owned_by(self, user_id: str, caller: Optional[CallerIdentity]) -> List[Entity]:
        """
        Entities created by user_id, newest first. Only that user or an
        admin may ask.
        """
        caller = require_caller(caller)
        role = normalize_role(caller.role)
        if caller.user_id != user_id and role != Role.admin:
            print(f"[DIRECTORY] Owner listing denied: caller={caller.user_id} target={user_id}")
            raise AccessDeniedError("only the owner or an admin may list these entities")

        descriptor = QueryDescriptor(
            collection=ENTITIES_COLLECTION,
            filters=[Filter("added_by", "==", user_id)],
            order_by=[OrderBy("date_added", "desc")],
            pagination=Pagination(limit=MAX_PAGE_SIZE),
        )
        return self.run_query(descriptor, role, "get_owned_by")

    def get_confidential(self, caller: Optional[CallerIdentity], limit: int = DEFAULT_PAGE_SIZE) -> List[Entity]:
        """Confidential entities, for admin and confidential-clearance users only."""
        caller = require_caller(caller)
        if not can_handle_confidential(caller):
            raise EntityPermissionError("Confidential entities require admin or confidential clearance")

        role = normalize_role(caller.role)
        descriptor = build(role, EntityFilters(is_confidential=True), pagination=Pagination(limit=limit))
        return self.run_query(descriptor, role, "get_confidential")
