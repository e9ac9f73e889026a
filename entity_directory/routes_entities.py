"""
entity_directory/routes_entities.py

Entity read and write endpoints.

Security guarantees:
- Every endpoint except GET /entities/{id} requires a bearer token
- GET /entities/{id} degrades to visitor visibility without one
- Caller identity comes from the token ONLY, never from body or query
- Visibility and write rules are enforced in the services, not here
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response

from entity_directory.auth_context import optional_caller_identity, require_caller_identity
from entity_directory.config import DEFAULT_PAGE_SIZE, IS_DEV, MAX_PAGE_SIZE
from entity_directory.dependencies import get_directory_service, get_mutation_service
from entity_directory.directory_service import DirectoryService
from entity_directory.models import CallerIdentity, Entity
from entity_directory.mutation_service import MutationService
from entity_directory.query_builder import EntityFilters, SortSpec
from entity_directory.schemas import (
    BatchRequest,
    EntityBatchResponse,
    EntityListResponse,
    EntityWriteRequest,
)


router = APIRouter(
    prefix="/entities",
    tags=["entities"],
)

# sortBy accepts the wire names (dateAdded) as well as field names
SORT_FIELD_ALIASES = {
    "dateAdded": "date_added",
    "lastUpdated": "last_updated",
    "employeeCount": "employee_count",
    "foundedYear": "founded_year",
}


def _sort_spec(sort_by: Optional[str], sort_order: Optional[str]) -> Optional[SortSpec]:
    if sort_by is None and sort_order is None:
        return None
    field = SORT_FIELD_ALIASES.get(sort_by or "", sort_by or "date_added")
    return SortSpec(field=field, direction=(sort_order or "desc").lower())


@router.get("", response_model=EntityListResponse, response_model_by_alias=True)
def list_entities(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    start_after: Optional[str] = Query(None, alias="startAfter"),
    types: Optional[List[str]] = Query(None),
    employee_count_min: Optional[int] = Query(None, alias="employeeCountMin"),
    employee_count_max: Optional[int] = Query(None, alias="employeeCountMax"),
    founded_year_min: Optional[int] = Query(None, alias="foundedYearMin"),
    founded_year_max: Optional[int] = Query(None, alias="foundedYearMax"),
    has_certifications: Optional[bool] = Query(None, alias="hasCertifications"),
    has_partnerships: Optional[bool] = Query(None, alias="hasPartnerships"),
    membership_tier: Optional[str] = Query(None, alias="membershipTier"),
    search: Optional[str] = Query(None, max_length=200),
    location: Optional[str] = Query(None, max_length=200),
    services: Optional[List[str]] = Query(None),
    verification_status: Optional[str] = Query(None, alias="verificationStatus"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    with_total: bool = Query(False, alias="withTotal"),
    caller: CallerIdentity = Depends(require_caller_identity),
    directory: DirectoryService = Depends(get_directory_service),
) -> EntityListResponse:
    """
    One page of entities visible to the caller's role.

    Raises:
        AuthError(401): missing or invalid token
        QueryError(500): unsupported sort field or store failure
    """
    filters = EntityFilters(
        types=types,
        employee_count_min=employee_count_min,
        employee_count_max=employee_count_max,
        founded_year_min=founded_year_min,
        founded_year_max=founded_year_max,
        has_certifications=has_certifications,
        has_partnerships=has_partnerships,
        membership_tier=membership_tier,
        search=search,
        location=location,
        services=services,
        verification_status=verification_status,
    )
    # All-default filters read like an unfiltered listing (snapshot eligible)
    if filters == EntityFilters():
        filters = None

    page = directory.list_for_role(
        caller.role,
        limit=limit,
        start_after=start_after,
        filters=filters,
        sort=_sort_spec(sort_by, sort_order),
        with_total=with_total,
    )
    return EntityListResponse.from_page(page)


@router.get("/confidential", response_model=EntityBatchResponse, response_model_by_alias=True)
def list_confidential_entities(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    caller: CallerIdentity = Depends(require_caller_identity),
    directory: DirectoryService = Depends(get_directory_service),
) -> EntityBatchResponse:
    """Confidential entities (admin / confidential clearance only)."""
    return EntityBatchResponse(entities=directory.get_confidential(caller, limit=limit))


@router.get("/owned/{user_id}", response_model=EntityBatchResponse, response_model_by_alias=True)
def list_owned_entities(
    user_id: str = Path(..., min_length=1),
    caller: CallerIdentity = Depends(require_caller_identity),
    directory: DirectoryService = Depends(get_directory_service),
) -> EntityBatchResponse:
    """Entities created by user_id (that user or an admin only)."""
    return EntityBatchResponse(entities=directory.get_owned_by(user_id, caller))


@router.post("/batch", response_model=EntityBatchResponse, response_model_by_alias=True)
def get_entities_batch(
    request: BatchRequest,
    caller: CallerIdentity = Depends(require_caller_identity),
    directory: DirectoryService = Depends(get_directory_service),
) -> EntityBatchResponse:
    """Batch lookup in request order; invisible and unknown ids are omitted."""
    return EntityBatchResponse(entities=directory.get_by_ids(request.ids, caller.role))


@router.get("/{entity_id}", response_model=Entity, response_model_by_alias=True)
def get_entity(
    entity_id: str = Path(..., min_length=1),
    caller: Optional[CallerIdentity] = Depends(optional_caller_identity),
    directory: DirectoryService = Depends(get_directory_service),
) -> Entity:
    """
    Single entity. Anonymous callers see public entities only.

    Raises:
        NotFoundError(404): no such entity
        AccessDeniedError(403): entity exists but the caller lacks clearance
    """
    return directory.get_by_id(entity_id, caller)


@router.post("", response_model=Entity, response_model_by_alias=True, status_code=201)
def create_entity(
    request: EntityWriteRequest,
    caller: CallerIdentity = Depends(require_caller_identity),
    mutations: MutationService = Depends(get_mutation_service),
) -> Entity:
    """
    Create an entity owned by the caller.

    Raises:
        EntityPermissionError(403): role may not create (this kind of) entity
        ValidationError(400): missing or invalid fields
    """
    entity = mutations.create(request.to_changes(), caller)
    if IS_DEV:
        print(f"[MUTATION] POST /entities -> {entity.id}")
    return entity


@router.patch("/{entity_id}", response_model=Entity, response_model_by_alias=True)
def update_entity(
    request: EntityWriteRequest,
    entity_id: str = Path(..., min_length=1),
    caller: CallerIdentity = Depends(require_caller_identity),
    mutations: MutationService = Depends(get_mutation_service),
) -> Entity:
    """Partial update; only the fields present in the body change."""
    return mutations.update(entity_id, request.to_changes(), caller)


@router.delete("/{entity_id}", status_code=204)
def delete_entity(
    entity_id: str = Path(..., min_length=1),
    caller: CallerIdentity = Depends(require_caller_identity),
    mutations: MutationService = Depends(get_mutation_service),
) -> Response:
    """Hard delete."""
    mutations.delete(entity_id, caller)
    return Response(status_code=204)
