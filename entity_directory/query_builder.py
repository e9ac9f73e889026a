"""
entity_directory/query_builder.py

Translates (role, filters, sort, pagination) into a backend-neutral
QueryDescriptor.

The visibility predicate comes from visibility.py; this module never
decides on its own which tiers a role may read. Descriptors are plain data:
store.py evaluates them in memory, sql_store.py compiles them to SQL, and
both use the same matches()/sort_value() semantics defined here.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from entity_directory.config import DEFAULT_PAGE_SIZE, IS_DEV, MAX_PAGE_SIZE
from entity_directory.errors import QueryError
from entity_directory.models import ARRAY_FIELDS, Visibility
from entity_directory.visibility import RoleLike, normalize_role, visibility_filter_for


ENTITIES_COLLECTION = "entities"

OPERATORS = frozenset({"==", "!=", ">=", "<=", ">", "<", "in", "is_null", "is_not_null"})

# Sortable field -> kind; the kind picks the sentinel used for missing values
SORTABLE_FIELDS: Dict[str, str] = {
    "date_added": "text",
    "last_updated": "text",
    "name": "text",
    "employee_count": "number",
    "founded_year": "number",
}
SORT_DIRECTIONS = frozenset({"asc", "desc"})
DEFAULT_SORT_FIELD = "date_added"
DEFAULT_SORT_DIRECTION = "desc"

# Values assumed when a stored document lacks the field
FIELD_DEFAULTS: Dict[str, Any] = {
    "visibility": Visibility.public.value,
    "is_confidential": False,
}

MEMBERSHIP_TIERS = frozenset({"all", "subscriber", "member", "confidential"})
VERIFICATION_STATUSES = frozenset({"all", "verified", "unverified", "premium"})


# ============================================================================
# Descriptor Types
# ============================================================================

@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any = None


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: str = DEFAULT_SORT_DIRECTION


@dataclass(frozen=True)
class Cursor:
    """Keyset position: sort value and id of the last row of the previous page."""
    value: Any
    id: str


@dataclass(frozen=True)
class Pagination:
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    start_after_id: Optional[str] = None
    cursor: Optional[Cursor] = None


@dataclass(frozen=True)
class QueryDescriptor:
    collection: str
    filters: List[Filter] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    pagination: Pagination = field(default_factory=Pagination)


@dataclass
class EntityFilters:
    """
    Caller-facing list filters.

    The first group is pushed down to the store. search, location, services
    and verification_status cannot be expressed as store predicates and are
    applied after the query by the directory service.
    """
    types: Optional[List[str]] = None
    employee_count_min: Optional[int] = None
    employee_count_max: Optional[int] = None
    founded_year_min: Optional[int] = None
    founded_year_max: Optional[int] = None
    has_certifications: Optional[bool] = None
    has_partnerships: Optional[bool] = None
    is_confidential: Optional[bool] = None
    membership_tier: Optional[str] = None

    search: Optional[str] = None
    location: Optional[str] = None
    services: Optional[List[str]] = None
    verification_status: Optional[str] = None

    def has_client_side(self) -> bool:
        return bool(
            self.search
            or self.location
            or self.services
            or (self.verification_status and self.verification_status != "all")
        )


@dataclass(frozen=True)
class SortSpec:
    field: str = DEFAULT_SORT_FIELD
    direction: str = DEFAULT_SORT_DIRECTION


# ============================================================================
# Builder
# ============================================================================

def base_filters(role: RoleLike) -> List[Filter]:
    """Visibility predicate for a role; empty for admin/confidential."""
    allowed = visibility_filter_for(role)
    if allowed is None:
        return []
    return [
        Filter("visibility", "in", sorted(allowed)),
        Filter("is_confidential", "==", False),
    ]


def _filter_predicates(filters: EntityFilters) -> List[Filter]:
    out: List[Filter] = []

    if filters.types:
        if len(filters.types) == 1:
            out.append(Filter("type", "==", filters.types[0]))
        else:
            out.append(Filter("type", "in", list(filters.types)))

    if filters.employee_count_min is not None:
        out.append(Filter("employee_count", ">=", filters.employee_count_min))
    if filters.employee_count_max is not None:
        out.append(Filter("employee_count", "<=", filters.employee_count_max))
    if filters.founded_year_min is not None:
        out.append(Filter("founded_year", ">=", filters.founded_year_min))
    if filters.founded_year_max is not None:
        out.append(Filter("founded_year", "<=", filters.founded_year_max))

    if filters.has_certifications is not None:
        out.append(Filter("certifications", "is_not_null" if filters.has_certifications else "is_null"))
    if filters.has_partnerships is not None:
        out.append(Filter("partnerships", "is_not_null" if filters.has_partnerships else "is_null"))

    if filters.is_confidential is not None:
        out.append(Filter("is_confidential", "==", filters.is_confidential))

    tier = filters.membership_tier
    if tier and tier != "all":
        if tier not in MEMBERSHIP_TIERS:
            raise QueryError(f"Unsupported membership tier: {tier}", operation="build_query")
        if tier == "confidential":
            out.append(Filter("is_confidential", "==", True))
        else:
            out.append(Filter("visibility", "==", tier))

    return out


def _order_by(sort: Optional[SortSpec]) -> List[OrderBy]:
    sort = sort or SortSpec()
    if sort.field not in SORTABLE_FIELDS:
        raise QueryError(
            f"Unsupported sort field: {sort.field}",
            operation="build_query",
            context={"sortable": sorted(SORTABLE_FIELDS)},
        )
    if sort.direction not in SORT_DIRECTIONS:
        raise QueryError(f"Unsupported sort direction: {sort.direction}", operation="build_query")
    return [OrderBy(sort.field, sort.direction)]


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_PAGE_SIZE
    return max(1, min(int(limit), MAX_PAGE_SIZE))


def build(
    role: RoleLike,
    filters: Optional[EntityFilters] = None,
    sort: Optional[SortSpec] = None,
    pagination: Optional[Pagination] = None,
) -> QueryDescriptor:
    """
    Build the store query for a role.

    Raises:
        EntityPermissionError: unknown role
        QueryError: unsupported sort field/direction or membership tier
    """
    r = normalize_role(role)
    predicates = base_filters(r)
    if filters is not None:
        predicates.extend(_filter_predicates(filters))

    page = pagination or Pagination()
    page = replace(page, limit=clamp_limit(page.limit), offset=max(0, page.offset or 0))

    descriptor = QueryDescriptor(
        collection=ENTITIES_COLLECTION,
        filters=predicates,
        order_by=_order_by(sort),
        pagination=page,
    )

    if IS_DEV:
        print(
            f"[DIRECTORY] Built query role={r.value} filters={len(predicates)} "
            f"order={descriptor.order_by[0].field}:{descriptor.order_by[0].direction} "
            f"limit={page.limit}"
        )
    return descriptor


def resolve_cursor(
    descriptor: QueryDescriptor,
    lookup: Callable[[str], Optional[Mapping[str, Any]]],
) -> QueryDescriptor:
    """
    Turn pagination.start_after_id into a keyset cursor.

    lookup(id) returns the stored document or None. An unknown id is logged
    and pagination continues from the start rather than failing the read.
    """
    page = descriptor.pagination
    if not page.start_after_id or page.cursor is not None:
        return descriptor

    doc = lookup(page.start_after_id)
    if doc is None:
        print(f"[DIRECTORY] start_after id not found, ignoring cursor: {page.start_after_id}")
        return replace(descriptor, pagination=replace(page, start_after_id=None))

    primary = descriptor.order_by[0] if descriptor.order_by else OrderBy(DEFAULT_SORT_FIELD)
    cursor = Cursor(value=sort_value(doc, primary.field), id=str(doc.get("id", page.start_after_id)))
    return replace(descriptor, pagination=replace(page, cursor=cursor))


# ============================================================================
# Evaluation Semantics (shared by every backend)
# ============================================================================

def get_field(doc: Mapping[str, Any], name: str) -> Any:
    value = doc.get(name)
    if value is None:
        return FIELD_DEFAULTS.get(name)
    return value


def _is_null(doc: Mapping[str, Any], name: str) -> bool:
    value = doc.get(name)
    if name in ARRAY_FIELDS:
        return not value
    return value is None


def _compare(value: Any, op: str, target: Any) -> bool:
    if value is None:
        return False
    try:
        if op == "==":
            return value == target
        if op == "!=":
            return value != target
        if op == ">=":
            return value >= target
        if op == "<=":
            return value <= target
        if op == ">":
            return value > target
        if op == "<":
            return value < target
    except TypeError:
        # Mixed types never match, same as a typed column comparison
        return False
    raise QueryError(f"Unsupported filter operator: {op}", operation="evaluate_filter")


def matches_filter(doc: Mapping[str, Any], flt: Filter) -> bool:
    if flt.op not in OPERATORS:
        raise QueryError(f"Unsupported filter operator: {flt.op}", operation="evaluate_filter")
    if flt.op == "is_null":
        return _is_null(doc, flt.field)
    if flt.op == "is_not_null":
        return not _is_null(doc, flt.field)

    value = get_field(doc, flt.field)
    if flt.op == "in":
        return value is not None and value in (flt.value or [])
    return _compare(value, flt.op, flt.value)


def matches(doc: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    return all(matches_filter(doc, f) for f in filters)


def sort_value(doc: Mapping[str, Any], field_name: str) -> Any:
    """Sort key with the missing-value sentinel (-1 for numbers, "" for text)."""
    value = doc.get(field_name)
    if value is None:
        return -1 if SORTABLE_FIELDS.get(field_name) == "number" else ""
    return value


def after_cursor(doc: Mapping[str, Any], order: OrderBy, cursor: Cursor) -> bool:
    """True when doc sorts strictly after the cursor in (sort value, id) order."""
    key = (sort_value(doc, order.field), str(doc.get("id", "")))
    mark = (cursor.value, cursor.id)
    if order.direction == "asc":
        return key > mark
    return key < mark


def apply_client_filters(entities: list, filters: Optional[EntityFilters]) -> list:
    """
    Refinements that run after the store query: text search, location,
    services and verification status.
    """
    if filters is None or not filters.has_client_side():
        return entities

    out = list(entities)

    if filters.search:
        term = filters.search.lower()

        def _searchable(e) -> str:
            parts = [e.name, e.short_description, e.full_description or "", e.location or ""]
            parts.extend(e.services)
            parts.extend(e.industries)
            parts.extend(e.tags)
            return " ".join(parts).lower()

        out = [e for e in out if term in _searchable(e)]

    if filters.location:
        loc = filters.location.lower()
        out = [e for e in out if e.location and loc in e.location.lower()]

    if filters.services:
        wanted = [s.lower() for s in filters.services]
        out = [
            e for e in out
            if any(w in s.lower() for s in e.services for w in wanted)
        ]

    status = filters.verification_status
    if status and status != "all":
        if status not in VERIFICATION_STATUSES:
            raise QueryError(f"Unsupported verification status: {status}", operation="client_filter")
        if status == "verified":
            out = [e for e in out if e.certifications]
        elif status == "unverified":
            out = [e for e in out if not e.certifications]
        else:
            out = [e for e in out if e.certifications and e.partnerships]

    return out
