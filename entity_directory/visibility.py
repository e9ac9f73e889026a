"""
entity_directory/visibility.py

Five-tier visibility policy for directory reads.

Single source of truth for which role may see which entity. The same
allow-sets drive the predicate the query builder pushes down to the store
and the post-query guard (filter_visible), so the two paths always agree.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional, Union

from entity_directory.config import IS_DEV
from entity_directory.errors import EntityPermissionError
from entity_directory.models import Entity, Role, Visibility


RoleLike = Union[Role, str]


# ============================================================================
# Role Definitions
# ============================================================================

BYPASS_ROLES: FrozenSet[Role] = frozenset({Role.admin, Role.confidential})

ROLE_ALLOWED_VISIBILITY: Dict[Role, FrozenSet[str]] = {
    Role.visitor: frozenset({Visibility.public.value}),
    Role.subscriber: frozenset({Visibility.public.value, Visibility.subscriber.value}),
    Role.member: frozenset({
        Visibility.public.value,
        Visibility.subscriber.value,
        Visibility.member.value,
    }),
}

ROLE_HIERARCHY: Dict[Role, int] = {
    Role.visitor: 1,
    Role.subscriber: 2,
    Role.member: 3,
    Role.admin: 4,
    Role.confidential: 4,
}

# Cache bucket per role; visitors share the public bucket
BUCKET_PUBLIC = "public"
ROLE_BUCKETS: Dict[Role, str] = {
    Role.visitor: BUCKET_PUBLIC,
    Role.subscriber: "subscriber",
    Role.member: "member",
    Role.admin: "admin",
    Role.confidential: "confidential",
}
ALL_BUCKETS: FrozenSet[str] = frozenset(ROLE_BUCKETS.values())


def normalize_role(role: Optional[RoleLike]) -> Role:
    """
    Coerce a role value to the Role enum.

    Raises:
        EntityPermissionError: role is missing or not one of the five known roles
    """
    if isinstance(role, Role):
        return role
    try:
        return Role((role or "").strip().lower())
    except ValueError:
        print(f"[AUTH] Rejected unknown role: {role!r}")
        raise EntityPermissionError("Invalid or missing user role")


def is_bypass_role(role: RoleLike) -> bool:
    return normalize_role(role) in BYPASS_ROLES


def visibility_filter_for(role: RoleLike) -> Optional[FrozenSet[str]]:
    """
    Allowed visibility values for a role.

    Returns None for admin/confidential, meaning no restriction.
    """
    r = normalize_role(role)
    if is_bypass_role(r):
        return None
    return ROLE_ALLOWED_VISIBILITY[r]


def can_view(entity: Entity, role: RoleLike) -> bool:
    """
    Decide whether a role may see an entity. First matching rule wins:

    1. admin / confidential see everything
    2. confidential entities are hidden from everyone else
    3. otherwise the entity's visibility must be in the role's allow-set
       (missing visibility counts as public)
    """
    allowed = visibility_filter_for(role)
    if allowed is None:
        return True
    if entity.is_confidential:
        return False
    return (entity.visibility or Visibility.public.value) in allowed


def filter_visible(entities: Iterable[Entity], role: RoleLike, label: str = "") -> List[Entity]:
    """
    Guardrail: drop every entity the role may not see.

    Store queries already carry the visibility predicate; this is the second
    line. A non-zero drop count means the pushed-down predicate and the
    policy disagree, which is always logged.
    """
    r = normalize_role(role)
    visible: List[Entity] = []
    dropped: List[str] = []
    for entity in entities:
        if can_view(entity, r):
            visible.append(entity)
        else:
            dropped.append(entity.id)

    if dropped:
        print(
            f"[DIRECTORY] Visibility guard dropped {len(dropped)} row(s)"
            f"{f' in {label}' if label else ''} for role={r.value}"
        )
        if IS_DEV:
            print(f"[DIRECTORY][DEV] Dropped ids: {dropped[:3]}")

    return visible


# ============================================================================
# Role Hierarchy Helpers
# ============================================================================

def role_level(role: Optional[RoleLike]) -> int:
    """Numeric level for a role (higher = more privileged), 0 if unknown."""
    try:
        return ROLE_HIERARCHY[normalize_role(role)]
    except EntityPermissionError:
        return 0


def role_at_least(user_role: RoleLike, required_role: RoleLike) -> bool:
    return role_level(user_role) >= role_level(required_role)


def bucket_for_role(role: RoleLike) -> str:
    return ROLE_BUCKETS[normalize_role(role)]
