"""
entity_directory/authz.py

Role and ownership gates for entity writes.

Single source of truth for who may create, update or delete an entity.
Read visibility lives in visibility.py; this module only answers write
questions. Every gate raises instead of returning False so a service
cannot forget to check the result.

Role Hierarchy: visitor < subscriber < member < admin = confidential
"""

from __future__ import annotations

from typing import FrozenSet, Optional

from entity_directory.errors import AuthError, EntityPermissionError
from entity_directory.models import CallerIdentity, Entity, Role
from entity_directory.visibility import normalize_role


# ============================================================================
# Write Capabilities
# ============================================================================

CREATE_ROLES: FrozenSet[Role] = frozenset({Role.member, Role.admin, Role.confidential})
CONFIDENTIAL_WRITE_ROLES: FrozenSet[Role] = frozenset({Role.admin, Role.confidential})
PRESENCE_ROLES: FrozenSet[Role] = frozenset({Role.admin, Role.confidential})


def require_caller(caller: Optional[CallerIdentity]) -> CallerIdentity:
    """
    Raises:
        AuthError: no authenticated caller
    """
    if caller is None or not caller.user_id:
        raise AuthError("Unauthorized access")
    normalize_role(caller.role)
    return caller


def is_owner(entity: Entity, caller: CallerIdentity) -> bool:
    return entity.added_by == caller.user_id


def can_handle_confidential(caller: CallerIdentity) -> bool:
    return normalize_role(caller.role) in CONFIDENTIAL_WRITE_ROLES


def assert_can_create(caller: CallerIdentity, is_confidential: bool) -> None:
    role = normalize_role(caller.role)
    if role not in CREATE_ROLES:
        raise EntityPermissionError(f"Role {role.value} may not create entities")
    if is_confidential and role not in CONFIDENTIAL_WRITE_ROLES:
        raise EntityPermissionError("Only admin or confidential users may create confidential entities")


def assert_can_update(entity: Entity, caller: CallerIdentity) -> None:
    """
    Owner or admin; a confidential entity additionally needs admin or
    confidential clearance, same as delete.
    """
    role = normalize_role(caller.role)
    if not (is_owner(entity, caller) or role == Role.admin):
        raise EntityPermissionError("Only the owner or an admin may update this entity")
    if entity.is_confidential and role not in CONFIDENTIAL_WRITE_ROLES:
        raise EntityPermissionError("Updating a confidential entity requires admin or confidential clearance")


def assert_can_change_confidential(caller: CallerIdentity) -> None:
    """Setting or clearing the confidential flag."""
    if not can_handle_confidential(caller):
        raise EntityPermissionError("Only admin or confidential users may change the confidential flag")


def assert_can_delete(entity: Entity, caller: CallerIdentity) -> None:
    """
    Owner or admin; a confidential entity additionally needs admin or
    confidential clearance, even for its owner.
    """
    role = normalize_role(caller.role)
    if not (is_owner(entity, caller) or role == Role.admin):
        raise EntityPermissionError("Only the owner or an admin may delete this entity")
    if entity.is_confidential and role not in CONFIDENTIAL_WRITE_ROLES:
        raise EntityPermissionError("Deleting a confidential entity requires admin or confidential clearance")


def records_presence(caller: CallerIdentity) -> bool:
    return normalize_role(caller.role) in PRESENCE_ROLES
