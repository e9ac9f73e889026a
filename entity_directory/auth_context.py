"""
entity_directory/auth_context.py

Bearer token -> CallerIdentity.

Tokens are minted by the external auth provider and carry two claims:
`sub` (user id) and `role`. This module only verifies them; it never looks
users up. It MUST NOT import entity_directory.main.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from entity_directory.config import ALGORITHM, IS_DEV, SECRET_KEY
from entity_directory.errors import AuthError, DirectoryError, EntityPermissionError
from entity_directory.models import CallerIdentity
from entity_directory.visibility import normalize_role

# auto_error=False: missing headers reach our own AuthError (401, not 403)
security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------
# JWT Token Helpers
# ---------------------------------------------------------
def create_access_token(user_id: str, role: str, expires_minutes: Optional[int] = 60) -> str:
    """Mint a token in the provider's format (tests and local dev)."""
    payload = {"sub": str(user_id), "role": role}
    if expires_minutes is not None:
        payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> dict:
    """
    Verify a JWT and return its payload.

    Raises:
        AuthError: expired or invalid token
    """
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")


def identity_from_token(token: str) -> CallerIdentity:
    payload = verify_token(token)
    user_id = payload.get("sub")
    if not user_id:
        print("[AUTH] Missing user_id in token payload")
        raise AuthError("Invalid token payload")

    try:
        role = normalize_role(payload.get("role"))
    except EntityPermissionError:
        raise AuthError("Invalid token role")
    ctx = CallerIdentity(user_id=str(user_id), role=role)
    if IS_DEV:
        print(f"[AUTH] Authenticated: user_id={ctx.user_id}, role={ctx.role.value}")
    return ctx


# ---------------------------------------------------------
# FastAPI Dependencies
# ---------------------------------------------------------
def require_caller_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CallerIdentity:
    """
    Identity for protected endpoints.

    Raises:
        AuthError(401): missing, expired or invalid token, or an unknown role
    """
    if credentials is None or not credentials.credentials:
        raise AuthError("Not authenticated")
    return identity_from_token(credentials.credentials)


def optional_caller_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[CallerIdentity]:
    """
    Identity for endpoints open to anonymous callers.

    A missing or unusable token degrades to None (visitor) instead of failing.
    """
    if credentials is None or not credentials.credentials:
        return None
    try:
        return identity_from_token(credentials.credentials)
    except DirectoryError as e:
        print(f"[AUTH] Ignoring unusable token on public endpoint: {e.message}")
        return None
