"""
entity_directory/errors.py

Error taxonomy for the entity directory engine.

Every error carries the HTTP status it maps to. main.py registers a single
exception handler for DirectoryError, so services raise these and never
HTTPException directly.

- AuthError: no or invalid caller identity
- EntityPermissionError: identity known, role/ownership insufficient
- ValidationError: malformed input payload
- QueryError: persistence call failed or returned malformed data
- NotFoundError: entity truly absent
- AccessDeniedError: entity exists but the caller lacks clearance
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class DirectoryError(Exception):
    """Base class for all engine errors."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def public_detail(self) -> str:
        """Message safe to show to the caller."""
        return self.message


class AuthError(DirectoryError):
    """Raised when no valid caller identity is available."""
    status_code = 401


class EntityPermissionError(DirectoryError):
    """Raised when the caller's role or ownership does not allow the operation."""
    status_code = 403


class AccessDeniedError(DirectoryError):
    """
    Raised when an entity exists but the caller may not see it.

    Kept distinct from NotFoundError: callers can tell "exists but locked"
    from "absent", the content itself never leaks.
    """
    status_code = 403

    def __init__(self, reason: str):
        super().__init__(f"Access denied: {reason}")
        self.reason = reason


class NotFoundError(DirectoryError):
    """Raised when an entity id does not exist."""
    status_code = 404

    def __init__(self, entity_id: str):
        super().__init__("Entity not found")
        self.entity_id = entity_id


class ValidationError(DirectoryError):
    """Raised when an input payload is missing fields or has invalid ones."""
    status_code = 400

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = list(fields or [])

    @property
    def public_detail(self) -> str:
        if self.fields:
            return f"{self.message}: {', '.join(self.fields)}"
        return self.message


class QueryError(DirectoryError):
    """
    Raised when a persistence call fails.

    Wraps the underlying cause with operation context. The caller only ever
    sees a generic message; the context is for server-side logs.
    """
    status_code = 500

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException | str] = None,
        *,
        operation: str = "",
        role: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.cause = cause
        self.operation = operation
        self.role = role
        self.context = dict(context or {})
        self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def public_detail(self) -> str:
        return "Database error"

    def log_line(self) -> str:
        """Full detail for server-side logging."""
        return (
            f"{self.message} (operation={self.operation or 'unknown'}, role={self.role}, "
            f"timestamp={self.timestamp}, cause={self.cause!r}, context={self.context})"
        )
