"""
entity_directory/models.py

Core domain types: roles, visibility tiers, the Entity document, caller
identity and the result shapes returned by the services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# Enums
class Role(str, Enum):
    visitor = "visitor"
    subscriber = "subscriber"
    member = "member"
    admin = "admin"
    confidential = "confidential"


class Visibility(str, Enum):
    public = "public"
    subscriber = "subscriber"
    member = "member"
    confidential = "confidential"


ARRAY_FIELDS = ("tags", "services", "industries", "certifications", "partnerships")


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


# Models
class Entity(BaseModel):
    """
    A directory record for one organization.

    Attributes are snake_case; JSON in and out of the HTTP layer uses the
    camelCase aliases (addedBy, isConfidential, shortDescription, ...).
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str
    added_by: str
    name: str
    type: str
    short_description: str
    full_description: Optional[str] = None
    location: Optional[str] = None
    founded_year: Optional[int] = None
    employee_count: Optional[int] = None

    visibility: Optional[str] = Visibility.public.value
    is_confidential: bool = False

    tags: List[str] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list)
    industries: List[str] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)
    partnerships: List[str] = Field(default_factory=list)

    date_added: str
    last_updated: str

    # Store sub-document (activation flag, status, tier, metrics); opaque here
    store: Optional[Dict[str, Any]] = None

    @field_validator(*ARRAY_FIELDS, mode="before")
    @classmethod
    def none_to_empty_list(cls, v):
        """Legacy documents may carry null arrays."""
        if v is None:
            return []
        return v

    @field_validator("is_confidential", mode="before")
    @classmethod
    def none_to_false(cls, v):
        if v is None:
            return False
        return v

    def to_document(self) -> Dict[str, Any]:
        """Storage shape (snake_case keys)."""
        return self.model_dump()

    @property
    def effective_visibility(self) -> str:
        """The confidential flag always wins over the nominal tier."""
        if self.is_confidential:
            return Visibility.confidential.value
        return self.visibility or Visibility.public.value


class CallerIdentity(BaseModel):
    """Authenticated (user_id, role) pair supplied by the auth provider."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role


@dataclass
class SearchResult:
    entity: Entity
    relevance_score: float
    match_reasons: List[str] = field(default_factory=list)
    industry_compatibility: float = 0.0


@dataclass
class EntityPage:
    entities: List[Entity]
    last_visible_id: Optional[str]
    total_count: Optional[int] = None


@dataclass
class SearchResponse:
    results: List[SearchResult]
    total_results: int
    search_time_ms: float
    suggestions: Optional[List[str]] = None
