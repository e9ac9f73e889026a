"""
entity_directory/schemas.py

Pydantic schemas for the entity directory HTTP surface.

Wire format is camelCase (shortDescription, isConfidential, lastVisibleId);
Python attributes stay snake_case through alias generation. Request
schemas only check shapes; business rules (roles, required fields, type
catalog) stay in the services so they hold for every caller.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from entity_directory.models import Entity, EntityPage, SearchResponse, SearchResult


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========================================================================
# ENTITY SCHEMAS
# ========================================================================

class EntityWriteRequest(CamelModel):
    """Body for POST /entities and PATCH /entities/{id}.

    Every field is optional at the schema level: create requires name,
    type and shortDescription, which MutationService checks and reports
    together with any other invalid field.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(None, max_length=200)
    type: Optional[str] = None
    short_description: Optional[str] = Field(None, max_length=500)
    full_description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=200)
    founded_year: Optional[int] = None
    employee_count: Optional[int] = Field(None, ge=0)
    visibility: Optional[str] = None
    is_confidential: Optional[bool] = None
    tags: Optional[List[str]] = None
    services: Optional[List[str]] = None
    industries: Optional[List[str]] = None
    certifications: Optional[List[str]] = None
    partnerships: Optional[List[str]] = None
    store: Optional[Dict[str, Any]] = None

    # Server-owned; accepted only so the service can reject attempts to change them
    id: Optional[str] = None
    added_by: Optional[str] = None
    date_added: Optional[str] = None

    @field_validator("name", "short_description", mode="before")
    @classmethod
    def trim_text(cls, v):
        """Trim whitespace from required text fields."""
        if isinstance(v, str):
            return v.strip()
        return v

    def to_changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent (snake_case)."""
        return self.model_dump(exclude_unset=True)


class BatchRequest(BaseModel):
    ids: List[str] = Field(default_factory=list, description="Entity ids; more than 100 are truncated")


class EntityListResponse(CamelModel):
    entities: List[Entity] = Field(default_factory=list)
    last_visible_id: Optional[str] = None
    total_count: Optional[int] = None

    @classmethod
    def from_page(cls, page: EntityPage) -> "EntityListResponse":
        return cls(entities=page.entities, last_visible_id=page.last_visible_id, total_count=page.total_count)


class EntityBatchResponse(CamelModel):
    entities: List[Entity] = Field(default_factory=list)


# ========================================================================
# SEARCH SCHEMAS
# ========================================================================

class SearchResultResponse(CamelModel):
    entity: Entity
    relevance_score: float
    match_reasons: List[str] = Field(default_factory=list)
    industry_compatibility: float = 0.0

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchResultResponse":
        return cls(
            entity=result.entity,
            relevance_score=result.relevance_score,
            match_reasons=result.match_reasons,
            industry_compatibility=result.industry_compatibility,
        )


class SearchResponseModel(CamelModel):
    results: List[SearchResultResponse] = Field(default_factory=list)
    total_results: int = 0
    search_time_ms: float = 0.0
    suggestions: Optional[List[str]] = None

    @classmethod
    def from_response(cls, response: SearchResponse) -> "SearchResponseModel":
        return cls(
            results=[SearchResultResponse.from_result(r) for r in response.results],
            total_results=response.total_results,
            search_time_ms=response.search_time_ms,
            suggestions=response.suggestions,
        )


class SuggestionsResponse(BaseModel):
    suggestions: List[str] = Field(default_factory=list)
