"""
entity_directory/routes_search.py

Entity search endpoints.

Security guarantees:
- All endpoints require authentication (require_caller_identity)
- Candidates are read through the caller's visibility predicate and
  post-filtered before scoring
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from entity_directory.auth_context import require_caller_identity
from entity_directory.dependencies import get_search_service
from entity_directory.models import CallerIdentity
from entity_directory.schemas import SearchResponseModel, SuggestionsResponse
from entity_directory.search_service import DEFAULT_MAX_RESULTS, SearchService


router = APIRouter(
    prefix="/search",
    tags=["search"],
)


@router.get("/entities", response_model=SearchResponseModel, response_model_by_alias=True)
def search_entities(
    q: str = Query("", max_length=200, description="Free-text query (min 2 chars to match)"),
    types: Optional[List[str]] = Query(None),
    location: Optional[str] = Query(None, max_length=200),
    max_results: int = Query(DEFAULT_MAX_RESULTS, ge=1, le=100, alias="maxResults"),
    fuzzy: bool = Query(True),
    caller: CallerIdentity = Depends(require_caller_identity),
    search: SearchService = Depends(get_search_service),
) -> SearchResponseModel:
    """
    Relevance-ranked search over the entities the caller may see.

    Queries shorter than 2 characters return no results and generic
    suggestions rather than an error.
    """
    response = search.search(
        q,
        caller,
        types=types,
        location=location,
        max_results=max_results,
        fuzzy=fuzzy,
    )
    return SearchResponseModel.from_response(response)


@router.get("/suggestions", response_model=SuggestionsResponse)
def search_suggestions(
    q: str = Query("", max_length=100),
    caller: CallerIdentity = Depends(require_caller_identity),
    search: SearchService = Depends(get_search_service),
) -> SuggestionsResponse:
    """Popular searches containing the partial query (max 5)."""
    return SuggestionsResponse(suggestions=search.suggestions(q))
