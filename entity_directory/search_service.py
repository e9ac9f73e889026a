"""
entity_directory/search_service.py

Relevance-ranked entity search.

Pipeline: validate query -> role-filtered candidate read (oversampled) ->
visibility guard + multi-type filter -> score -> rank -> truncate ->
suggestions.
"""

from __future__ import annotations

import time
from typing import List, Optional, Sequence

from entity_directory.authz import require_caller
from entity_directory.cache import CacheCoordinator
from entity_directory.config import IS_DEV, MAX_SEARCH_CANDIDATES
from entity_directory.directory_service import DirectoryService
from entity_directory.models import CallerIdentity, Entity, Role, SearchResponse, SearchResult
from entity_directory.query_builder import EntityFilters, Pagination, build
from entity_directory.scoring import (
    MIN_QUERY_LENGTH,
    SHORT_QUERY_SUGGESTIONS,
    normalize_query,
    popular_suggestions,
    query_terms,
    score,
    suggestions_for,
)
from entity_directory.visibility import bucket_for_role, filter_visible, normalize_role


DEFAULT_MAX_RESULTS = 50


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class SearchService:
    def __init__(self, directory: DirectoryService, coordinator: CacheCoordinator):
        self.directory = directory
        self.coordinator = coordinator

    def _candidates(self, role: Role, types: Optional[Sequence[str]], limit: int) -> List[Entity]:
        # Single type goes to the store; several types are filtered after the read
        filters = EntityFilters(types=list(types)) if types and len(types) == 1 else None
        descriptor = build(role, filters, pagination=Pagination(limit=limit))

        def _live() -> List[Entity]:
            return self.directory.run_query(descriptor, role, "search_candidates")

        entities = self.coordinator.read(bucket_for_role(role), limit, _live)
        entities = filter_visible(entities, role, "search")
        if types:
            wanted = set(types)
            entities = [e for e in entities if e.type in wanted]
        return entities

    def search(
        self,
        query: str,
        caller: Optional[CallerIdentity],
        types: Optional[Sequence[str]] = None,
        location: Optional[str] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        fuzzy: bool = True,
    ) -> SearchResponse:
        start = time.perf_counter()
        role = normalize_role(require_caller(caller).role)

        normalized = normalize_query(query)
        if len(normalized) < MIN_QUERY_LENGTH:
            return SearchResponse(
                results=[],
                total_results=0,
                search_time_ms=_elapsed_ms(start),
                suggestions=list(SHORT_QUERY_SUGGESTIONS),
            )

        max_results = max(1, max_results or DEFAULT_MAX_RESULTS)
        candidate_limit = min(max_results * 2, MAX_SEARCH_CANDIDATES)
        candidates = self._candidates(role, types, candidate_limit)

        terms = query_terms(normalized)
        scored: List[SearchResult] = []
        for entity in candidates:
            result = score(entity, normalized, terms, location=location, fuzzy=fuzzy)
            if result.relevance_score > 0:
                scored.append(result)

        # Stable: equal scores keep candidate order (newest first)
        scored.sort(key=lambda r: r.relevance_score, reverse=True)
        results = scored[:max_results]

        suggestions = suggestions_for(len(results), types)
        elapsed = _elapsed_ms(start)

        if IS_DEV:
            print(
                f"[SEARCH] query={normalized!r} role={role.value} candidates={len(candidates)} "
                f"results={len(results)} time={elapsed}ms"
            )

        return SearchResponse(
            results=results,
            total_results=len(results),
            search_time_ms=elapsed,
            suggestions=suggestions or None,
        )

    def suggestions(self, partial: str) -> List[str]:
        return popular_suggestions(partial)
