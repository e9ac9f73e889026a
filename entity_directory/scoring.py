"""
entity_directory/scoring.py

Relevance scoring for entity search.

Pure functions over the entity shape: no I/O, no clock, no randomness, so
the same (entity, query) pair always produces the same SearchResult.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from entity_directory.entity_types import get_entity_type_config
from entity_directory.models import Entity, SearchResult


# (label used in match reasons, weight)
FIELD_WEIGHTS: Tuple[Tuple[str, int], ...] = (
    ("name", 10),
    ("description", 5),
    ("full description", 3),
    ("location", 4),
    ("services", 6),
    ("industries", 7),
    ("tags", 4),
)

LOCATION_BONUS = 15.0
FUZZY_THRESHOLD = 0.7
MIN_QUERY_LENGTH = 2
MIN_FUZZY_LENGTH = 3
CERTIFICATION_BOOST = 1.2
PARTNERSHIP_BOOST = 1.1
MAX_REASONS = 3

# Ranking weights for reasons that do not come from a text field
LOCATION_REASON_WEIGHT = 15
INDUSTRY_REASON_WEIGHT = 2
BOOST_REASON_WEIGHT = 1

POPULAR_SEARCHES = (
    "software development",
    "manufacturing",
    "biotechnology",
    "AI machine learning",
    "cybersecurity",
    "clean energy",
    "robotics",
    "blockchain",
    "3D printing",
    "IoT development",
)


def normalize_query(query: Optional[str]) -> str:
    return (query or "").strip().lower()


def query_terms(query: str) -> List[str]:
    """Whitespace-split words longer than one character."""
    return [t for t in normalize_query(query).split() if len(t) > 1]


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity: (maxLen - distance) / maxLen."""
    if not a:
        return 1.0 if not b else 0.0
    if not b:
        return 0.0
    max_len = max(len(a), len(b))
    return (max_len - levenshtein(a, b)) / max_len


def fuzzy_match(term: str, text: str) -> float:
    """Best similarity between term and any word of text (short words skipped)."""
    if len(term) < MIN_FUZZY_LENGTH:
        return 0.0
    best = 0.0
    for word in text.split():
        if len(word) < MIN_FUZZY_LENGTH:
            continue
        best = max(best, similarity(term, word))
    return best


def _field_texts(entity: Entity) -> List[str]:
    return [
        entity.name or "",
        entity.short_description or "",
        entity.full_description or "",
        entity.location or "",
        " ".join(entity.services),
        " ".join(entity.industries),
        " ".join(entity.tags),
    ]


def industry_compatibility(entity: Entity, terms: Sequence[str]) -> float:
    """
    Domain fit between the query terms and the entity's type and services,
    in [0, 1].
    """
    config = get_entity_type_config(entity.type)
    keywords = [config.label.lower(), config.description.lower(), (entity.type or "").lower()]

    compatibility = 0.0
    for term in terms:
        for keyword in keywords:
            first_word = keyword.split(" ")[0]
            if term in keyword or (first_word and first_word in term):
                compatibility += 0.3

    for service in entity.services:
        service_text = service.lower()
        for term in terms:
            if term in service_text:
                compatibility += 0.2

    return min(compatibility, 1.0)


def score(
    entity: Entity,
    query: str,
    terms: Optional[Sequence[str]] = None,
    location: Optional[str] = None,
    fuzzy: bool = True,
    include_industries: bool = True,
) -> SearchResult:
    normalized = normalize_query(query)
    if len(normalized) < MIN_QUERY_LENGTH:
        return SearchResult(entity=entity, relevance_score=0.0)

    if terms is None:
        terms = query_terms(normalized)

    total = 0.0
    reasons: List[Tuple[int, str]] = []

    for (label, weight), raw in zip(FIELD_WEIGHTS, _field_texts(entity)):
        if not raw:
            continue
        text = raw.lower()
        kind = None

        if normalized in text:
            total += weight * 3
            kind = "Exact"

        for term in terms:
            if term in text:
                total += weight
                kind = kind or "Term"
            if fuzzy:
                sim = fuzzy_match(term, text)
                if sim > FUZZY_THRESHOLD:
                    total += weight * sim * 0.5
                    kind = kind or "Fuzzy"

        if kind:
            reasons.append((weight, f"{kind} match in {label}"))

    if location and entity.location and location.lower() in entity.location.lower():
        total += LOCATION_BONUS
        reasons.append((LOCATION_REASON_WEIGHT, "Location match"))

    compatibility = 0.0
    if include_industries:
        compatibility = industry_compatibility(entity, terms)
        total += compatibility * 2
        if compatibility > 0.5:
            reasons.append((INDUSTRY_REASON_WEIGHT, "High industry compatibility"))

    # Boosts only scale a score that already matched something
    if entity.certifications:
        total *= CERTIFICATION_BOOST
        if total > 0:
            reasons.append((BOOST_REASON_WEIGHT, "Verified entity"))
    if entity.partnerships:
        total *= PARTNERSHIP_BOOST
        if total > 0:
            reasons.append((BOOST_REASON_WEIGHT, "Has partnerships"))

    # sorted() is stable: equal weights keep field order
    ranked = [r for _, r in sorted(reasons, key=lambda item: -item[0])][:MAX_REASONS]

    return SearchResult(
        entity=entity,
        relevance_score=round(total, 2),
        match_reasons=ranked,
        industry_compatibility=round(compatibility, 2),
    )


def suggestions_for(result_count: int, types: Optional[Sequence[str]] = None) -> List[str]:
    """Advisory hints for empty or thin result sets."""
    out: List[str] = []
    if result_count == 0:
        out.append("Try broader search terms")
        out.append("Check spelling of search terms")
        if not types:
            out.append("Filter by specific industry types")
        else:
            out.append("Remove filters to see more results")
    elif result_count < 5:
        out.append("Try broader search terms for more results")
        if types:
            out.append("Remove industry filters for more results")
    return out[:MAX_REASONS]


SHORT_QUERY_SUGGESTIONS = [
    "Try searching for specific industry types",
    "Use location-based search",
    "Search for services or technologies",
]


def popular_suggestions(partial: str, limit: int = 5) -> List[str]:
    """Popular searches containing the partial query."""
    q = normalize_query(partial)
    return [s for s in POPULAR_SEARCHES if q in s.lower() and s.lower() != q][:limit]
