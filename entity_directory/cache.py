"""
entity_directory/cache.py

Phase-aware snapshot cache for directory reads.

Two phases:
- BUILD: pages are pre-rendered from bounded public snapshots
- LIVE: every read goes to the store

A snapshot only ever holds public, non-confidential entities, so serving it
to any role can only under-share. Writes call invalidate() after the store
write returns; a snapshot build that overlaps an invalidation is handed to
its caller but never stored.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from entity_directory.config import (
    DIRECTORY_PHASE,
    IS_DEV,
    SNAPSHOT_MAX_ITEMS,
    SNAPSHOT_TTL_SECONDS,
    USE_MOCK_DATA,
)
from entity_directory.entity_types import ENTITY_TYPE_VALUES
from entity_directory.models import Entity, Role, Visibility
from entity_directory.query_builder import Pagination, SortSpec, build
from entity_directory.store import EntityStore, unwrap
from entity_directory.visibility import ALL_BUCKETS


SnapshotSource = Callable[[int], Sequence[Entity]]


class Phase(str, Enum):
    build = "build"
    live = "live"


class PhaseState:
    """Current phase. The only legal transition is BUILD -> LIVE."""

    def __init__(self, phase: Optional[str] = None):
        self._lock = threading.Lock()
        self._phase = Phase((phase or DIRECTORY_PHASE).lower())

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_build(self) -> bool:
        return self._phase == Phase.build

    def go_live(self) -> None:
        with self._lock:
            if self._phase != Phase.live:
                print("[CACHE] Phase BUILD -> LIVE")
            self._phase = Phase.live

    def set_phase(self, phase: str) -> None:
        target = Phase(phase.lower())
        with self._lock:
            if self._phase == Phase.live and target == Phase.build:
                raise RuntimeError("Cannot return to BUILD phase once LIVE")
            self._phase = target


def is_snapshot_safe(entity: Entity) -> bool:
    return entity.effective_visibility == Visibility.public.value


# ============================================================================
# Snapshot Sources
# ============================================================================

_MOCK_TYPES = sorted(ENTITY_TYPE_VALUES)
_MOCK_CITIES = ["Lagos", "Nairobi", "Berlin", "Austin", "Tel Aviv", "Singapore", "Toronto"]


def mock_entities(limit: int) -> List[Entity]:
    """Deterministic public entities for build-time rendering (at most 20)."""
    out: List[Entity] = []
    for i in range(min(limit, 20)):
        # Newest first, one day apart
        stamp = f"2024-01-{28 - i:02d}T00:00:00Z"
        out.append(Entity(
            id=f"mock-entity-{i}",
            added_by="system",
            name=f"Mock Entity {i}",
            type=_MOCK_TYPES[i % len(_MOCK_TYPES)],
            short_description=f"Mock entity {i} for build-time caching",
            location=_MOCK_CITIES[i % len(_MOCK_CITIES)],
            employee_count=10 * (i + 1),
            founded_year=2000 + i,
            visibility=Visibility.public.value,
            is_confidential=False,
            date_added=stamp,
            last_updated=stamp,
        ))
    return out


def store_snapshot_source(store: EntityStore) -> SnapshotSource:
    """Snapshot source backed by the store: public rows, newest first."""
    def _load(limit: int) -> List[Entity]:
        descriptor = build(Role.visitor, sort=SortSpec(), pagination=Pagination(limit=limit))
        docs = unwrap(store.query(descriptor), "snapshot_build", Role.visitor.value)
        return [Entity.model_validate(d) for d in docs]
    return _load


# ============================================================================
# Snapshot Cache
# ============================================================================

@dataclass(frozen=True)
class _Snapshot:
    entities: Tuple[Entity, ...]
    expires_at: float


class SnapshotCache:
    def __init__(
        self,
        source: SnapshotSource,
        max_items: int = SNAPSHOT_MAX_ITEMS,
        ttl_seconds: float = SNAPSHOT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshots: Dict[str, _Snapshot] = {}
        self._generation = 0
        self._stats = {"hits": 0, "misses": 0, "invalidations": 0, "discarded_builds": 0}

    def get_cached_entities(self, bucket: str, limit: int) -> Tuple[Entity, ...]:
        """
        Up to min(limit, max_items) public entities for a bucket.

        Serves the stored snapshot when fresh, otherwise builds one from the
        source. Source errors propagate to the caller.
        """
        limit = max(0, min(limit, self.max_items))
        now = self._clock()

        with self._lock:
            snap = self._snapshots.get(bucket)
            generation = self._generation
            if snap is not None and snap.expires_at > now:
                self._stats["hits"] += 1
                return tuple(e for e in snap.entities if is_snapshot_safe(e))[:limit]
            self._stats["misses"] += 1

        built = tuple(e for e in self._source(self.max_items) if is_snapshot_safe(e))[:self.max_items]

        with self._lock:
            if self._generation == generation:
                self._snapshots[bucket] = _Snapshot(built, self._clock() + self.ttl_seconds)
                if IS_DEV:
                    print(f"[CACHE] Stored snapshot bucket={bucket} items={len(built)}")
            else:
                # An invalidation ran while we were building
                self._stats["discarded_builds"] += 1
                print(f"[CACHE] Discarded stale snapshot build for bucket={bucket}")

        return built[:limit]

    def invalidate(self, bucket_keys: Iterable[str]) -> None:
        keys = list(bucket_keys)
        with self._lock:
            for key in keys:
                self._snapshots.pop(key, None)
            self._generation += 1
            self._stats["invalidations"] += 1
        if IS_DEV:
            print(f"[CACHE] Invalidated buckets: {sorted(keys)}")

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {**self._stats, "buckets": len(self._snapshots), "generation": self._generation}


class CacheCoordinator:
    """Decides per read whether the snapshot or the live store answers."""

    def __init__(self, cache: SnapshotCache, phase: Optional[PhaseState] = None, use_mock_data: bool = USE_MOCK_DATA):
        self.cache = cache
        self.phase = phase or PhaseState()
        self.use_mock_data = use_mock_data

    def use_snapshot(self) -> bool:
        return self.phase.is_build or self.use_mock_data

    def read(self, bucket: str, limit: int, live: Callable[[], List[Entity]]) -> List[Entity]:
        """
        Snapshot read with fall-through: a failed or empty snapshot read
        goes to the live query instead.
        """
        if self.use_snapshot():
            try:
                snapshot = self.cache.get_cached_entities(bucket, limit)
            except Exception as e:
                print(f"[CACHE] WARNING: snapshot read failed for bucket={bucket}: {type(e).__name__}: {e}")
                snapshot = ()
            if snapshot:
                return list(snapshot)
            if IS_DEV:
                print(f"[CACHE] Empty snapshot for bucket={bucket}, using live query")
        return live()

    def invalidate(self, bucket_keys: Iterable[str] = ALL_BUCKETS) -> None:
        self.cache.invalidate(bucket_keys)

    def stats(self) -> Dict[str, object]:
        return {"phase": self.phase.phase.value, "use_snapshot": self.use_snapshot(), **self.cache.stats()}
