"""
entity_directory/presence.py

Presence side-data keyed by entity id.

Recorded when an admin or confidential user creates an entity and removed
when the entity is deleted. Nothing here propagates status in real time;
it is bookkeeping only. Failures are logged and never fail the write that
triggered them.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from entity_directory.config import IS_DEV
from entity_directory.models import now_iso
from entity_directory.store import EntityStore, StoreResult


PRESENCE_COLLECTION = "presence"


class PresenceRegistry:
    def __init__(self, store: EntityStore):
        self.store = store

    def _call(self, action: str, entity_id: str, write: Callable[[], StoreResult]) -> Optional[StoreResult]:
        """Run one store call; failures, raised or returned, are logged and yield None."""
        try:
            result = write()
        except Exception as e:
            print(f"[MUTATION] WARNING: presence {action} failed for entity {entity_id}: {type(e).__name__}: {e}")
            return None
        if not result.success:
            print(f"[MUTATION] WARNING: presence {action} failed for entity {entity_id}: {result.error}")
            return None
        return result

    def record(self, entity_id: str) -> bool:
        doc = {"id": entity_id, "entity_id": entity_id, "online": True, "last_online": now_iso()}
        result = self._call("setup", entity_id, lambda: self.store.insert(PRESENCE_COLLECTION, doc))
        if result is None:
            return False
        if IS_DEV:
            print(f"[MUTATION] Presence recorded for entity {entity_id}")
        return True

    def get(self, entity_id: str) -> Optional[Dict[str, Any]]:
        result = self.store.get(PRESENCE_COLLECTION, entity_id)
        return result.data if result.success else None

    def remove(self, entity_id: str) -> bool:
        result = self._call("cleanup", entity_id, lambda: self.store.delete(PRESENCE_COLLECTION, entity_id))
        return bool(result is not None and result.data)
