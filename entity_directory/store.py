"""
entity_directory/store.py

Persistence interface and the in-memory document backend.

Services only talk to EntityStore. Every call returns a StoreResult instead
of raising, so the service layer decides how a failed read maps to a
QueryError (unwrap).
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from entity_directory.config import IS_DEV
from entity_directory.errors import QueryError
from entity_directory.query_builder import (
    Filter,
    OrderBy,
    QueryDescriptor,
    after_cursor,
    matches,
    sort_value,
)


@dataclass
class StoreResult:
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "StoreResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "StoreResult":
        return cls(success=False, error=error)


def unwrap(result: StoreResult, operation: str, role: Optional[str] = None, **context: Any) -> Any:
    """
    Return result.data or raise QueryError with operation context.

    The full error goes to the server log; callers only ever see the
    generic public detail.
    """
    if result.success:
        return result.data
    err = QueryError(
        f"Store call failed: {operation}",
        result.error or "Unknown error",
        operation=operation,
        role=role,
        context=context,
    )
    print(f"[STORE] ERROR: {err.log_line()}")
    raise err


class EntityStore(ABC):
    """Generic document store: query/count plus single-document CRUD."""

    @abstractmethod
    def query(self, descriptor: QueryDescriptor) -> StoreResult:
        """data: list of documents in descriptor order, paginated."""

    @abstractmethod
    def count(self, collection: str, filters: Iterable[Filter]) -> StoreResult:
        """data: number of matching documents, ignoring pagination."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> StoreResult:
        """data: the document or None when absent."""

    @abstractmethod
    def insert(self, collection: str, doc: Dict[str, Any]) -> StoreResult:
        """data: the stored document. doc must carry an id."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> StoreResult:
        """data: the merged document, or None when absent."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> StoreResult:
        """data: True if a document was removed."""


def order_documents(docs: List[Dict[str, Any]], order_by: List[OrderBy]) -> List[Dict[str, Any]]:
    """Sort by the order_by fields, ties broken by id in the primary direction."""
    if not order_by:
        order_by = [OrderBy("date_added", "desc")]
    primary = order_by[0]
    out = sorted(docs, key=lambda d: str(d.get("id", "")), reverse=primary.direction == "desc")
    # Stable sorts applied last-key-first
    for order in reversed(order_by):
        out = sorted(out, key=lambda d, f=order.field: sort_value(d, f), reverse=order.direction == "desc")
    return out


class MemoryEntityStore(EntityStore):
    """
    Thread-safe in-process document store.

    Documents are deep-copied on the way in and out, so a reader can never
    observe a half-applied write or mutate stored state.
    """

    def __init__(self, documents: Optional[Dict[str, Iterable[Dict[str, Any]]]] = None):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for collection, docs in (documents or {}).items():
            for doc in docs:
                self.insert(collection, doc)

    def _bucket(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def query(self, descriptor: QueryDescriptor) -> StoreResult:
        try:
            with self._lock:
                docs = [
                    d for d in self._bucket(descriptor.collection).values()
                    if matches(d, descriptor.filters)
                ]
                docs = order_documents(docs, descriptor.order_by)

                page = descriptor.pagination
                if page.cursor is not None and descriptor.order_by:
                    docs = [d for d in docs if after_cursor(d, descriptor.order_by[0], page.cursor)]
                docs = docs[page.offset:page.offset + page.limit]
                return StoreResult.ok(copy.deepcopy(docs))
        except QueryError as e:
            return StoreResult.fail(e.message)

    def count(self, collection: str, filters: Iterable[Filter]) -> StoreResult:
        filters = list(filters)
        try:
            with self._lock:
                n = sum(1 for d in self._bucket(collection).values() if matches(d, filters))
            return StoreResult.ok(n)
        except QueryError as e:
            return StoreResult.fail(e.message)

    def get(self, collection: str, doc_id: str) -> StoreResult:
        with self._lock:
            doc = self._bucket(collection).get(doc_id)
            return StoreResult.ok(copy.deepcopy(doc))

    def insert(self, collection: str, doc: Dict[str, Any]) -> StoreResult:
        doc_id = doc.get("id")
        if not doc_id:
            return StoreResult.fail("Document id is required")
        with self._lock:
            bucket = self._bucket(collection)
            if doc_id in bucket:
                return StoreResult.fail(f"Document already exists: {doc_id}")
            bucket[doc_id] = copy.deepcopy(doc)
        if IS_DEV:
            print(f"[STORE] Inserted {collection}/{doc_id}")
        return StoreResult.ok(copy.deepcopy(doc))

    def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> StoreResult:
        with self._lock:
            bucket = self._bucket(collection)
            existing = bucket.get(doc_id)
            if existing is None:
                return StoreResult.ok(None)
            merged = {**existing, **copy.deepcopy(changes), "id": doc_id}
            bucket[doc_id] = merged
            return StoreResult.ok(copy.deepcopy(merged))

    def delete(self, collection: str, doc_id: str) -> StoreResult:
        with self._lock:
            removed = self._bucket(collection).pop(doc_id, None)
        if IS_DEV and removed is not None:
            print(f"[STORE] Deleted {collection}/{doc_id}")
        return StoreResult.ok(removed is not None)
