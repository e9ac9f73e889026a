"""
entity_directory/sql_store.py

Relational EntityStore over SQLAlchemy (SQLite in dev, PostgreSQL in prod).

Entities live in one table: the columns we filter and sort on are
denormalized out of the document, the full document is kept as JSON in
`data`. Other collections (presence side-data) go to a generic
`documents` table and are filtered in Python with the same semantics as
the in-memory store.

All SQL goes through text() with bound parameters; filter fields and sort
fields are whitelisted below, never interpolated from caller input.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from entity_directory.config import IS_DEV
from entity_directory.query_builder import (
    ENTITIES_COLLECTION,
    FIELD_DEFAULTS,
    OPERATORS,
    SORTABLE_FIELDS,
    Filter,
    QueryDescriptor,
    after_cursor,
    matches,
)
from entity_directory.store import EntityStore, StoreResult, order_documents


SCHEMA_SQL = [
    """
    CREATE TABLE IF NOT EXISTS entities (
        id TEXT PRIMARY KEY,
        added_by TEXT NOT NULL,
        type TEXT,
        name TEXT,
        visibility TEXT,
        is_confidential INTEGER NOT NULL DEFAULT 0,
        employee_count INTEGER,
        founded_year INTEGER,
        certification_count INTEGER NOT NULL DEFAULT 0,
        partnership_count INTEGER NOT NULL DEFAULT 0,
        date_added TEXT,
        last_updated TEXT,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_entities_date_added ON entities(date_added)",
    "CREATE INDEX IF NOT EXISTS idx_entities_added_by ON entities(added_by)",
    "CREATE INDEX IF NOT EXISTS idx_entities_visibility ON entities(visibility, is_confidential)",
    """
    CREATE TABLE IF NOT EXISTS documents (
        collection TEXT NOT NULL,
        id TEXT NOT NULL,
        data TEXT NOT NULL,
        PRIMARY KEY (collection, id)
    )
    """,
]

# Filterable field -> SQL expression
COLUMN_EXPR: Dict[str, str] = {
    "id": "id",
    "added_by": "added_by",
    "type": "type",
    "name": "name",
    "visibility": f"COALESCE(visibility, '{FIELD_DEFAULTS['visibility']}')",
    "is_confidential": "COALESCE(is_confidential, 0)",
    "employee_count": "employee_count",
    "founded_year": "founded_year",
    "date_added": "date_added",
    "last_updated": "last_updated",
}

# Array fields answerable through their denormalized counts
ARRAY_COUNT_COLUMNS: Dict[str, str] = {
    "certifications": "certification_count",
    "partnerships": "partnership_count",
}

SQL_OPS = {"==": "=", "!=": "!=", ">=": ">=", "<=": "<=", ">": ">", "<": "<"}

ENTITY_COLUMNS = (
    "id", "added_by", "type", "name", "visibility", "is_confidential",
    "employee_count", "founded_year", "certification_count", "partnership_count",
    "date_added", "last_updated", "data",
)


class UnsupportedFilter(ValueError):
    pass


def _bind(value: Any) -> Any:
    # Booleans are stored as 0/1
    if isinstance(value, bool):
        return int(value)
    return value


def _sort_expr(field: str) -> str:
    sentinel = "-1" if SORTABLE_FIELDS[field] == "number" else "''"
    return f"COALESCE({field}, {sentinel})"


def compile_filters(filters: Iterable[Filter]) -> Tuple[List[str], Dict[str, Any]]:
    """Compile filters to WHERE clauses plus bound parameters."""
    clauses: List[str] = []
    params: Dict[str, Any] = {}

    for i, flt in enumerate(filters):
        if flt.op not in OPERATORS:
            raise UnsupportedFilter(f"Unsupported filter operator: {flt.op}")

        if flt.field in ARRAY_COUNT_COLUMNS:
            col = f"COALESCE({ARRAY_COUNT_COLUMNS[flt.field]}, 0)"
            if flt.op == "is_null":
                clauses.append(f"{col} = 0")
            elif flt.op == "is_not_null":
                clauses.append(f"{col} > 0")
            else:
                raise UnsupportedFilter(f"Unsupported operator {flt.op} on array field {flt.field}")
            continue

        expr = COLUMN_EXPR.get(flt.field)
        if expr is None:
            raise UnsupportedFilter(f"Unsupported filter field: {flt.field}")

        if flt.op == "is_null":
            clauses.append(f"{flt.field} IS NULL")
        elif flt.op == "is_not_null":
            clauses.append(f"{flt.field} IS NOT NULL")
        elif flt.op == "in":
            values = list(flt.value or [])
            if not values:
                clauses.append("1 = 0")
                continue
            names = []
            for j, v in enumerate(values):
                name = f"p{i}_{j}"
                params[name] = _bind(v)
                names.append(f":{name}")
            clauses.append(f"{expr} IN ({', '.join(names)})")
        else:
            name = f"p{i}"
            params[name] = _bind(flt.value)
            clauses.append(f"{expr} {SQL_OPS[flt.op]} :{name}")

    return clauses, params


def _entity_row(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc["id"],
        "added_by": doc.get("added_by"),
        "type": doc.get("type"),
        "name": doc.get("name"),
        "visibility": doc.get("visibility"),
        "is_confidential": 1 if doc.get("is_confidential") else 0,
        "employee_count": doc.get("employee_count"),
        "founded_year": doc.get("founded_year"),
        "certification_count": len(doc.get("certifications") or []),
        "partnership_count": len(doc.get("partnerships") or []),
        "date_added": doc.get("date_added"),
        "last_updated": doc.get("last_updated"),
        "data": json.dumps(doc),
    }


class SqlEntityStore(EntityStore):
    def __init__(self, engine: Engine):
        self.engine = engine

    def init_schema(self) -> None:
        with self.engine.begin() as conn:
            for stmt in SCHEMA_SQL:
                conn.execute(text(stmt))
        if IS_DEV:
            print("[STORE] SQL schema ready")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def query(self, descriptor: QueryDescriptor) -> StoreResult:
        if descriptor.collection != ENTITIES_COLLECTION:
            return self._query_documents(descriptor)

        try:
            clauses, params = compile_filters(descriptor.filters)
        except UnsupportedFilter as e:
            return StoreResult.fail(str(e))

        order_sql = []
        for order in descriptor.order_by:
            if order.field not in SORTABLE_FIELDS:
                return StoreResult.fail(f"Unsupported sort field: {order.field}")
            order_sql.append(f"{_sort_expr(order.field)} {order.direction.upper()}")

        page = descriptor.pagination
        if descriptor.order_by:
            primary = descriptor.order_by[0]
            order_sql.append(f"id {primary.direction.upper()}")
            if page.cursor is not None:
                cmp = ">" if primary.direction == "asc" else "<"
                sort_expr = _sort_expr(primary.field)
                clauses.append(
                    f"({sort_expr} {cmp} :cursor_value OR "
                    f"({sort_expr} = :cursor_value AND id {cmp} :cursor_id))"
                )
                params["cursor_value"] = page.cursor.value
                params["cursor_id"] = page.cursor.id

        sql = "SELECT data FROM entities"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        if order_sql:
            sql += " ORDER BY " + ", ".join(order_sql)
        sql += " LIMIT :limit OFFSET :offset"
        params["limit"] = page.limit
        params["offset"] = page.offset

        try:
            with self.engine.connect() as conn:
                rows = conn.execute(text(sql), params).fetchall()
        except SQLAlchemyError as e:
            print(f"[STORE] ERROR: entity query failed: {type(e).__name__}: {e}")
            return StoreResult.fail(f"{type(e).__name__}: {e}")

        return StoreResult.ok([json.loads(row[0]) for row in rows])

    def count(self, collection: str, filters: Iterable[Filter]) -> StoreResult:
        filters = list(filters)
        if collection != ENTITIES_COLLECTION:
            result = self._load_documents(collection)
            if not result.success:
                return result
            return StoreResult.ok(sum(1 for d in result.data if matches(d, filters)))

        try:
            clauses, params = compile_filters(filters)
        except UnsupportedFilter as e:
            return StoreResult.fail(str(e))

        sql = "SELECT COUNT(*) FROM entities"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        try:
            with self.engine.connect() as conn:
                n = conn.execute(text(sql), params).scalar()
        except SQLAlchemyError as e:
            print(f"[STORE] ERROR: entity count failed: {type(e).__name__}: {e}")
            return StoreResult.fail(f"{type(e).__name__}: {e}")
        return StoreResult.ok(int(n or 0))

    def get(self, collection: str, doc_id: str) -> StoreResult:
        if collection == ENTITIES_COLLECTION:
            sql, params = "SELECT data FROM entities WHERE id = :id", {"id": doc_id}
        else:
            sql = "SELECT data FROM documents WHERE collection = :collection AND id = :id"
            params = {"collection": collection, "id": doc_id}
        try:
            with self.engine.connect() as conn:
                row = conn.execute(text(sql), params).fetchone()
        except SQLAlchemyError as e:
            return StoreResult.fail(f"{type(e).__name__}: {e}")
        return StoreResult.ok(json.loads(row[0]) if row else None)

    def _load_documents(self, collection: str) -> StoreResult:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    text("SELECT data FROM documents WHERE collection = :collection"),
                    {"collection": collection},
                ).fetchall()
        except SQLAlchemyError as e:
            return StoreResult.fail(f"{type(e).__name__}: {e}")
        return StoreResult.ok([json.loads(row[0]) for row in rows])

    def _query_documents(self, descriptor: QueryDescriptor) -> StoreResult:
        result = self._load_documents(descriptor.collection)
        if not result.success:
            return result
        docs = [d for d in result.data if matches(d, descriptor.filters)]
        docs = order_documents(docs, descriptor.order_by)
        page = descriptor.pagination
        if page.cursor is not None and descriptor.order_by:
            docs = [d for d in docs if after_cursor(d, descriptor.order_by[0], page.cursor)]
        return StoreResult.ok(docs[page.offset:page.offset + page.limit])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def insert(self, collection: str, doc: Dict[str, Any]) -> StoreResult:
        if not doc.get("id"):
            return StoreResult.fail("Document id is required")
        try:
            with self.engine.begin() as conn:
                self._write(conn, collection, doc, insert=True)
        except SQLAlchemyError as e:
            print(f"[STORE] ERROR: insert into {collection} failed: {type(e).__name__}: {e}")
            return StoreResult.fail(f"{type(e).__name__}: {e}")
        if IS_DEV:
            print(f"[STORE] Inserted {collection}/{doc['id']}")
        return StoreResult.ok(dict(doc))

    def update(self, collection: str, doc_id: str, changes: Dict[str, Any]) -> StoreResult:
        current = self.get(collection, doc_id)
        if not current.success:
            return current
        if current.data is None:
            return StoreResult.ok(None)

        merged = {**current.data, **changes, "id": doc_id}
        try:
            with self.engine.begin() as conn:
                self._write(conn, collection, merged, insert=False)
        except SQLAlchemyError as e:
            print(f"[STORE] ERROR: update of {collection}/{doc_id} failed: {type(e).__name__}: {e}")
            return StoreResult.fail(f"{type(e).__name__}: {e}")
        return StoreResult.ok(merged)

    def delete(self, collection: str, doc_id: str) -> StoreResult:
        if collection == ENTITIES_COLLECTION:
            sql, params = "DELETE FROM entities WHERE id = :id", {"id": doc_id}
        else:
            sql = "DELETE FROM documents WHERE collection = :collection AND id = :id"
            params = {"collection": collection, "id": doc_id}
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(sql), params)
        except SQLAlchemyError as e:
            print(f"[STORE] ERROR: delete of {collection}/{doc_id} failed: {type(e).__name__}: {e}")
            return StoreResult.fail(f"{type(e).__name__}: {e}")
        return StoreResult.ok(result.rowcount > 0)

    def _write(self, conn, collection: str, doc: Dict[str, Any], insert: bool) -> None:
        if collection == ENTITIES_COLLECTION:
            row = _entity_row(doc)
            if insert:
                cols = ", ".join(ENTITY_COLUMNS)
                values = ", ".join(f":{c}" for c in ENTITY_COLUMNS)
                conn.execute(text(f"INSERT INTO entities ({cols}) VALUES ({values})"), row)
            else:
                assignments = ", ".join(f"{c} = :{c}" for c in ENTITY_COLUMNS if c != "id")
                conn.execute(text(f"UPDATE entities SET {assignments} WHERE id = :id"), row)
            return

        params = {"collection": collection, "id": doc["id"], "data": json.dumps(doc)}
        if insert:
            conn.execute(
                text("INSERT INTO documents (collection, id, data) VALUES (:collection, :id, :data)"),
                params,
            )
        else:
            conn.execute(
                text("UPDATE documents SET data = :data WHERE collection = :collection AND id = :id"),
                params,
            )
