# entity_directory/db.py
# Engine initialization and store backend selection
# PostgreSQL (DATABASE_URL) in staging/prod, SQLite file for local dev

from pathlib import Path as FsPath
from typing import Optional, Union
from urllib.parse import urlparse

from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Engine

from entity_directory.config import DATABASE_BACKEND, DATABASE_PATH, DATABASE_URL
from entity_directory.sql_store import SqlEntityStore
from entity_directory.store import EntityStore, MemoryEntityStore

# Global engine, created lazily
_engine: Union[Engine, None] = None


def init_engine(url: Optional[str] = None) -> Engine:
    """Create the SQLAlchemy engine for the configured database."""
    global _engine

    url = url or DATABASE_URL
    if url and url.startswith(("postgres://", "postgresql://")):
        # Parse and validate URL
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError(f"Invalid DATABASE_URL: {url[:20]}...")

        # SQLAlchemy only accepts the postgresql:// scheme
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]

        _engine = create_engine(
            url,
            poolclass=pool.QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,  # Verify connections before use
            echo=False,  # Set True for SQL debugging
        )
        print(f"[DB] Using PostgreSQL ({parsed.hostname})")
        return _engine

    _engine = create_sqlite_engine(url or None)
    print("[DB] Using SQLite (local dev mode)")
    return _engine


def create_sqlite_engine(url: Optional[str] = None) -> Engine:
    """
    SQLite engine for dev and tests.

    "sqlite://" (no path) gives a single shared in-memory database.
    """
    if url == "sqlite://":
        return create_engine(
            url,
            poolclass=pool.StaticPool,
            connect_args={"check_same_thread": False},
        )
    if not url:
        db_path = str(FsPath(__file__).resolve().parent / DATABASE_PATH)
        url = f"sqlite:///{db_path}"
    return create_engine(url, connect_args={"check_same_thread": False})


def get_engine() -> Engine:
    if _engine is None:
        return init_engine()
    return _engine


def create_store(backend: Optional[str] = None) -> EntityStore:
    """Build the EntityStore selected by DATABASE_BACKEND ("memory" or "sql")."""
    backend = (backend or DATABASE_BACKEND).lower()
    if backend == "memory":
        print("[DB] Using in-memory document store")
        return MemoryEntityStore()
    if backend == "sql":
        store = SqlEntityStore(get_engine())
        store.init_schema()
        return store
    raise ValueError(f"Unknown DATABASE_BACKEND: {backend}")

