# entity_directory/config.py
# Environment-aware configuration for the entity directory backend

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT verification (tokens are minted by the external auth provider)
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
ALGORITHM = "HS256"

# Database configuration
# DATABASE_URL takes precedence (managed Postgres in staging/prod)
# Falls back to SQLite for local development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "entity_directory.db")

# "memory" keeps documents in-process, "sql" goes through SQLAlchemy
DATABASE_BACKEND: Literal["memory", "sql"] = os.environ.get("DATABASE_BACKEND", "sql").lower()  # type: ignore

# Phase handling: "build" serves public snapshots, "live" serves real traffic
DIRECTORY_PHASE: Literal["build", "live"] = os.environ.get("DIRECTORY_PHASE", "live").lower()  # type: ignore
USE_MOCK_DATA = os.environ.get("USE_MOCK_DATA", "false").lower() in ("1", "true", "yes")

# Snapshot cache limits
SNAPSHOT_MAX_ITEMS = int(os.environ.get("SNAPSHOT_MAX_ITEMS", "50"))
SNAPSHOT_TTL_SECONDS = int(os.environ.get("SNAPSHOT_TTL_SECONDS", "900"))

# Read limits
DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "200"))
MAX_BATCH_IDS = int(os.environ.get("MAX_BATCH_IDS", "100"))
MAX_SEARCH_CANDIDATES = int(os.environ.get("MAX_SEARCH_CANDIDATES", "200"))

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

if IS_STAGING or IS_PROD:
    extra_origins = os.environ.get("CORS_ORIGINS", "")
    if extra_origins:
        CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

# Database type detection
IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Backend: {DATABASE_BACKEND} ({'PostgreSQL' if IS_POSTGRES else 'SQLite (local dev)'})")
print(f"[CONFIG] Phase: {DIRECTORY_PHASE}, mock data: {USE_MOCK_DATA}")
print(f"[CONFIG] Snapshot: max {SNAPSHOT_MAX_ITEMS} items, ttl {SNAPSHOT_TTL_SECONDS}s")
