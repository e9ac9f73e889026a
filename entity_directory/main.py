"""
entity_directory/main.py

FastAPI application for the entity directory.

Run locally:
    uvicorn entity_directory.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

from entity_directory.config import CORS_ORIGINS, ENV, IS_DEV, IS_PROD
from entity_directory.db import create_store
from entity_directory.dependencies import ServiceContainer, build_services
from entity_directory.errors import DirectoryError, QueryError
from entity_directory.routes_entities import router as entities_router
from entity_directory.routes_search import router as search_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Services passed to create_app (tests) win over the configured backend
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(create_store())
        print(f"[DIRECTORY] Services ready (env={ENV})")
    yield


# ---------------------------------------------------------
# Error handlers
# ---------------------------------------------------------
async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
    if isinstance(exc, QueryError):
        # Full detail stays server side
        print(f"[DIRECTORY] ERROR {request.method} {request.url.path}: {exc.log_line()}")
    elif IS_DEV:
        print(f"[DIRECTORY] {type(exc).__name__} {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_detail})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query params map to 400 like service-level validation."""
    fields = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        if loc:
            name = to_camel(loc[0]) if "_" in loc[0] else loc[0]
            if name not in fields:
                fields.append(name)
    detail = "Missing or invalid fields"
    if fields:
        detail = f"{detail}: {', '.join(fields)}"
    return JSONResponse(status_code=400, content={"detail": detail})


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(title="Entity Directory", version="0.1", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(DirectoryError, directory_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        current: Optional[ServiceContainer] = app.state.services
        body: Dict[str, Any] = {"status": "ok", "env": ENV}
        if current is not None:
            body["cache"] = current.coordinator.stats()
        return body

    app.include_router(entities_router)
    app.include_router(search_router)
    return app


app = create_app()
