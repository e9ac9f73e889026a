"""
entity_directory/dependencies.py

Service container and reusable FastAPI dependencies.

main.py builds one ServiceContainer at startup and stores it on
app.state; routes reach the services through the dependencies below.
Tests either build their own container or override get_services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from entity_directory.cache import (
    CacheCoordinator,
    PhaseState,
    SnapshotCache,
    mock_entities,
    store_snapshot_source,
)
from entity_directory.config import USE_MOCK_DATA
from entity_directory.directory_service import DirectoryService
from entity_directory.mutation_service import MutationService
from entity_directory.presence import PresenceRegistry
from entity_directory.search_service import SearchService
from entity_directory.store import EntityStore


@dataclass
class ServiceContainer:
    store: EntityStore
    coordinator: CacheCoordinator
    directory: DirectoryService
    search: SearchService
    mutations: MutationService


def build_services(
    store: EntityStore,
    phase: Optional[str] = None,
    use_mock_data: Optional[bool] = None,
) -> ServiceContainer:
    """Wire every service around one store and one cache."""
    use_mock = USE_MOCK_DATA if use_mock_data is None else use_mock_data
    source = mock_entities if use_mock else store_snapshot_source(store)

    coordinator = CacheCoordinator(SnapshotCache(source), PhaseState(phase), use_mock_data=use_mock)
    directory = DirectoryService(store, coordinator)
    return ServiceContainer(
        store=store,
        coordinator=coordinator,
        directory=directory,
        search=SearchService(directory, coordinator),
        mutations=MutationService(store, coordinator, PresenceRegistry(store)),
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_directory_service(services: ServiceContainer = Depends(get_services)) -> DirectoryService:
    return services.directory


def get_search_service(services: ServiceContainer = Depends(get_services)) -> SearchService:
    return services.search


def get_mutation_service(services: ServiceContainer = Depends(get_services)) -> MutationService:
    return services.mutations
