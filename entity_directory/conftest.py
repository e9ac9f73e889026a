"""
Shared pytest fixtures for the entity directory test suites.
"""

import itertools

import pytest

from entity_directory.db import create_sqlite_engine
from entity_directory.dependencies import build_services
from entity_directory.models import CallerIdentity, Entity, Role
from entity_directory.query_builder import ENTITIES_COLLECTION
from entity_directory.sql_store import SqlEntityStore
from entity_directory.store import MemoryEntityStore


_counter = itertools.count(1)


def entity_doc(**overrides) -> dict:
    """A valid stored entity document; later calls get later dateAdded stamps."""
    n = next(_counter)
    stamp = f"2024-03-01T00:{n // 60:02d}:{n % 60:02d}Z"
    doc = {
        "id": f"ent-{n:04d}",
        "added_by": "owner-1",
        "name": f"Entity {n}",
        "type": "manufacturing",
        "short_description": "General manufacturing",
        "visibility": "public",
        "is_confidential": False,
        "tags": [],
        "services": [],
        "industries": [],
        "certifications": [],
        "partnerships": [],
        "date_added": stamp,
        "last_updated": stamp,
    }
    doc.update(overrides)
    return doc


def caller(role: str, user_id: str = "user-1") -> CallerIdentity:
    return CallerIdentity(user_id=user_id, role=Role(role))


@pytest.fixture
def make_doc():
    return entity_doc


@pytest.fixture
def memory_store():
    return MemoryEntityStore()


@pytest.fixture
def sql_store():
    store = SqlEntityStore(create_sqlite_engine("sqlite://"))
    store.init_schema()
    return store


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Runs a test once per backend."""
    if request.param == "memory":
        return MemoryEntityStore()
    store = SqlEntityStore(create_sqlite_engine("sqlite://"))
    store.init_schema()
    return store


@pytest.fixture
def seed():
    """seed(store, *docs) inserts documents and returns them as entities."""
    def _seed(store, *docs):
        out = []
        for doc in docs:
            result = store.insert(ENTITIES_COLLECTION, doc)
            assert result.success, result.error
            out.append(Entity.model_validate(doc))
        return out
    return _seed


@pytest.fixture
def live_services(memory_store):
    return build_services(memory_store, phase="live", use_mock_data=False)


@pytest.fixture
def build_phase_services(memory_store):
    return build_services(memory_store, phase="build", use_mock_data=False)
