# tests/conftest.py
import copy
from typing import Any, Dict, List, Optional

import fakeredis
import pytest
from unittest.mock import MagicMock, AsyncMock

from app.db.field_store import FieldStore
from app.geo.coordinates import Coordinate, haversine_miles
from app.geo.coordinator import GeoSearchCoordinator
from app.geo.location_index import RedisLocationIndex
from app.services.field_service import FieldService


# --- Collaborateurs en mémoire ---

class InMemoryFieldStore(FieldStore):
    """Store principal en mémoire (dict id -> document)."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}

    async def insert(self, doc):
        self.docs[doc["id"]] = copy.deepcopy(doc)

    async def find_by_id(self, field_id) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(field_id)
        return copy.deepcopy(doc) if doc else None

    async def find_many(self, filters, limit) -> List[Dict[str, Any]]:
        found = [
            copy.deepcopy(doc) for _, doc in sorted(self.docs.items())
            if all(doc.get(key) == value for key, value in filters.items())
        ]
        return found[:limit]

    async def update(self, field_id, changes):
        if field_id not in self.docs:
            return None
        self.docs[field_id].update(copy.deepcopy(changes))
        return copy.deepcopy(self.docs[field_id])

    async def delete(self, field_id) -> int:
        return 1 if self.docs.pop(field_id, None) is not None else 0

    async def find_near(self, center, radius_miles, limit):
        hits = []
        for doc in self.docs.values():
            point = Coordinate.from_geojson(doc.get("location"))
            if point is None:
                continue
            dist = haversine_miles(center, point)
            if dist <= radius_miles:
                hits.append((dist, doc["id"], doc))
        hits.sort(key=lambda hit: (hit[0], hit[1]))
        return [copy.deepcopy(doc) for _, _, doc in hits[:limit]]


@pytest.fixture
def memory_store():
    return InMemoryFieldStore()


@pytest.fixture
def geo_index():
    """Vrai RedisLocationIndex sur un serveur fakeredis (mêmes limites GEO que Redis)."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return RedisLocationIndex(key="fields", client=client)


@pytest.fixture
def coordinator(memory_store, geo_index):
    """Coordinateur en mode index."""
    return GeoSearchCoordinator(memory_store, geo_index)


@pytest.fixture
def native_coordinator(memory_store):
    """Coordinateur en mode natif (pas d'index)."""
    return GeoSearchCoordinator(memory_store)


@pytest.fixture
def field_service(memory_store, coordinator):
    return FieldService(memory_store, coordinator)


@pytest.fixture
def native_field_service(memory_store, native_coordinator):
    return FieldService(memory_store, native_coordinator)


# --- Mocks des clients de bas niveau ---

@pytest.fixture
def mock_redis():
    """Fixture pour un mock du client redis.asyncio."""
    client = MagicMock()
    client.geoadd = AsyncMock(return_value=1)
    client.zrem = AsyncMock(return_value=1)
    client.hset = AsyncMock(return_value=1)
    client.hdel = AsyncMock(return_value=0)
    client.hgetall = AsyncMock(return_value={})
    client.geosearch = AsyncMock(return_value=[])
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def mock_db_connector():
    """Fixture pour un mock du connecteur PostgreSQL."""
    db_conn = MagicMock()
    db_conn.execute_query = AsyncMock(return_value=[])
    db_conn.fetchrow = AsyncMock(return_value=None)
    db_conn.execute = AsyncMock(return_value="DELETE 0")
    db_conn.ping = AsyncMock(return_value=True)
    db_conn.connect = AsyncMock()
    db_conn.close = AsyncMock()
    return db_conn


def make_field_doc(field_id: str, longitude: float, latitude: float, **attrs) -> Dict[str, Any]:
    doc = {
        "id": field_id,
        "owner": "owner-1",
        "name": f"Field {field_id}",
        "notes": "",
        "sports": ["soccer"],
        "images": [],
        "location": {"type": "Point", "coordinates": [longitude, latitude]},
        "city": "San Francisco",
        "state": "CA",
        "country": "US",
        "ownership": "public",
        "isPublic": True,
    }
    doc.update(attrs)
    return doc


@pytest.fixture
def make_doc():
    """Fabrique de documents de terrain."""
    return make_field_doc
