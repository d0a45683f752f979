"""
Pytest configuration and fixtures for the Pepper chat service tests.

Provides shared fixtures for:
- Test settings (PEPPER_APP_ENV=test, fresh settings cache)
- Fake Redis client (fakeredis)
- In-memory Firestore double supporting the queries the stores issue
"""

import copy
import os

os.environ.setdefault("PEPPER_APP_ENV", "test")

import pytest


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Run every test in test mode with freshly loaded settings."""
    from libs.common.settings import get_settings

    monkeypatch.setenv("PEPPER_APP_ENV", "test")
    for name in ("PEPPER_CACHE_BACKEND", "PEPPER_COMPLETION_API_KEY", "DEEPSEEK_API_KEY", "PEPPER_REDIS_URL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def redis_client():
    """Provide a fakeredis client so no Redis server is needed."""
    from fakeredis import aioredis as fakeredis

    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushdb()
    await client.aclose()


# ==============================================================================
# FIRESTORE DOUBLE
# ==============================================================================

class FakeDocumentReference:
    def __init__(self, collection, doc_id):
        self._collection = collection
        self.id = doc_id

    async def get(self):
        return FakeSnapshot(self, self._collection.docs.get(self.id))

    async def set(self, data):
        self._collection.docs[self.id] = copy.deepcopy(data)

    async def update(self, data):
        if self.id not in self._collection.docs:
            raise KeyError(f"No document to update: {self.id}")
        self._collection.docs[self.id].update(copy.deepcopy(data))

    async def delete(self):
        self._collection.docs.pop(self.id, None)


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = copy.deepcopy(data)

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeQuery:
    def __init__(self, collection, filters=(), order=None, limit=None):
        self._collection = collection
        self._filters = filters
        self._order = order
        self._limit = limit

    def where(self, filter):
        return FakeQuery(self._collection, self._filters + (filter,), self._order, self._limit)

    def order_by(self, field, direction="ASCENDING"):
        return FakeQuery(self._collection, self._filters, (field, direction), self._limit)

    def limit(self, count):
        return FakeQuery(self._collection, self._filters, self._order, count)

    def _matches(self, data):
        for item in self._filters:
            value = data.get(item.field_path)
            if item.op_string == "==" and value != item.value:
                return False
            if item.op_string == "in" and value not in item.value:
                return False
        return True

    async def stream(self):
        rows = [(doc_id, data) for doc_id, data in self._collection.docs.items() if self._matches(data)]
        if self._order:
            field, direction = self._order
            rows.sort(key=lambda row: row[1].get(field), reverse=direction == "DESCENDING")
        if self._limit is not None:
            rows = rows[:self._limit]
        for doc_id, data in rows:
            yield FakeSnapshot(FakeDocumentReference(self._collection, doc_id), data)


class FakeCollection(FakeQuery):
    def __init__(self, name):
        self.name = name
        self.docs = {}
        super().__init__(self)

    def document(self, doc_id=None):
        if doc_id is None:
            doc_id = f"auto-{len(self.docs) + 1}"
        return FakeDocumentReference(self, doc_id)


class FakeBatch:
    def __init__(self):
        self._operations = []
        self.commits = 0

    def set(self, reference, data):
        self._operations.append(reference.set(data))

    def delete(self, reference):
        self._operations.append(reference.delete())

    async def commit(self):
        for operation in self._operations:
            await operation
        self._operations = []
        self.commits += 1


class FakeFirestore:
    """Enough of ``AsyncClient`` for the Pepper stores: equality/in filters, ordering, limits, batches."""

    def __init__(self):
        self._collections = {}

    def collection(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def batch(self):
        return FakeBatch()

    def seed(self, name, doc_id, data):
        self.collection(name).docs[doc_id] = copy.deepcopy(data)


@pytest.fixture
def firestore():
    return FakeFirestore()
