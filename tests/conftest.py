"""
Shared fixtures: an in-memory driver standing in for MongoDB.
"""

import copy
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId

from civix_core.config import DatabaseConfig
from civix_core.context import create_context
from civix_core.driver import DatabaseDriver


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = docs

    def sort(self, key: str, direction: int) -> "FakeCursor":
        self._docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        return self._docs if length is None else self._docs[:length]


class FakeCollection:
    def __init__(self):
        self.docs: List[Dict[str, Any]] = []
        self.error: Optional[Exception] = None

    def _check(self):
        if self.error is not None:
            raise self.error

    def _matches(self, doc, query):
        return all(doc.get(k) == v for k, v in query.items())

    async def find_one(self, query):
        self._check()
        for doc in self.docs:
            if self._matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query):
        self._check()
        return FakeCursor([copy.deepcopy(d) for d in self.docs if self._matches(d, query)])

    async def insert_one(self, document):
        self._check()
        doc = copy.deepcopy(document)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def find_one_and_update(self, query, update, return_document=None):
        self._check()
        for doc in self.docs:
            if self._matches(doc, query):
                doc.update(update.get("$set", {}))
                for key in update.get("$unset", {}):
                    doc.pop(key, None)
                return copy.deepcopy(doc)
        return None


class FakeDriver(DatabaseDriver):
    """Driver double with scriptable connect and ping outcomes."""

    def __init__(self):
        super().__init__()
        self.ready = False
        self.connect_calls = 0
        self.connect_error: Optional[Exception] = None
        self.fail_times: Optional[int] = None   # None: fail every time
        self.ping_error: Optional[Exception] = None
        self.ping_calls = 0
        self.closed = False
        self.last_options: Dict[str, Any] = {}
        self.collections: Dict[str, FakeCollection] = {}

    @property
    def is_ready(self) -> bool:
        return self.ready

    async def connect(self, **options):
        self.connect_calls += 1
        self.last_options = options
        if self.connect_error is not None:
            if self.fail_times is None or self.connect_calls <= self.fail_times:
                raise self.connect_error
        self.ready = True

    async def ping(self):
        self.ping_calls += 1
        if self.ping_error is not None:
            raise self.ping_error

    async def close(self):
        self.closed = True
        self.ready = False

    def connection_details(self):
        return {"host": "localhost", "port": 27017, "name": "civix_test"}

    def collection(self, name):
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def config():
    return DatabaseConfig(
        uri="mongodb://localhost:27017/civix_test",
        database_name="civix_test",
        initial_delay_ms=1,
        retry_jitter_ms=0,
        socket_timeout_ms=1000,
        circuit_breaker_timeout_ms=50,
    )


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def context(config, driver):
    return create_context(config=config, driver=driver)
