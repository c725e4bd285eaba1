# tests/conftest.py
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from bson import ObjectId
from pydantic import BaseModel, Field
from pymongo import _csot
from pymongo.results import InsertOneResult, UpdateResult

from async_bom import Bom

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)

# --- Constants ---
TEST_MONGO_DB_NAME = "pytest_async_bom_db"
TEST_COLLECTION_NAME = "entities"
MONGO_URI = os.getenv("TEST_MONGO_URI", "mongodb://localhost:27017")


# --- Recording fakes of the Motor client surface ---


class FakeCursor:
    """Async cursor over a fixed list of documents, optionally failing midway."""

    def __init__(self, documents: List[Dict[str, Any]], fail_after: Optional[int] = None,
                 error: Optional[Exception] = None):
        self._documents = list(documents)
        self._fail_after = fail_after
        self._error = error
        self._position = 0
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        if self._fail_after is not None and self._position >= self._fail_after:
            raise self._error
        if self._position >= len(self._documents):
            raise StopAsyncIteration
        document = self._documents[self._position]
        self._position += 1
        return document

    async def close(self) -> None:
        self.closed = True


class FakeCollection:
    """
    Records every delegated call. Filters are not evaluated; reads return the
    stored documents, with skip/limit applied for find().
    """

    def __init__(self, database_name: str, name: str):
        self.database_name = database_name
        self.name = name
        self.documents: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.cursors: List[FakeCursor] = []
        self.errors: Dict[str, Exception] = {}
        # Deadline (seconds) active in the caller's pymongo.timeout scope, per call.
        self.deadlines: List[tuple] = []
        self.cursor_fail_after: Optional[int] = None
        self.cursor_error: Optional[Exception] = None

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))
        self.deadlines.append((name, _csot.get_timeout()))
        if name in self.errors:
            raise self.errors[name]

    def last_call(self, name: str) -> tuple:
        matching = [call for call in self.calls if call[0] == name]
        assert matching, f"{name} was never called"
        return matching[-1]

    async def insert_one(self, document: Dict[str, Any]) -> InsertOneResult:
        self._record("insert_one", document)
        stored = dict(document)
        stored.setdefault("_id", ObjectId())
        self.documents.append(stored)
        return InsertOneResult(stored["_id"], acknowledged=True)

    async def update_one(self, query_filter: Any, update: Any) -> UpdateResult:
        self._record("update_one", query_filter, update)
        matched = 1 if self.documents else 0
        return UpdateResult(
            {"n": matched, "nModified": matched, "ok": 1.0}, acknowledged=True
        )

    async def find_one(self, query_filter: Any) -> Optional[Dict[str, Any]]:
        self._record("find_one", query_filter)
        return self.documents[0] if self.documents else None

    async def find_one_and_delete(self, query_filter: Any) -> Optional[Dict[str, Any]]:
        self._record("find_one_and_delete", query_filter)
        if not self.documents:
            return None
        return self.documents.pop(0)

    async def count_documents(self, query_filter: Any) -> int:
        self._record("count_documents", query_filter)
        return len(self.documents)

    def find(self, query_filter: Any, skip: int = 0, limit: int = 0,
             sort: Any = None) -> FakeCursor:
        self._record("find", query_filter, skip=skip, limit=limit, sort=sort)
        documents = self.documents[skip:]
        if limit > 0:
            documents = documents[:limit]
        cursor = FakeCursor(documents, self.cursor_fail_after, self.cursor_error)
        self.cursors.append(cursor)
        return cursor


class FakeDatabase:
    def __init__(self, name: str):
        self.name = name
        self._collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(self.name, name)
        return self._collections[name]


class FakeClient:
    def __init__(self):
        self._databases: Dict[str, FakeDatabase] = {}

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self._databases:
            self._databases[name] = FakeDatabase(name)
        return self._databases[name]


# --- Fixtures ---


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def collection(client: FakeClient) -> FakeCollection:
    return client[TEST_MONGO_DB_NAME][TEST_COLLECTION_NAME]


@pytest.fixture
def bom(client: FakeClient) -> Bom:
    return Bom(client, TEST_MONGO_DB_NAME, TEST_COLLECTION_NAME)


@pytest.fixture
def seeded_collection(collection: FakeCollection) -> FakeCollection:
    """Collection holding 45 documents with ascending `value`."""
    collection.documents = [
        {"_id": ObjectId(), "name": f"Entity {i}", "value": i} for i in range(45)
    ]
    return collection


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_bom_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Test Entity ---


class ProfileData(BaseModel):
    """Nested structure for Entity profile."""

    emails: List[str] = Field(default_factory=list)
    phone: Optional[str] = None


class Entity(BaseModel):
    """A simple entity used as an insert payload."""

    name: str = "Test Entity"
    value: int = 100
    tags: List[str] = Field(default_factory=lambda: ["test", "sample"])
    active: bool = True
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    profile: ProfileData = Field(default_factory=ProfileData)


@pytest.fixture
def test_entity() -> Entity:
    return Entity()


@pytest.fixture
def captured_logger(caplog):
    """LoggerAdapter whose records land in caplog (the logger does not propagate)."""
    _logger = logging.getLogger("test_bom_captured")
    _logger.setLevel(logging.DEBUG)
    _logger.propagate = False
    _logger.addHandler(caplog.handler)
    yield logging.LoggerAdapter(_logger, {})
    _logger.removeHandler(caplog.handler)
