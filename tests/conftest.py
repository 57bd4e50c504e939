import copy
from collections import deque
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient
from google.api_core.exceptions import NotFound
from google.cloud.firestore_v1.transforms import Increment

from roots_api import llm, storage
from roots_api.config import AUTH_COOKIE_NAME
from roots_api.main import app


def _apply(current: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(current)
    for key, value in fields.items():
        if isinstance(value, Increment):
            merged[key] = (merged.get(key) or 0) + value.value
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class FakeSnapshot:
    def __init__(self, doc_id: str, data: Optional[dict[str, Any]]):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocument:
    def __init__(self, collection: "FakeCollection", doc_id: str):
        self._collection = collection
        self.id = doc_id

    @property
    def _docs(self):
        return self._collection.docs

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self.id, self._docs.get(self.id))

    def set(self, data: dict[str, Any], merge: bool = False) -> None:
        base = self._docs.get(self.id, {}) if merge else {}
        self._docs[self.id] = _apply(base, data)

    def update(self, fields: dict[str, Any]) -> None:
        if self.id not in self._docs:
            raise NotFound(f"No document to update: {self.id}")
        self._docs[self.id] = _apply(self._docs[self.id], fields)

    def delete(self) -> None:
        self._docs.pop(self.id, None)


class FakeQuery:
    def __init__(self, collection: "FakeCollection", filters=(), limit: Optional[int] = None):
        self._collection = collection
        self._filters = list(filters)
        self._limit = limit

    def where(self, filter):
        assert filter.op_string == "=="
        return FakeQuery(self._collection, self._filters + [(filter.field_path, filter.value)], self._limit)

    def limit(self, count: int):
        return FakeQuery(self._collection, self._filters, count)

    def stream(self):
        matches = [
            FakeSnapshot(doc_id, data)
            for doc_id, data in self._collection.docs.items()
            if all(data.get(field) == value for field, value in self._filters)
        ]
        return iter(matches[: self._limit] if self._limit is not None else matches)


class FakeCollection(FakeQuery):
    def __init__(self, name: str):
        self.name = name
        self.docs: dict[str, dict[str, Any]] = {}
        super().__init__(self)

    def document(self, doc_id: str) -> FakeDocument:
        return FakeDocument(self, doc_id)


class FakeFirestore:
    """In-memory stand-in for ``firestore.Client`` covering what storage uses."""

    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}

    def collection(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def docs(self, name: str) -> dict[str, dict[str, Any]]:
        return self.collection(name).docs


class FakeGemini:
    """Replaces ``llm.generate_text``; queued items are returned or raised in order."""

    def __init__(self):
        self.replies: deque = deque()
        self.calls: list[dict[str, Any]] = []

    def queue(self, *items):
        self.replies.extend(items)

    def __call__(self, contents, **kwargs):
        self.calls.append({"contents": contents, **kwargs})
        if not self.replies:
            raise AssertionError("Unexpected Gemini call")
        item = self.replies.popleft()
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def store(monkeypatch):
    fake = FakeFirestore()
    monkeypatch.setattr(storage, "_get_client", lambda: fake)
    return fake


@pytest.fixture
def gemini(monkeypatch):
    fake = FakeGemini()
    monkeypatch.setattr(llm, "generate_text", fake)
    return fake


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_profile(store):
    def _make(doc_id: str = "user-a", **fields):
        profile = {
            "email": f"{doc_id}@example.com",
            "name": doc_id.replace("-", " ").title(),
            "role": "client",
            "points": 0,
            "createdAt": "2026-01-01T00:00:00+00:00",
        }
        profile.update(fields)
        store.docs(storage.PROFILES)[doc_id] = profile
        return doc_id

    return _make


@pytest.fixture
def login(client):
    def _login(user_id: str) -> TestClient:
        client.cookies.set(AUTH_COOKIE_NAME, user_id)
        return client

    return _login
