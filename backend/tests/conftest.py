"""
Pytest configuration and shared test helpers for backend tests.
"""
import copy
import os
from types import SimpleNamespace

# Deterministic config for module-level singletons imported below.
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("EMAIL_DEDUPE_STORE", "memory")
os.environ.setdefault("VERIFY_UPLOAD_URLS", "false")
os.environ.setdefault("ADMIN_EMAIL", "admin@ai-chatflows.com")
os.environ.setdefault("PUBLIC_API_URL", "https://api.ai-chatflows.test")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.pop("POSTMARK_SERVER_TOKEN", None)

import pytest
from unittest.mock import AsyncMock, patch
from pymongo.errors import DuplicateKeyError

# Shared TestClient fixture so tests can use in-process requests without a running server.
# Not entered as a context manager, so the lifespan (env check, Mongo connect) does not run.
from fastapi.testclient import TestClient
from server import app
from database import database
from services.storage_adapter import StorageAdapter, StorageError, StoredFileNotFound


def _matches(doc, query):
    for key, cond in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in cond):
                return False
            continue
        value = doc.get(key)
        if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$lt" and (value is None or not value < arg):
                    return False
                if op == "$ne" and value == arg:
                    return False
        elif value != cond:
            return False
    return True


class FakeCollection:
    """In-memory stand-in for the subset of Motor collection calls the app makes."""

    def __init__(self, unique=()):
        self.docs = []
        self.unique = tuple(unique)
        self.fail_inserts = False

    def _check_unique(self, doc, ignore=None):
        for field in self.unique:
            for other in self.docs:
                if other is not ignore and field in doc and other.get(field) == doc.get(field):
                    raise DuplicateKeyError(f"E11000 duplicate key error: {field}")

    async def insert_one(self, doc, **kw):
        if self.fail_inserts:
            raise RuntimeError("store unavailable")
        self._check_unique(doc)
        stored = copy.deepcopy(doc)
        stored["_id"] = len(self.docs) + 1
        self.docs.append(stored)
        doc["_id"] = stored["_id"]
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one(self, query, projection=None, **kw):
        for doc in self.docs:
            if _matches(doc, query):
                out = copy.deepcopy(doc)
                out.pop("_id", None)
                return out
        return None

    async def update_one(self, query, update, upsert=False, **kw):
        for doc in self.docs:
            if _matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            new_doc = {k: v for k, v in query.items() if not k.startswith("$") and not isinstance(v, dict)}
            new_doc.update(copy.deepcopy(update.get("$set", {})))
            self._check_unique(new_doc)
            new_doc["_id"] = len(self.docs) + 1
            self.docs.append(new_doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=new_doc["_id"])
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def delete_one(self, query, **kw):
        for i, doc in enumerate(self.docs):
            if _matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class FakeDB:
    """Attribute and item access both return the same FakeCollection."""

    UNIQUE = {
        "onboarding_submissions": ("id",),
        "form_submissions": ("id",),
        "email_send_ledger": ("key",),
    }

    def __init__(self):
        self._collections = {}

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(self.UNIQUE.get(name, ()))
        return self._collections[name]

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


class FakeStorage(StorageAdapter):
    """Records uploads; content listed in fail_contents raises StorageError."""

    def __init__(self, fail_contents=()):
        self.objects = {}
        self.fail_contents = set(fail_contents)
        self.calls = []

    async def upload(self, content, bucket, path, content_type):
        self.calls.append((bucket, path, content_type))
        if content in self.fail_contents:
            raise StorageError("simulated storage outage")
        self.objects[(bucket, path)] = (content, content_type)
        return path

    def get_public_url(self, bucket, path):
        return f"https://files.test/{bucket}/{path}"

    async def download(self, bucket, path):
        if (bucket, path) not in self.objects:
            raise StoredFileNotFound(f"File not found: {bucket}/{path}")
        return self.objects[(bucket, path)]

    async def exists(self, bucket, path):
        return (bucket, path) in self.objects


@pytest.fixture
def fake_db():
    """Patch the global database handle with an in-memory FakeDB."""
    db = FakeDB()
    with patch.object(database, "get_db", return_value=db):
        yield db


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def email_send():
    """AsyncMock replacing the provider call; returns a fresh message id per send."""
    counter = {"n": 0}

    async def _send(**kwargs):
        counter["n"] += 1
        return f"msg-{counter['n']}"

    return AsyncMock(side_effect=_send)


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)
