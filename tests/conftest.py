"""
Shared fixtures: an in-memory stand-in for the Motor collections the
repositories use, plus ready-made repositories and users.

Every fake operation completes without awaiting, so each one is atomic with
respect to other tasks on the event loop, the same guarantee MongoDB gives
for a single-document update.
"""
import copy
from datetime import date
from types import SimpleNamespace

import pytest
from pymongo.errors import DuplicateKeyError

from lib_database.models import User, UserRole
from lib_database.usage_repository import UsageRepository
from lib_database.user_repository import UserRepository


def _matches(doc, query):
    for key, cond in (query or {}).items():
        value = doc.get(key)
        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            for op, operand in cond.items():
                if value is None:
                    return False
                if op == "$gte" and not value >= operand:
                    return False
                if op == "$gt" and not value > operand:
                    return False
                if op == "$lt" and not value < operand:
                    return False
                if op == "$lte" and not value <= operand:
                    return False
                if op == "$in" and value not in operand:
                    return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs = sorted(self._docs, key=lambda d: d.get(key) or "", reverse=direction < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    def __aiter__(self):
        self._iter = iter(self._docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    def __init__(self, unique=None):
        self.docs = []
        self.unique = unique or []

    def _check_unique(self, candidate, ignore=None):
        for fields in self.unique:
            for doc in self.docs:
                if doc is ignore:
                    continue
                if all(doc.get(f) == candidate.get(f) for f in fields):
                    raise DuplicateKeyError(f"duplicate key on {fields}")

    @staticmethod
    def _apply(doc, update, inserting):
        for key, value in update.get("$set", {}).items():
            doc[key] = value
        for key, value in update.get("$inc", {}).items():
            doc[key] = doc.get(key, 0) + value
        if inserting:
            for key, value in update.get("$setOnInsert", {}).items():
                doc[key] = value

    def _upsert(self, query, update):
        doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
        self._apply(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return doc

    async def insert_one(self, doc):
        doc = copy.deepcopy(doc)
        self._check_unique(doc)
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc.get("id"))

    async def find_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query=None):
        return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, query)])

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                self._apply(doc, update, inserting=False)
                return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            doc = self._upsert(query, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc.get("id"))
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    async def update_many(self, query, update):
        count = 0
        for doc in self.docs:
            if _matches(doc, query):
                self._apply(doc, update, inserting=False)
                count += 1
        return SimpleNamespace(matched_count=count, modified_count=count)

    async def find_one_and_update(self, query, update, upsert=False, return_document=False):
        for doc in self.docs:
            if _matches(doc, query):
                before = copy.deepcopy(doc)
                self._apply(doc, update, inserting=False)
                return copy.deepcopy(doc) if return_document else before
        if upsert:
            doc = self._upsert(query, update)
            return copy.deepcopy(doc) if return_document else None
        return None

    async def delete_one(self, query):
        for doc in self.docs:
            if _matches(doc, query):
                self.docs.remove(doc)
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query):
        keep = [d for d in self.docs if not _matches(d, query)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return SimpleNamespace(deleted_count=deleted)

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    async def distinct(self, field, query=None):
        values = []
        for doc in self.docs:
            if _matches(doc, query) and doc.get(field) not in values:
                values.append(doc.get(field))
        return values

    def aggregate(self, pipeline):
        docs = [copy.deepcopy(d) for d in self.docs]
        for stage in pipeline:
            if "$match" in stage:
                docs = [d for d in docs if _matches(d, stage["$match"])]
            elif "$group" in stage:
                stage_spec = stage["$group"]
                key_expr = stage_spec["_id"]
                groups = {}
                for doc in docs:
                    key = doc.get(key_expr[1:]) if isinstance(key_expr, str) else key_expr
                    row = groups.setdefault(key, {"_id": key})
                    for out, acc in stage_spec.items():
                        if out == "_id":
                            continue
                        row[out] = row.get(out, 0) + doc.get(acc["$sum"][1:], 0)
                docs = list(groups.values())
        return FakeCursor(docs)


class FakeDatabase:
    """Matches the Database.get_collection surface used by the repositories."""

    def __init__(self):
        self.collections = {
            "users": FakeCollection(unique=[("email",)]),
            "minutes_usage": FakeCollection(unique=[("user_id", "date")]),
            "tts_usage": FakeCollection(),
            "api_configs": FakeCollection(unique=[("config_key",)]),
            "student_levels": FakeCollection(unique=[("user_id",)]),
        }

    def get_collection(self, name):
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def usage_repository(fake_db):
    return UsageRepository(fake_db)


@pytest.fixture
def user_repository(fake_db):
    return UserRepository(fake_db)


@pytest.fixture
def student():
    return User(email="student@example.com", name="Student", role=UserRole.STUDENT, minutes_limit=120)


@pytest.fixture
def admin():
    return User(email="admin@example.com", name="Admin", role=UserRole.ADMIN, minutes_limit=999999)


@pytest.fixture
def day():
    return date(2026, 10, 16)
