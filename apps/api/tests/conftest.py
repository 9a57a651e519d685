"""
Test configuration and fixtures.

Provides:
- An in-memory document store implementing the subset of the async
  pymongo API the services and migrations use
- Actors and identity headers for each role
- HTTPX AsyncClient over the FastAPI app with store/cache overrides
"""
import copy
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure

from compliance.core.cache import EphemeralCache
from compliance.core.deps import get_cache, get_db
from compliance.db.enums import ApplicationStatus, Role
from compliance.db.models import APPLICATIONS, HEARING_DATES, USERS, VIOLATION_TYPES
from compliance.main import app
from compliance.schemas.auth import Actor


# =============================================================================
# In-memory document store
# =============================================================================

_MISSING = object()


def _get(doc: dict, path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[parts[-1]] = value


def _unset(doc: dict, path: str) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.get(part)
        if not isinstance(target, dict):
            return
    target.pop(parts[-1], None)


def _equals(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is _MISSING or value is None
    if value is _MISSING:
        return False
    if isinstance(value, list) and not isinstance(expected, list):
        return expected in value
    return value == expected


def _compare(value: Any, bound: Any, op) -> bool:
    if value is _MISSING or value is None:
        return False
    return op(value, bound)


_OPERATORS = {
    "$exists": lambda value, arg: (value is not _MISSING) == bool(arg),
    "$in": lambda value, arg: any(_equals(value, a) for a in arg),
    "$nin": lambda value, arg: not any(_equals(value, a) for a in arg),
    "$ne": lambda value, arg: not _equals(value, arg),
    "$lte": lambda value, arg: _compare(value, arg, lambda a, b: a <= b),
    "$lt": lambda value, arg: _compare(value, arg, lambda a, b: a < b),
    "$gte": lambda value, arg: _compare(value, arg, lambda a, b: a >= b),
    "$gt": lambda value, arg: _compare(value, arg, lambda a, b: a > b),
}


def _regex(value: Any, pattern: str, options: str) -> bool:
    if not isinstance(value, str):
        return False
    return re.search(pattern, value, re.IGNORECASE if "i" in options else 0) is not None


def matches(doc: dict, query: dict | None) -> bool:
    for path, condition in (query or {}).items():
        if path == "$or":
            if not any(matches(doc, q) for q in condition):
                return False
            continue
        if path == "$and":
            if not all(matches(doc, q) for q in condition):
                return False
            continue
        value = _get(doc, path)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, arg in condition.items():
                if op == "$options":
                    continue
                if op == "$regex":
                    if not _regex(value, arg, condition.get("$options", "")):
                        return False
                elif not _OPERATORS[op](value, arg):
                    return False
        elif not _equals(value, condition):
            return False
    return True


def _apply_update(doc: dict, update: Any) -> None:
    if isinstance(update, list):
        for stage in update:
            for path, expression in stage["$set"].items():
                if isinstance(expression, str) and expression.startswith("$"):
                    source = _get(doc, expression[1:])
                    if source is _MISSING:
                        continue
                    expression = source
                _set(doc, path, copy.deepcopy(expression))
        return
    for op, fields in update.items():
        if op == "$set":
            for path, value in fields.items():
                _set(doc, path, copy.deepcopy(value))
        elif op == "$unset":
            for path in fields:
                _unset(doc, path)
        else:
            raise NotImplementedError(op)


def _sort_value(value: Any):
    return (value is _MISSING or value is None, None if value is _MISSING else value)


def _sorted(docs: list[dict], sort: list[tuple[str, int]] | None) -> list[dict]:
    for path, direction in reversed(sort or []):
        docs = sorted(docs, key=lambda d: _sort_value(_get(d, path)), reverse=direction < 0)
    return docs


@dataclass
class FakeUpdateResult:
    matched_count: int
    modified_count: int


@dataclass
class FakeInsertResult:
    inserted_id: Any


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    def sort(self, key, direction: int = 1):
        keys = key if isinstance(key, list) else [(key, direction)]
        self._docs = _sorted(self._docs, keys)
        return self

    def skip(self, count: int):
        self._docs = self._docs[count:]
        return self

    def limit(self, count: int):
        if count:
            self._docs = self._docs[:count]
        return self

    async def to_list(self, length: int | None = None) -> list[dict]:
        docs = self._docs if length is None else self._docs[:length]
        return [copy.deepcopy(d) for d in docs]


class FakeCollection:
    """
    Async collection over a list of dicts.

    ``fail_next(method, exc)`` makes the next call of ``method`` raise ``exc``.
    """

    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []
        self.indexes: dict[str, dict] = {"_id_": {"key": [("_id", 1)], "v": 2}}
        self._failures: dict[str, list[BaseException]] = {}

    def fail_next(self, method: str, exc: BaseException) -> None:
        self._failures.setdefault(method, []).append(exc)

    def _maybe_fail(self, method: str) -> None:
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    # -- unique index enforcement -------------------------------------------

    def _index_value(self, doc: dict, info: dict):
        values = tuple(_get(doc, field) for field, _ in info["key"])
        if info.get("sparse") and all(v is _MISSING for v in values):
            return _MISSING
        return tuple(None if v is _MISSING else v for v in values)

    def _check_unique(self, candidate: dict, docs: list[dict]) -> None:
        for name, info in self.indexes.items():
            if not info.get("unique"):
                continue
            value = self._index_value(candidate, info)
            if value is _MISSING:
                continue
            for other in docs:
                if other is candidate or other.get("_id") == candidate.get("_id"):
                    continue
                if self._index_value(other, info) == value:
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} index: {name}")

    # -- reads ----------------------------------------------------------------

    def _find(self, query: dict | None) -> list[dict]:
        return [d for d in self.docs if matches(d, query)]

    async def find_one(self, query: dict | None = None, projection=None, *, sort=None, session=None):
        self._maybe_fail("find_one")
        found = _sorted(self._find(query), sort)
        return copy.deepcopy(found[0]) if found else None

    def find(self, query: dict | None = None, projection=None, *, session=None) -> FakeCursor:
        self._maybe_fail("find")
        return FakeCursor(self._find(query))

    async def count_documents(self, query: dict, *, session=None) -> int:
        return len(self._find(query))

    # -- writes ---------------------------------------------------------------

    async def insert_one(self, document: dict, *, session=None) -> FakeInsertResult:
        self._maybe_fail("insert_one")
        if "_id" not in document:
            document["_id"] = ObjectId()
        stored = copy.deepcopy(document)
        self._check_unique(stored, self.docs)
        self.docs.append(stored)
        return FakeInsertResult(inserted_id=document["_id"])

    def _update_docs(self, targets: list[dict], update: Any) -> int:
        modified = 0
        for doc in targets:
            before = copy.deepcopy(doc)
            candidate = copy.deepcopy(doc)
            _apply_update(candidate, update)
            if candidate == before:
                continue
            self._check_unique(candidate, self.docs)
            doc.clear()
            doc.update(candidate)
            modified += 1
        return modified

    async def update_many(self, query: dict, update: Any, *, session=None) -> FakeUpdateResult:
        self._maybe_fail("update_many")
        targets = self._find(query)
        modified = self._update_docs(targets, update)
        return FakeUpdateResult(matched_count=len(targets), modified_count=modified)

    async def update_one(self, query: dict, update: Any, *, session=None) -> FakeUpdateResult:
        self._maybe_fail("update_one")
        targets = self._find(query)[:1]
        modified = self._update_docs(targets, update)
        return FakeUpdateResult(matched_count=len(targets), modified_count=modified)

    async def find_one_and_update(
        self,
        query: dict,
        update: Any,
        *,
        return_document=ReturnDocument.BEFORE,
        sort=None,
        session=None,
    ):
        self._maybe_fail("find_one_and_update")
        targets = _sorted(self._find(query), sort)[:1]
        if not targets:
            return None
        before = copy.deepcopy(targets[0])
        self._update_docs(targets, update)
        return copy.deepcopy(targets[0]) if return_document == ReturnDocument.AFTER else before

    # -- indexes --------------------------------------------------------------

    async def index_information(self) -> dict[str, dict]:
        self._maybe_fail("index_information")
        return copy.deepcopy(self.indexes)

    async def create_index(self, keys, *, name: str, unique: bool = False, sparse: bool = False) -> str:
        self._maybe_fail("create_index")
        info: dict[str, Any] = {"key": [tuple(k) for k in keys], "v": 2}
        if unique:
            info["unique"] = True
        if sparse:
            info["sparse"] = True
        existing = self.indexes.get(name)
        if existing is not None:
            if existing == info:
                return name
            raise OperationFailure(f"An existing index has the same name as the requested index: {name}", code=86)
        if unique:
            seen = set()
            for doc in self.docs:
                value = self._index_value(doc, info)
                if value is _MISSING:
                    continue
                if value in seen:
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} index: {name}")
                seen.add(value)
        self.indexes[name] = info
        return name

    async def drop_index(self, name: str) -> None:
        self._maybe_fail("drop_index")
        if name not in self.indexes:
            raise OperationFailure(f"index not found with name [{name}]", code=27)
        del self.indexes[name]


class FakeSession:
    """Snapshot-and-restore transaction over every collection of the database."""

    def __init__(self, db: "FakeDatabase"):
        self._db = db
        self.transactions = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def with_transaction(self, callback):
        snapshot = {name: copy.deepcopy(c.docs) for name, c in self._db.collections.items()}
        self.transactions += 1
        try:
            return await callback(self)
        except BaseException:
            for name, docs in snapshot.items():
                self._db.collections[name].docs = docs
            for name in set(self._db.collections) - set(snapshot):
                self._db.collections[name].docs = []
            raise


class FakeClient:
    def __init__(self, db: "FakeDatabase"):
        self._db = db
        self.admin = db
        self.closed = False
        self.sessions: list[FakeSession] = []

    def __getitem__(self, name: str) -> "FakeDatabase":
        return self._db

    def start_session(self) -> FakeSession:
        session = FakeSession(self._db)
        self.sessions.append(session)
        return session

    async def close(self) -> None:
        self.closed = True


class FakeDatabase:
    def __init__(self, name: str = "compliance_test"):
        self.name = name
        self.collections: dict[str, FakeCollection] = {}
        self.client = FakeClient(self)

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    async def command(self, name: str):
        return {"ok": 1.0}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def cache() -> EphemeralCache:
    return EphemeralCache()


# =============================================================================
# Seed data
# =============================================================================

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

REGISTRAR = Actor(id="registrar-1", roles=frozenset({Role.REGISTRAR}), district="Lahore")
ADMIN = Actor(id="admin-1", roles=frozenset({Role.ADMIN}))
APPLICANT = Actor(id="applicant-1", roles=frozenset({Role.APPLICANT}), email="owner@example.com", cnic="35202-1234567-1")


def actor_headers(actor: Actor) -> dict[str, str]:
    headers = {
        "X-User-Id": actor.id,
        "X-User-Roles": ",".join(sorted(r.value for r in actor.roles)),
    }
    if actor.district:
        headers["X-User-District"] = actor.district
    if actor.email:
        headers["X-User-Email"] = actor.email
    if actor.cnic:
        headers["X-User-Cnic"] = actor.cnic
    return headers


async def seed_officer(db: FakeDatabase, district: str = "Lahore", name: str = "Officer") -> Actor:
    result = await db[USERS].insert_one(
        {"name": name, "email": f"{name.lower()}-{district.lower()}@example.com", "district": district, "roles": [Role.HEARING_OFFICER.value]}
    )
    return Actor(id=str(result.inserted_id), roles=frozenset({Role.HEARING_OFFICER}), district=district)


async def seed_violation_type(db: FakeDatabase, name: str = "Unregistered premises", subviolations=("No licence",)) -> None:
    await db[VIOLATION_TYPES].insert_one(
        {"name": name, "subviolations": [{"name": s} for s in subviolations], "created_at": NOW}
    )


async def seed_application(
    db: FakeDatabase,
    status: ApplicationStatus = ApplicationStatus.SUBMITTED,
    district: str = "Lahore",
    **fields: Any,
) -> str:
    document = {
        "tracking_id": f"PC-20260301-{ObjectId()}",
        "applicant_name": "Ayesha Khan",
        "applicant_email": "owner@example.com",
        "applicant_user_id": APPLICANT.id,
        "application_type": "registration",
        "description": {"district": district, "cnic": "35202-1234567-1"},
        "status": status.value,
        "created_at": NOW - timedelta(days=1),
        "updated_at": NOW - timedelta(days=1),
    }
    document.update(fields)
    result = await db[APPLICATIONS].insert_one(document)
    return str(result.inserted_id)


async def seed_hearing(db: FakeDatabase, application_id: str, hearing_date: datetime, sequence_no: int = 1, is_active: bool = True) -> None:
    await db[HEARING_DATES].insert_one(
        {
            "application_id": application_id,
            "hearing_date": hearing_date,
            "hearing_type": "initial",
            "sequence_no": sequence_no,
            "is_active": is_active,
            "created_at": NOW - timedelta(days=1),
        }
    )


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(fake_db: FakeDatabase, cache: EphemeralCache) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient with the store and cache replaced by in-memory fakes."""
    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_cache] = lambda: cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
