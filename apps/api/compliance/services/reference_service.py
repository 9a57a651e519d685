"""Reference data readers (violation types, categories, hearing officers).

Reads go through the ephemeral cache; writers clear the affected key. A cache
failure is logged and the read falls back to the store.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import DuplicateKeyError

from compliance.core.cache import (
    CATEGORIES_KEY,
    HEARING_OFFICERS_KEY,
    VIOLATION_TYPES_KEY,
    EphemeralCache,
)
from compliance.core.structured_logging import build_log_context
from compliance.db.enums import AuditAction, Role
from compliance.db.models import CATEGORIES, USERS, VIOLATION_TYPES, Category, User, ViolationType
from compliance.schemas.auth import Actor
from compliance.services import audit_service
from compliance.services.lifecycle import ConflictError

logger = logging.getLogger(__name__)

_MISS = object()


async def _cached(cache: EphemeralCache | None, key: str, load: Callable[[], Awaitable[Any]]) -> Any:
    if cache is not None:
        try:
            # A single get decides hit or miss
            value = cache.get(key, _MISS)
            if value is not _MISS:
                return value
        except Exception:
            logger.exception("Cache read failed; reading from store", extra={"cache_key": key})

    value = await load()

    if cache is not None:
        try:
            cache.set(key, value)
        except Exception:
            logger.exception("Cache write failed", extra={"cache_key": key})
    return value


def _invalidate(cache: EphemeralCache | None, key: str) -> None:
    if cache is None:
        return
    try:
        cache.clear(key)
    except Exception:
        logger.exception("Cache invalidation failed", extra={"cache_key": key})


async def list_violation_types(db, cache: EphemeralCache | None = None) -> list[ViolationType]:
    async def load() -> list[ViolationType]:
        docs = await db[VIOLATION_TYPES].find({}).sort("name", 1).to_list(length=None)
        return [ViolationType.from_document(doc) for doc in docs]

    return await _cached(cache, VIOLATION_TYPES_KEY, load)


async def find_violation_type(db, cache: EphemeralCache | None, name: str) -> ViolationType | None:
    for violation_type in await list_violation_types(db, cache):
        if violation_type.name == name:
            return violation_type
    return None


async def create_violation_type(
    db,
    cache: EphemeralCache | None,
    name: str,
    subviolations: list[str],
    actor: Actor,
) -> ViolationType:
    """
    Insert a violation type and invalidate the cached list.

    Raises:
        ConflictError: a violation type with this name already exists
    """
    document = {
        "name": name,
        "subviolations": [{"name": sub} for sub in subviolations],
        "created_by": actor.id,
        "created_at": datetime.now(timezone.utc),
    }
    try:
        result = await db[VIOLATION_TYPES].insert_one(document)
    except DuplicateKeyError as exc:
        raise ConflictError(f"Violation type '{name}' already exists") from exc

    _invalidate(cache, VIOLATION_TYPES_KEY)
    violation_type = ViolationType.from_document({"_id": result.inserted_id, **document})
    logger.info(
        "Violation type created",
        extra=build_log_context(collection=VIOLATION_TYPES, actor_id=actor.id),
    )
    await audit_service.log_event(
        db,
        AuditAction.VIOLATION_TYPE_CREATED,
        audit_service.ENTITY_VIOLATION_TYPE,
        entity_id=violation_type.id,
        user_id=actor.id,
        details={"name": name},
    )
    return violation_type


async def list_categories(db, cache: EphemeralCache | None = None) -> list[Category]:
    async def load() -> list[Category]:
        docs = await db[CATEGORIES].find({}).sort("name", 1).to_list(length=None)
        return [Category.from_document(doc) for doc in docs]

    return await _cached(cache, CATEGORIES_KEY, load)


async def list_hearing_officers(
    db,
    cache: EphemeralCache | None = None,
    district: str | None = None,
) -> list[User]:
    """All hearing officers, optionally narrowed to one district."""

    async def load() -> list[User]:
        docs = await db[USERS].find({"roles": Role.HEARING_OFFICER.value}).sort("name", 1).to_list(length=None)
        return [User.from_document(doc) for doc in docs]

    officers = await _cached(cache, HEARING_OFFICERS_KEY, load)
    if district:
        return [officer for officer in officers if officer.district == district]
    return officers


async def get_user(db, user_id: str) -> User | None:
    try:
        oid = ObjectId(user_id)
    except (InvalidId, TypeError):
        return None
    doc = await db[USERS].find_one({"_id": oid})
    return User.from_document(doc) if doc else None
