"""Index reconciliation: bring a live index catalog in line with an IndexSpec."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from compliance.core.structured_logging import build_log_context
from compliance.db.indexes import IndexSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    name: str
    rebuilt: bool
    created: bool
    dropped: bool
    drift: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "rebuilt": self.rebuilt,
            "created": self.created,
            "dropped": self.dropped,
            "drift": list(self.drift),
        }


def _normalize_key(key: Any) -> tuple[tuple[str, Any], ...]:
    parts = key.items() if isinstance(key, dict) else key
    normalized = []
    for field, direction in parts:
        if isinstance(direction, float) and direction.is_integer():
            direction = int(direction)
        normalized.append((field, direction))
    return tuple(normalized)


def describe_drift(existing: dict[str, Any], spec: IndexSpec) -> list[str]:
    """List the attributes on which a live index differs from its spec."""
    drift = []
    if bool(existing.get("unique", False)) != spec.unique:
        drift.append("unique")
    if bool(existing.get("sparse", False)) != spec.sparse:
        drift.append("sparse")
    if _normalize_key(existing.get("key", ())) != _normalize_key(spec.key):
        drift.append("key")
    return drift


async def reconcile(collection, spec: IndexSpec) -> ReconcileResult:
    """
    Ensure an index named ``spec.name`` exists with exactly ``spec``'s key and options.

    A missing index is created; a drifted one is dropped by name and
    recreated, since index names are unique per collection and options
    cannot be altered in place. A conforming index is left untouched, so a
    second call is a no-op. Drop/create failures (e.g. a duplicate key while
    enabling ``unique`` on dirty data) propagate to the caller.
    """
    context = build_log_context(collection=collection.name, index=spec.name)
    indexes = await collection.index_information()
    existing = indexes.get(spec.name)

    drift = describe_drift(existing, spec) if existing is not None else ["missing"]
    if existing is not None and not drift:
        logger.debug("Index %s already conforms", spec.name, extra=context)
        return ReconcileResult(name=spec.name, rebuilt=False, created=False, dropped=False)

    dropped = False
    if existing is not None:
        logger.info(
            "Dropping index %s on %s (drift: %s)",
            spec.name,
            collection.name,
            ", ".join(drift),
            extra=context,
        )
        await collection.drop_index(spec.name)
        dropped = True

    options: dict[str, Any] = {"name": spec.name}
    if spec.unique:
        options["unique"] = True
    if spec.sparse:
        options["sparse"] = True
    await collection.create_index(list(spec.key), **options)
    logger.info("Created index %s on %s", spec.name, collection.name, extra=context)

    return ReconcileResult(
        name=spec.name,
        rebuilt=True,
        created=existing is None,
        dropped=dropped,
        drift=tuple(drift),
    )
