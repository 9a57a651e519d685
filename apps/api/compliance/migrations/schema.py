"""Bulk, idempotent document transformations.

Every operation is a single ``update_many`` whose filter excludes documents
already in the target shape, so re-running it matches nothing new.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Values that count as "no value" for renames and sparse-unique cleanup.
EMPTY_VALUES = [None, ""]


@dataclass(frozen=True)
class UpdateCounts:
    matched: int
    modified: int

    @classmethod
    def from_result(cls, result) -> "UpdateCounts":
        return cls(matched=result.matched_count, modified=result.modified_count)

    def as_dict(self) -> dict[str, int]:
        return {"matched": self.matched, "modified": self.modified}


def rename_filter(old_path: str, new_path: str) -> dict[str, Any]:
    return {
        new_path: {"$exists": False},
        old_path: {"$exists": True, "$nin": EMPTY_VALUES},
    }


def unset_filter(path: str) -> dict[str, Any]:
    return {path: {"$exists": True}}


def cleanup_filter(path: str) -> dict[str, Any]:
    return {path: {"$exists": True, "$in": EMPTY_VALUES}}


async def apply_rename(collection, old_path: str, new_path: str) -> UpdateCounts:
    """
    Copy ``old_path`` into ``new_path`` where the new field is still absent.

    This is a copy, not a move: the old field is removed by the separate
    ``apply_unset`` pass. Documents whose old value is null or empty are
    skipped, leaving ``new_path`` absent rather than empty.
    """
    if old_path == new_path:
        raise ValueError("Rename source and target must differ")
    result = await collection.update_many(
        rename_filter(old_path, new_path),
        [{"$set": {new_path: f"${old_path}"}}],
    )
    return UpdateCounts.from_result(result)


async def apply_unset(collection, path: str) -> UpdateCounts:
    """Remove ``path`` wherever it still exists (second pass of a rename)."""
    result = await collection.update_many(unset_filter(path), {"$unset": {path: ""}})
    return UpdateCounts.from_result(result)


async def apply_cleanup(collection, path: str) -> UpdateCounts:
    """
    Unset ``path`` where it is present but null or an empty string.

    Required before a unique + sparse index on ``path``: a sparse index skips
    documents missing the field, but still indexes explicit nulls and empty
    strings, which would collide under ``unique``.
    """
    result = await collection.update_many(cleanup_filter(path), {"$unset": {path: ""}})
    return UpdateCounts.from_result(result)
