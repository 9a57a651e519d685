"""Secondary index catalog (target state per collection)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pymongo import ASCENDING

from compliance.db.models import (
    APPLICATIONS,
    AUDIT_LOGS,
    HEARING_DATES,
    NOTIFICATIONS,
    USERS,
    VIOLATION_TYPES,
)


@dataclass(frozen=True)
class IndexSpec:
    """
    Declared index: catalog name, ordered key pattern and options.

    ``name`` identifies the index within its collection. Two specs with the
    same name but a different key, ``unique`` or ``sparse`` flag conflict and
    are reconciled by drop + recreate.
    """

    name: str
    key: tuple[tuple[str, int], ...]
    unique: bool = False
    sparse: bool = False

    @classmethod
    def single(
        cls,
        field: str,
        direction: int = ASCENDING,
        *,
        unique: bool = False,
        sparse: bool = False,
        name: str | None = None,
    ) -> "IndexSpec":
        """Single-field index named the way the server names it (``field_1``)."""
        return cls(
            name=name or f"{field}_{direction}",
            key=((field, direction),),
            unique=unique,
            sparse=sparse,
        )

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(field for field, _ in self.key)

    @property
    def options(self) -> dict[str, Any]:
        return {"unique": self.unique, "sparse": self.sparse}

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "key": [list(part) for part in self.key], **self.options}


INDEX_CATALOG: dict[str, tuple[IndexSpec, ...]] = {
    USERS: (
        IndexSpec.single("email", unique=True, sparse=True),
        IndexSpec.single("cnic", unique=True, sparse=True),
    ),
    APPLICATIONS: (
        IndexSpec.single("tracking_id", unique=True),
        IndexSpec.single("status"),
        IndexSpec.single("created_at"),
        IndexSpec.single("description.district"),
    ),
    HEARING_DATES: (
        IndexSpec.single("application_id"),
        IndexSpec.single("hearing_date"),
        IndexSpec.single("is_active"),
    ),
    AUDIT_LOGS: (
        IndexSpec.single("created_at"),
        IndexSpec.single("user_id"),
        IndexSpec.single("entity_type"),
    ),
    VIOLATION_TYPES: (
        IndexSpec.single("name", unique=True),
    ),
    NOTIFICATIONS: (
        IndexSpec.single("recipient_user_id"),
        IndexSpec.single("is_read"),
        IndexSpec.single("created_at"),
    ),
}
