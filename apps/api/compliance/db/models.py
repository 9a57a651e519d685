"""Document models for the compliance store.

Documents live in MongoDB; these pydantic models are the typed read-through
copies the services work with. ``from_document`` converts a raw store
document (``_id`` as ObjectId) into the model, ``to_document`` produces the
fields to persist.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from compliance.db.enums import (
    ApplicationStatus,
    HearingType,
    NotificationType,
    RemarkType,
    Role,
)

# Collection names as they exist in the store (lowercase plural, no separators)
USERS = "users"
APPLICATIONS = "applications"
HEARING_DATES = "hearingdates"
REMARKS = "applicationremarks"
AUDIT_LOGS = "auditlogs"
VIOLATION_TYPES = "violationtypes"
NOTIFICATIONS = "notifications"
CATEGORIES = "categories"


class StoreModel(BaseModel):
    """Base for models backed by a store document."""

    model_config = ConfigDict(extra="ignore", use_enum_values=False)

    id: str

    @classmethod
    def from_document(cls, doc: dict[str, Any]):
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="python", exclude={"id"})


class ApplicationDescription(BaseModel):
    """
    Typed view of the application's ``description`` bag.

    Known fields are optional; anything else submitted by the intake form
    (action flags, free-text answers) is kept as an extra field. Unset fields
    are left out of the stored document rather than written as null, so
    field-presence migrations (``description.division`` →
    ``description.district``) see the real shape.
    """

    model_config = ConfigDict(extra="allow")

    district: str | None = None
    category: str | None = None
    subcategory: str | None = None
    cnic: str | None = None
    violation_type: str | None = None
    sub_violation: str | None = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="python", exclude_none=True)


class Application(StoreModel):
    tracking_id: str
    applicant_name: str
    applicant_email: str
    applicant_phone: str | None = None
    applicant_cnic: str | None = None
    applicant_user_id: str | None = None
    company_name: str | None = None
    company_address: str | None = None
    application_type: str
    description: ApplicationDescription | None = None
    status: ApplicationStatus = ApplicationStatus.SUBMITTED
    incomplete_reason: str | None = None
    assigned_registrar_id: str | None = None
    assigned_hearing_officer_id: str | None = None
    hearing_officer_id: str | None = None
    closed_at: datetime | None = None
    closed_by: str | None = None
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def district(self) -> str | None:
        return self.description.district if self.description else None

    @property
    def violation_type(self) -> str | None:
        return self.description.violation_type if self.description else None

    @property
    def is_closed(self) -> bool:
        return self.status.is_terminal or self.closed_at is not None


class HearingDate(StoreModel):
    application_id: str
    hearing_date: datetime
    hearing_type: HearingType = HearingType.INITIAL
    sequence_no: int = 1
    is_active: bool = True
    scheduled_by: str | None = None
    created_at: datetime


class Remark(StoreModel):
    application_id: str
    user_id: str | None = None
    remark: str
    remark_type: RemarkType
    proceedings: str | None = None
    status_at_time: ApplicationStatus
    created_at: datetime


class Notification(StoreModel):
    recipient_user_id: str
    application_id: str | None = None
    title: str
    message: str
    type: NotificationType
    link: str | None = None
    dedupe_key: str | None = None
    is_read: bool = False
    created_at: datetime


class AuditLogEntry(StoreModel):
    action: str
    entity_type: str
    entity_id: str | None = None
    user_id: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


class SubViolation(BaseModel):
    name: str


class ViolationType(StoreModel):
    name: str
    subviolations: list[SubViolation] = Field(default_factory=list)
    created_by: str | None = None
    created_at: datetime


class Category(StoreModel):
    name: str
    subcategories: list[str] = Field(default_factory=list)


class User(StoreModel):
    """Reference view of a user; credentials are owned by the auth service."""

    name: str | None = None
    email: str | None = None
    cnic: str | None = None
    district: str | None = None
    roles: list[Role] = Field(default_factory=list)
