"""Pydantic schemas for applications and lifecycle commands."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from compliance.db.enums import ApplicationStatus, HearingType, RemarkType
from compliance.db.models import Application, ApplicationDescription, HearingDate, Remark


def _strip_or_none(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    return v or None


class ApplicationCreate(BaseModel):
    """Request schema for submitting an application."""

    applicant_name: str = Field(..., min_length=1, max_length=255)
    applicant_email: EmailStr
    applicant_phone: str | None = Field(None, max_length=30)
    company_name: str | None = Field(None, max_length=255)
    company_address: str | None = Field(None, max_length=500)
    application_type: str = Field(..., min_length=1, max_length=100)
    description: ApplicationDescription | None = None

    @field_validator("applicant_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()


class ApplicationResubmit(BaseModel):
    """Applicant update of an incomplete application (partial)."""

    applicant_name: str | None = Field(None, min_length=1, max_length=255)
    applicant_email: EmailStr | None = None
    applicant_phone: str | None = None
    company_name: str | None = None
    company_address: str | None = None
    description: ApplicationDescription | None = None


class MarkIncompleteRequest(BaseModel):
    remarks: str = ""

    @field_validator("remarks")
    @classmethod
    def strip_remarks(cls, v: str) -> str:
        return v.strip()


class MarkCompleteRequest(BaseModel):
    remarks: str | None = None

    @field_validator("remarks")
    @classmethod
    def strip_remarks(cls, v: str | None) -> str | None:
        return _strip_or_none(v)


class ViolationFields(BaseModel):
    violation_type: str | None = None
    sub_violation: str | None = None

    @field_validator("violation_type", "sub_violation")
    @classmethod
    def strip_violation(cls, v: str | None) -> str | None:
        return _strip_or_none(v)


class ScheduleHearingRequest(ViolationFields):
    hearing_datetime: datetime | None = None
    hearing_officer_id: str | None = None
    hearing_type: HearingType = HearingType.INITIAL
    remarks: str | None = None
    proceedings: str | None = None


class BeginHearingRequest(BaseModel):
    remarks: str | None = None


class AdjournRequest(ViolationFields):
    new_hearing_datetime: datetime | None = None
    remarks: str = ""
    proceedings: str | None = None

    @field_validator("remarks")
    @classmethod
    def strip_remarks(cls, v: str) -> str:
        return v.strip()


class SetViolationRequest(ViolationFields):
    pass


class CloseApplicationRequest(ViolationFields):
    """Approve / reject payload."""

    remarks: str = ""
    proceedings: str | None = None

    @field_validator("remarks")
    @classmethod
    def strip_remarks(cls, v: str) -> str:
        return v.strip()


class ApplicationRead(BaseModel):
    id: str
    tracking_id: str
    applicant_name: str
    applicant_email: str
    applicant_phone: str | None
    company_name: str | None
    company_address: str | None
    application_type: str
    description: ApplicationDescription | None
    status: ApplicationStatus
    incomplete_reason: str | None
    assigned_registrar_id: str | None
    assigned_hearing_officer_id: str | None
    closed_at: datetime | None
    closed_by: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, application: Application) -> "ApplicationRead":
        return cls.model_validate(application.model_dump())


class HearingRead(BaseModel):
    id: str
    application_id: str
    hearing_date: datetime
    hearing_type: HearingType
    sequence_no: int
    is_active: bool
    created_at: datetime

    @classmethod
    def from_model(cls, hearing: HearingDate) -> "HearingRead":
        return cls.model_validate(hearing.model_dump())


class RemarkRead(BaseModel):
    id: str
    remark: str
    remark_type: RemarkType
    proceedings: str | None
    status_at_time: ApplicationStatus
    user_id: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, remark: Remark) -> "RemarkRead":
        return cls.model_validate(remark.model_dump())


class TransitionResponse(BaseModel):
    application: ApplicationRead
    hearing_id: str | None = None


class ApplicationStats(BaseModel):
    total: int
    by_status: dict[str, int]


class ApplicationListFilters(BaseModel):
    """
    Dashboard list filters.

    ``status`` takes one status, ``all`` or ``closed`` (both terminal
    statuses); ``status_in`` is a comma-separated list and wins over
    ``status``. ``q`` matches the tracking id prefix, applicant name or email.
    """

    status: str | None = None
    status_in: str | None = None
    q: str | None = Field(None, max_length=100)

    @field_validator("status", "status_in", "q")
    @classmethod
    def strip_filters(cls, v: str | None) -> str | None:
        return _strip_or_none(v)


class ApplicationListResponse(BaseModel):
    """Paginated application list response."""

    items: list[ApplicationRead]
    total: int
    page: int
    per_page: int
    pages: int


class PublicApplicationRead(BaseModel):
    """What anyone holding a tracking id may see."""

    tracking_id: str
    application_type: str
    status: ApplicationStatus
    applicant_name: str
    company_name: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, application: Application) -> "PublicApplicationRead":
        return cls.model_validate(application.model_dump())


class PublicHearingRead(BaseModel):
    id: str
    hearing_date: datetime
    hearing_type: HearingType

    @classmethod
    def from_model(cls, hearing: HearingDate) -> "PublicHearingRead":
        return cls.model_validate(hearing.model_dump())
