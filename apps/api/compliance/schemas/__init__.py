"""Pydantic schemas for API request/response models."""

from compliance.schemas.auth import SYSTEM_ACTOR, Actor
from compliance.schemas.application import (
    AdjournRequest,
    ApplicationCreate,
    ApplicationListFilters,
    ApplicationListResponse,
    ApplicationRead,
    ApplicationResubmit,
    ApplicationStats,
    BeginHearingRequest,
    CloseApplicationRequest,
    HearingRead,
    MarkCompleteRequest,
    MarkIncompleteRequest,
    PublicApplicationRead,
    PublicHearingRead,
    RemarkRead,
    ScheduleHearingRequest,
    SetViolationRequest,
    TransitionResponse,
)
from compliance.schemas.reference import HearingOfficerRead, ViolationTypeCreate, ViolationTypeRead
