"""Application submission and lifecycle routes."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from compliance.core.cache import EphemeralCache
from compliance.core.deps import get_cache, get_current_actor, get_db
from compliance.db.enums import LifecycleAction
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
    RemarkRead,
    ScheduleHearingRequest,
    SetViolationRequest,
    TransitionResponse,
)
from compliance.schemas.auth import Actor
from compliance.services import application_service
from compliance.services.lifecycle import LifecycleError
from compliance.utils.pagination import PaginationParams, get_pagination

router = APIRouter()


def _http_error(exc: LifecycleError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


async def _transition(
    db,
    cache: EphemeralCache,
    application_id: str,
    action: LifecycleAction,
    actor: Actor,
    payload: Any,
) -> TransitionResponse:
    try:
        result = await application_service.transition(
            db, application_id, action, actor, payload, cache=cache
        )
    except LifecycleError as e:
        raise _http_error(e)
    return TransitionResponse(
        application=ApplicationRead.from_model(result.application),
        hearing_id=result.hearing_id,
    )


@router.post("", response_model=ApplicationRead, status_code=201)
async def submit_application(
    data: ApplicationCreate,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
):
    """Submit a new application (status ``submitted``)."""
    try:
        application = await application_service.create_application(db, data, actor)
    except LifecycleError as e:
        raise _http_error(e)
    return ApplicationRead.from_model(application)


@router.get("", response_model=ApplicationListResponse)
async def list_applications(
    status: str | None = Query(None, description="One status, 'all' or 'closed'"),
    status_in: str | None = Query(None, description="Comma-separated statuses"),
    q: str | None = Query(None, max_length=100),
    pagination: PaginationParams = Depends(get_pagination),
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
):
    """
    List applications with filters and pagination.

    - Applicants only see their own applications
    - Hearing officers see their district; closed rows only if they closed them
    - Search (q) matches tracking id prefix, applicant name and email
    """
    filters = ApplicationListFilters(status=status, status_in=status_in, q=q)
    applications, total = await application_service.list_applications(db, actor, filters, pagination)
    return ApplicationListResponse(
        items=[ApplicationRead.from_model(a) for a in applications],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.page_count(total),
    )


@router.get("/stats", response_model=ApplicationStats)
async def application_stats(
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
):
    """Counts per status, scoped to what the caller may see."""
    return ApplicationStats(**await application_service.get_stats(db, actor))


@router.get("/{application_id}", response_model=ApplicationRead)
async def get_application(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
):
    try:
        application = await application_service.get_application_for(db, application_id, actor)
    except LifecycleError as e:
        raise _http_error(e)
    return ApplicationRead.from_model(application)


@router.get("/{application_id}/hearings", response_model=list[HearingRead])
async def list_hearings(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
):
    """Hearing history, oldest first (at most one row is active)."""
    try:
        application = await application_service.get_application_for(db, application_id, actor)
    except LifecycleError as e:
        raise _http_error(e)
    hearings = await application_service.list_hearings(db, application.id)
    return [HearingRead.from_model(h) for h in hearings]


@router.get("/{application_id}/remarks", response_model=list[RemarkRead])
async def list_remarks(
    application_id: str,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
):
    try:
        application = await application_service.get_application_for(db, application_id, actor)
    except LifecycleError as e:
        raise _http_error(e)
    remarks = await application_service.list_remarks(db, application.id)
    return [RemarkRead.from_model(r) for r in remarks]


@router.put("/{application_id}", response_model=TransitionResponse)
async def resubmit_application(
    application_id: str,
    data: ApplicationResubmit,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    """Applicant update of an incomplete application; returns it to ``submitted``."""
    return await _transition(db, cache, application_id, LifecycleAction.RESUBMIT, actor, data)


@router.post("/{application_id}/mark-incomplete", response_model=TransitionResponse)
async def mark_incomplete(
    application_id: str,
    data: MarkIncompleteRequest,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    return await _transition(db, cache, application_id, LifecycleAction.MARK_INCOMPLETE, actor, data)


@router.post("/{application_id}/mark-complete", response_model=TransitionResponse)
async def mark_complete(
    application_id: str,
    data: MarkCompleteRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    return await _transition(db, cache, application_id, LifecycleAction.MARK_COMPLETE, actor, data)


@router.post("/{application_id}/schedule", response_model=TransitionResponse)
async def schedule_hearing(
    application_id: str,
    data: ScheduleHearingRequest,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    """Schedule the first hearing and assign the hearing officer."""
    return await _transition(db, cache, application_id, LifecycleAction.SCHEDULE_HEARING, actor, data)


@router.post("/{application_id}/begin-hearing", response_model=TransitionResponse)
async def begin_hearing(
    application_id: str,
    data: BeginHearingRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    return await _transition(db, cache, application_id, LifecycleAction.BEGIN_HEARING, actor, data)


@router.post("/{application_id}/adjourn", response_model=TransitionResponse)
async def adjourn_hearing(
    application_id: str,
    data: AdjournRequest,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    """Adjourn to a new date; the previous hearing row is deactivated."""
    return await _transition(db, cache, application_id, LifecycleAction.ADJOURN, actor, data)


@router.post("/{application_id}/violation", response_model=TransitionResponse)
async def set_violation(
    application_id: str,
    data: SetViolationRequest,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    return await _transition(db, cache, application_id, LifecycleAction.SET_VIOLATION, actor, data)


@router.post("/{application_id}/approve", response_model=TransitionResponse)
async def approve_application(
    application_id: str,
    data: CloseApplicationRequest,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    return await _transition(db, cache, application_id, LifecycleAction.APPROVE, actor, data)


@router.post("/{application_id}/reject", response_model=TransitionResponse)
async def reject_application(
    application_id: str,
    data: CloseApplicationRequest,
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    return await _transition(db, cache, application_id, LifecycleAction.REJECT, actor, data)
