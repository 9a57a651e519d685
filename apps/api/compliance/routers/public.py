"""Public tracking routes - no identity headers required.

Only the reduced ``Public*Read`` models are returned; contact details,
remarks and staff assignments stay behind the authenticated routes.
"""

from fastapi import APIRouter, Depends, HTTPException

from compliance.core.deps import get_db
from compliance.schemas.application import PublicApplicationRead, PublicHearingRead
from compliance.services import application_service
from compliance.services.lifecycle import ApplicationNotFoundError

router = APIRouter()


@router.get("/applications/{tracking_id}", response_model=PublicApplicationRead)
async def track_application(tracking_id: str, db=Depends(get_db)):
    """Status of an application by its tracking id (case-insensitive)."""
    try:
        application = await application_service.get_application_by_tracking_id(db, tracking_id)
    except ApplicationNotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return PublicApplicationRead.from_model(application)


@router.get("/applications/{tracking_id}/hearings", response_model=list[PublicHearingRead])
async def track_application_hearings(tracking_id: str, db=Depends(get_db)):
    try:
        application = await application_service.get_application_by_tracking_id(db, tracking_id)
    except ApplicationNotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    hearings = await application_service.list_hearings(db, application.id)
    return [PublicHearingRead.from_model(h) for h in hearings]
