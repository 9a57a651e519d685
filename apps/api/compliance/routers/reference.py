"""Reference data routes (violation types, categories, hearing officers)."""

from fastapi import APIRouter, Depends, HTTPException, Query

from compliance.core.cache import EphemeralCache
from compliance.core.deps import get_cache, get_current_actor, get_db, require_roles
from compliance.db.enums import ADMIN_ROLES, STAFF_ROLES
from compliance.schemas.auth import Actor
from compliance.schemas.reference import HearingOfficerRead, ViolationTypeCreate, ViolationTypeRead
from compliance.services import reference_service
from compliance.services.lifecycle import ConflictError

router = APIRouter()


@router.get("/violation-types", response_model=list[ViolationTypeRead])
async def list_violation_types(
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    violation_types = await reference_service.list_violation_types(db, cache)
    return [ViolationTypeRead.from_model(v) for v in violation_types]


@router.post("/violation-types", response_model=ViolationTypeRead, status_code=201)
async def create_violation_type(
    data: ViolationTypeCreate,
    actor: Actor = Depends(require_roles(ADMIN_ROLES)),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    """Create a violation type (admin only). Clears the cached list."""
    try:
        violation_type = await reference_service.create_violation_type(
            db, cache, data.name, data.subviolations, actor
        )
    except ConflictError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return ViolationTypeRead.from_model(violation_type)


@router.get("/categories")
async def list_categories(
    actor: Actor = Depends(get_current_actor),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    categories = await reference_service.list_categories(db, cache)
    return [{"id": c.id, "name": c.name, "subcategories": c.subcategories} for c in categories]


@router.get("/hearing-officers", response_model=list[HearingOfficerRead])
async def list_hearing_officers(
    district: str | None = Query(None),
    actor: Actor = Depends(require_roles(STAFF_ROLES)),
    db=Depends(get_db),
    cache: EphemeralCache = Depends(get_cache),
):
    """Hearing officers, optionally narrowed to one district (for scheduling)."""
    officers = await reference_service.list_hearing_officers(db, cache, district=district)
    return [HearingOfficerRead.from_model(o) for o in officers]
