"""FastAPI dependencies for identity, authorization, store and cache access."""

from fastapi import Depends, HTTPException, Request

from compliance.core.cache import EphemeralCache
from compliance.db.enums import Role
from compliance.schemas.auth import Actor

# Identity headers set by the authentication gateway
USER_ID_HEADER = "X-User-Id"
USER_ROLES_HEADER = "X-User-Roles"
USER_DISTRICT_HEADER = "X-User-District"
USER_EMAIL_HEADER = "X-User-Email"
USER_CNIC_HEADER = "X-User-Cnic"


def get_db(request: Request):
    """Database handle created in the application lifespan."""
    return request.app.state.db


def get_cache(request: Request) -> EphemeralCache:
    """Reference-data cache created in the application lifespan."""
    return request.app.state.cache


def get_current_actor(request: Request) -> Actor:
    """
    Resolve the acting user from gateway headers.

    Raises:
        HTTPException 401: No identity forwarded
        HTTPException 403: Unknown role
    """
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    raw_roles = [r.strip() for r in (request.headers.get(USER_ROLES_HEADER) or "").split(",") if r.strip()]
    for raw in raw_roles:
        # Validate role is a known enum value - return 403 not 500
        if not Role.has_value(raw):
            raise HTTPException(status_code=403, detail=f"Unknown role '{raw}'. Contact administrator.")

    return Actor(
        id=user_id,
        roles=frozenset(Role(raw) for raw in raw_roles),
        district=(request.headers.get(USER_DISTRICT_HEADER) or "").strip() or None,
        email=(request.headers.get(USER_EMAIL_HEADER) or "").strip().lower() or None,
        cnic=(request.headers.get(USER_CNIC_HEADER) or "").strip() or None,
    )


def require_roles(allowed_roles):
    """
    Dependency factory for role-based authorization.

    Usage:
        @router.post("/violation-types", dependencies=[Depends(require_roles(ADMIN_ROLES))])
    """

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not actor.has_any(allowed_roles):
            raise HTTPException(status_code=403, detail="Role not authorized for this action")
        return actor

    return dependency
