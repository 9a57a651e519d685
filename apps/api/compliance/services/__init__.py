"""Service layer modules."""

from compliance.services.application_service import (
    TransitionResult,
    advance_due_hearings,
    create_application,
    get_application,
    get_application_by_tracking_id,
    list_applications,
    notify_hearings_today,
    transition,
)
from compliance.services.lifecycle import (
    ApplicationNotFoundError,
    ConflictError,
    InvalidTransitionError,
    LifecycleError,
    PermissionDeniedError,
    decide,
)

__all__ = [
    "ApplicationNotFoundError",
    "ConflictError",
    "InvalidTransitionError",
    "LifecycleError",
    "PermissionDeniedError",
    "TransitionResult",
    "advance_due_hearings",
    "create_application",
    "decide",
    "get_application",
    "get_application_by_tracking_id",
    "list_applications",
    "notify_hearings_today",
    "transition",
]
