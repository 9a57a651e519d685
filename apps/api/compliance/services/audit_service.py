"""Audit logging service - compliance event tracking.

Security guidelines:
- NEVER log secrets or full identity documents
- Use IDs instead of raw data where possible

Audit writes are fire-and-forget: a failed insert is logged and never fails
the command that produced it.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from pymongo.errors import PyMongoError

from compliance.core.structured_logging import build_log_context
from compliance.db.enums import AuditAction
from compliance.db.models import AUDIT_LOGS

logger = logging.getLogger(__name__)

ENTITY_APPLICATION = "application"
ENTITY_VIOLATION_TYPE = "violation_type"


async def log_event(
    db,
    action: AuditAction | str,
    entity_type: str,
    entity_id: str | None = None,
    user_id: str | None = None,
    details: dict[str, Any] | None = None,
    *,
    session=None,
) -> str | None:
    """
    Record an audit entry.

    Returns the inserted id, or None when the write failed.
    """
    action_value = action.value if isinstance(action, AuditAction) else action
    document = {
        "action": action_value,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "user_id": user_id,
        "details": details or None,
        "created_at": datetime.now(timezone.utc),
    }
    try:
        result = await db[AUDIT_LOGS].insert_one(document, session=session)
    except PyMongoError:
        logger.exception(
            "Audit write failed",
            extra=build_log_context(
                collection=AUDIT_LOGS,
                action=action_value,
                application_id=entity_id if entity_type == ENTITY_APPLICATION else None,
                actor_id=user_id,
            ),
        )
        return None
    return str(result.inserted_id)

