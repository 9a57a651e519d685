"""
Notification Service - in-app notifications for application events.

Notifications are best-effort side effects of lifecycle commands: a failed
write is logged and never rolls back the command.
"""

import logging
from datetime import datetime, timedelta, timezone

from pymongo.errors import PyMongoError

from compliance.core.structured_logging import build_log_context
from compliance.db.enums import NotificationType, Role
from compliance.db.models import NOTIFICATIONS, USERS, Notification

logger = logging.getLogger(__name__)

# Repeat notifications with the same dedupe key inside this window are dropped
DEDUPE_WINDOW = timedelta(hours=1)


async def create_notification(
    db,
    recipient_user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    application_id: str | None = None,
    dedupe_key: str | None = None,
    dedupe_window: timedelta = DEDUPE_WINDOW,
) -> Notification | None:
    """
    Create a notification for one user.

    Returns None when an identical notification (same recipient and dedupe
    key) was created within ``dedupe_window`` or the write failed.
    """
    now = datetime.now(timezone.utc)
    collection = db[NOTIFICATIONS]
    try:
        if dedupe_key:
            existing = await collection.find_one(
                {
                    "recipient_user_id": recipient_user_id,
                    "dedupe_key": dedupe_key,
                    "created_at": {"$gte": now - dedupe_window},
                }
            )
            if existing:
                return None

        document = {
            "recipient_user_id": recipient_user_id,
            "application_id": application_id,
            "title": title,
            "message": message,
            "type": type.value,
            "link": f"/applications/{application_id}" if application_id else None,
            "dedupe_key": dedupe_key,
            "is_read": False,
            "created_at": now,
        }
        result = await collection.insert_one(document)
    except PyMongoError:
        logger.exception(
            "Notification write failed",
            extra=build_log_context(
                collection=NOTIFICATIONS,
                application_id=application_id,
                action=type.value,
            ),
        )
        return None
    return Notification.from_document({"_id": result.inserted_id, **document})


async def user_ids_with_role(db, role: Role) -> list[str]:
    """Ids of every user holding ``role``; empty (and logged) when the lookup fails."""
    try:
        users = await db[USERS].find({"roles": role.value}, {"_id": 1}).to_list(length=None)
    except PyMongoError:
        logger.exception("Role lookup for notifications failed", extra=build_log_context(collection=USERS))
        return []
    return [str(user["_id"]) for user in users]


async def notify_users_by_role(
    db,
    role: Role,
    type: NotificationType,
    title: str,
    message: str,
    application_id: str | None = None,
    dedupe_key: str | None = None,
    exclude_user_id: str | None = None,
) -> int:
    """Notify every user holding ``role``. Returns the number created."""
    created = 0
    for user_id in await user_ids_with_role(db, role):
        if user_id == exclude_user_id:
            continue
        notification = await create_notification(
            db,
            recipient_user_id=user_id,
            type=type,
            title=title,
            message=message,
            application_id=application_id,
            dedupe_key=dedupe_key,
        )
        if notification:
            created += 1
    return created

