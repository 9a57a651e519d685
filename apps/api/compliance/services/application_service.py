"""Application service - submission, lifecycle commands and read models.

Lifecycle commands are decided by ``lifecycle.decide`` (pure) and written
here. The status change, hearing swap and remark are written inside one
store transaction, guarded by a compare-and-set on the application's
``status`` and ``updated_at`` as read. Audit entries and notifications are
written after the commit and never fail the command.
"""

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from compliance.core.cache import EphemeralCache
from compliance.core.config import settings
from compliance.core.structured_logging import build_log_context
from compliance.db.enums import (
    ApplicationStatus,
    AuditAction,
    LifecycleAction,
    NotificationType,
    Role,
)
from compliance.db.models import (
    APPLICATIONS,
    HEARING_DATES,
    NOTIFICATIONS,
    REMARKS,
    Application,
    HearingDate,
    Remark,
)
from compliance.schemas.application import ApplicationCreate, ApplicationListFilters
from compliance.schemas.auth import SYSTEM_ACTOR, Actor
from compliance.services import audit_service, notification_service, reference_service
from compliance.services.lifecycle import (
    ApplicationNotFoundError,
    ConcurrentModificationError,
    ConflictError,
    InvalidTransitionError,
    LifecycleError,
    PermissionDeniedError,
    TransitionDecision,
    applicant_matches,
    coerce_payload,
    decide,
)
from compliance.utils.pagination import PaginationParams, paginate_find

logger = logging.getLogger(__name__)

TRACKING_ID_ATTEMPTS = 3

# Statuses a hearing-only officer lists without owning the hearing
HEARING_OPEN_STATUSES = (
    ApplicationStatus.COMPLETE,
    ApplicationStatus.HEARING_SCHEDULED,
    ApplicationStatus.UNDER_HEARING,
)

# The reminder job runs more than once a day; one reminder per hearing per user
HEARING_REMINDER_DEDUPE_WINDOW = timedelta(days=1)


@dataclass
class TransitionResult:
    application: Application
    decision: TransitionDecision
    hearing_id: str | None = None


def _object_id(application_id: str) -> ObjectId:
    try:
        return ObjectId(application_id)
    except (InvalidId, TypeError) as exc:
        raise ApplicationNotFoundError("Application not found") from exc


def generate_tracking_id(now: datetime, prefix: str = settings.TRACKING_ID_PREFIX) -> str:
    """Human-facing id, e.g. ``PC-20260118-3F9A1C``."""
    return f"{prefix}-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


# =============================================================================
# Reads
# =============================================================================


async def get_application(db, application_id: str) -> Application:
    """Raises ApplicationNotFoundError when the id is unknown or malformed."""
    doc = await db[APPLICATIONS].find_one({"_id": _object_id(application_id)})
    if doc is None:
        raise ApplicationNotFoundError("Application not found")
    return Application.from_document(doc)


def ensure_can_view(actor: Actor, application: Application) -> None:
    if actor.is_applicant_only and not applicant_matches(actor, application):
        raise PermissionDeniedError("Not your application")
    if actor.is_hearing_only and actor.district and application.district != actor.district:
        raise PermissionDeniedError("Application is outside your district")


async def get_application_for(db, application_id: str, actor: Actor) -> Application:
    application = await get_application(db, application_id)
    ensure_can_view(actor, application)
    return application


async def get_active_hearing(db, application_id: str) -> HearingDate | None:
    doc = await db[HEARING_DATES].find_one({"application_id": application_id, "is_active": True})
    return HearingDate.from_document(doc) if doc else None


async def list_hearings(db, application_id: str) -> list[HearingDate]:
    docs = await db[HEARING_DATES].find({"application_id": application_id}).sort("sequence_no", 1).to_list(length=None)
    return [HearingDate.from_document(doc) for doc in docs]


async def list_remarks(db, application_id: str) -> list[Remark]:
    docs = await db[REMARKS].find({"application_id": application_id}).sort("created_at", 1).to_list(length=None)
    return [Remark.from_document(doc) for doc in docs]


def _scope_filter(actor: Actor) -> dict[str, Any]:
    """Store filter matching the applications ``ensure_can_view`` lets through."""
    if actor.is_applicant_only:
        clauses: list[dict[str, Any]] = [{"applicant_user_id": actor.id}]
        if actor.email:
            clauses.append({"applicant_email": actor.email.lower().strip()})
        cnic = actor.cnic.strip() if actor.cnic else None
        if cnic:
            clauses.extend([{"applicant_cnic": cnic}, {"description.cnic": cnic}])
        return {"$or": clauses}
    if actor.is_hearing_only and actor.district:
        return {"description.district": actor.district}
    return {}


def _all_of(clauses: list[dict[str, Any]]) -> dict[str, Any]:
    clauses = [c for c in clauses if c]
    if not clauses:
        return {}
    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


def _requested_statuses(filters: ApplicationListFilters) -> list[str] | None:
    if filters.status_in:
        values = [v.strip() for v in filters.status_in.split(",") if v.strip()]
        return values or None
    if not filters.status or filters.status == "all":
        return None
    if filters.status == "closed":
        return sorted(s.value for s in ApplicationStatus.terminal())
    return [filters.status]


def _hearing_status_clause(actor: Actor, requested: list[str] | None) -> dict[str, Any]:
    # Closed applications are only listed to the officer who closed them.
    open_values = [s.value for s in HEARING_OPEN_STATUSES]
    closed_values = sorted(s.value for s in ApplicationStatus.terminal())
    wanted = [v for v in requested if v in open_values or v in closed_values] if requested else open_values
    wanted_open = [v for v in wanted if v in open_values]
    wanted_closed = [v for v in wanted if v in closed_values]

    closed_clause = {"status": {"$in": wanted_closed}, "hearing_officer_id": actor.id}
    if wanted_open and wanted_closed:
        return {"$or": [{"status": {"$in": wanted_open}}, closed_clause]}
    if wanted_closed:
        return closed_clause
    return {"status": {"$in": wanted_open}}


def _search_clause(term: str) -> dict[str, Any]:
    escaped = re.escape(term)
    return {
        "$or": [
            {"tracking_id": {"$regex": f"^{escaped}", "$options": "i"}},
            {"applicant_name": {"$regex": escaped, "$options": "i"}},
            {"applicant_email": {"$regex": escaped, "$options": "i"}},
        ]
    }


async def list_applications(
    db,
    actor: Actor,
    filters: ApplicationListFilters,
    pagination: PaginationParams,
) -> tuple[list[Application], int]:
    """
    Applications visible to ``actor``, newest first.

    - Applicants see rows matched by user id, email or CNIC
    - Hearing-only officers see complete/scheduled/under-hearing rows in
      their district, plus closed rows they closed themselves
    - Registrars and admins see everything

    Returns:
        (applications, total_count)
    """
    requested = _requested_statuses(filters)
    clauses = [_scope_filter(actor)]
    if actor.is_hearing_only:
        clauses.append(_hearing_status_clause(actor, requested))
    elif requested:
        clauses.append({"status": {"$in": requested}})
    if filters.q:
        clauses.append(_search_clause(filters.q))

    docs, total = await paginate_find(
        db[APPLICATIONS],
        _all_of(clauses),
        pagination,
        sort=[("created_at", -1)],
    )
    return [Application.from_document(doc) for doc in docs], total


async def get_application_by_tracking_id(db, tracking_id: str) -> Application:
    """Public lookup; tracking ids are matched case-insensitively."""
    doc = await db[APPLICATIONS].find_one({"tracking_id": tracking_id.strip().upper()})
    if doc is None:
        raise ApplicationNotFoundError("Application not found")
    return Application.from_document(doc)


async def get_stats(db, actor: Actor) -> dict[str, Any]:
    """Counts per status within the actor's visible scope."""
    scope = _scope_filter(actor)
    by_status: dict[str, int] = {}
    for status in ApplicationStatus:
        by_status[status.value] = await db[APPLICATIONS].count_documents({**scope, "status": status.value})
    return {"total": sum(by_status.values()), "by_status": by_status}


# =============================================================================
# Submission
# =============================================================================


async def create_application(
    db,
    data: ApplicationCreate,
    actor: Actor,
    now: datetime | None = None,
) -> Application:
    """Insert a submitted application with a fresh tracking id."""
    now = now or datetime.now(timezone.utc)
    description = data.description.to_document() if data.description else None
    cnic = (data.description.cnic if data.description else None) or actor.cnic
    document: dict[str, Any] = {
        "applicant_name": data.applicant_name,
        "applicant_email": data.applicant_email,
        "applicant_phone": data.applicant_phone,
        "applicant_cnic": cnic,
        "applicant_user_id": actor.id if Role.APPLICANT in actor.roles else None,
        "company_name": data.company_name,
        "company_address": data.company_address,
        "application_type": data.application_type,
        "description": description,
        "status": ApplicationStatus.SUBMITTED.value,
        "created_by": actor.id,
        "updated_by": actor.id,
        "created_at": now,
        "updated_at": now,
    }

    for attempt in range(1, TRACKING_ID_ATTEMPTS + 1):
        document["tracking_id"] = generate_tracking_id(now)
        document.pop("_id", None)
        try:
            result = await db[APPLICATIONS].insert_one(document)
            break
        except DuplicateKeyError:
            if attempt == TRACKING_ID_ATTEMPTS:
                raise ConflictError("Could not allocate a unique tracking id")
            logger.warning(
                "Tracking id collision, retrying",
                extra=build_log_context(collection=APPLICATIONS, actor_id=actor.id),
            )

    application = Application.from_document({**document, "_id": result.inserted_id})
    logger.info(
        "Application submitted",
        extra=build_log_context(application_id=application.id, actor_id=actor.id),
    )

    await audit_service.log_event(
        db,
        AuditAction.APPLICATION_SUBMITTED,
        audit_service.ENTITY_APPLICATION,
        entity_id=application.id,
        user_id=actor.id,
        details={"tracking_id": application.tracking_id},
    )
    await notification_service.notify_users_by_role(
        db,
        Role.REGISTRAR,
        NotificationType.APPLICATION_SUBMITTED,
        title="New Application",
        message=f"{application.tracking_id} submitted.",
        application_id=application.id,
        dedupe_key=f"application_submitted:{application.id}",
        exclude_user_id=actor.id,
    )
    return application


# =============================================================================
# Lifecycle commands
# =============================================================================


async def _validate_violation(db, cache: EphemeralCache | None, payload: Any) -> None:
    violation_type = getattr(payload, "violation_type", None)
    if not violation_type:
        return
    known = await reference_service.find_violation_type(db, cache, violation_type)
    if known is None:
        raise InvalidTransitionError(f"Unknown violation type '{violation_type}'.")
    sub_violation = getattr(payload, "sub_violation", None)
    if sub_violation and known.subviolations:
        if sub_violation not in {sub.name for sub in known.subviolations}:
            raise InvalidTransitionError(f"Unknown sub-violation '{sub_violation}' for '{violation_type}'.")


async def _run_atomic(db, callback, use_transactions: bool):
    if not use_transactions:
        return await callback(None)
    async with db.client.start_session() as session:
        return await session.with_transaction(callback)


async def _write_decision(
    db,
    application: Application,
    decision: TransitionDecision,
    actor: Actor,
    now: datetime,
    use_transactions: bool,
) -> tuple[Application, str | None]:
    application_id = application.id
    update: dict[str, Any] = {"$set": {**decision.set_fields, "updated_at": now}}
    if decision.unset_fields:
        update["$unset"] = {name: "" for name in decision.unset_fields}
    status_after = decision.to_status or decision.from_status

    async def write(session):
        doc = await db[APPLICATIONS].find_one_and_update(
            {
                "_id": ObjectId(application_id),
                "status": application.status.value,
                "updated_at": application.updated_at,
                "closed_at": None,
            },
            update,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if doc is None:
            raise ConcurrentModificationError(application_id)

        hearing_id = None
        if decision.swaps_hearing:
            await db[HEARING_DATES].update_many(
                {"application_id": application_id, "is_active": True},
                {"$set": {"is_active": False}},
                session=session,
            )
        if decision.hearing is not None:
            latest = await db[HEARING_DATES].find_one(
                {"application_id": application_id},
                sort=[("sequence_no", -1)],
                session=session,
            )
            result = await db[HEARING_DATES].insert_one(
                {
                    "application_id": application_id,
                    "hearing_date": decision.hearing.hearing_date,
                    "hearing_type": decision.hearing.hearing_type.value,
                    "sequence_no": (latest["sequence_no"] if latest else 0) + 1,
                    "is_active": True,
                    "scheduled_by": actor.id,
                    "created_at": now,
                },
                session=session,
            )
            hearing_id = str(result.inserted_id)

        if decision.remark is not None:
            await db[REMARKS].insert_one(
                {
                    "application_id": application_id,
                    "user_id": actor.id,
                    "remark": decision.remark.remark,
                    "remark_type": decision.remark.remark_type.value,
                    "proceedings": decision.remark.proceedings,
                    "status_at_time": status_after.value,
                    "created_at": now,
                },
                session=session,
            )
        return Application.from_document(doc), hearing_id

    return await _run_atomic(db, write, use_transactions)


async def _emit_side_effects(db, application: Application, decision: TransitionDecision, actor: Actor) -> None:
    for draft in decision.notifications:
        if draft.recipient_user_id:
            if draft.recipient_user_id == actor.id:
                continue
            await notification_service.create_notification(
                db,
                recipient_user_id=draft.recipient_user_id,
                type=draft.type,
                title=draft.title,
                message=draft.message,
                application_id=application.id,
                dedupe_key=draft.dedupe_key,
            )
        elif draft.recipient_role:
            await notification_service.notify_users_by_role(
                db,
                draft.recipient_role,
                draft.type,
                title=draft.title,
                message=draft.message,
                application_id=application.id,
                dedupe_key=draft.dedupe_key,
                exclude_user_id=actor.id,
            )

    if decision.audit_action is not None:
        details = {
            "from_status": decision.from_status.value,
            "to_status": application.status.value,
            **decision.audit_details,
        }
        await audit_service.log_event(
            db,
            decision.audit_action,
            audit_service.ENTITY_APPLICATION,
            entity_id=application.id,
            user_id=actor.id,
            details=details,
        )


async def transition(
    db,
    application_id: str,
    action: LifecycleAction,
    actor: Actor,
    payload: Any = None,
    *,
    now: datetime | None = None,
    cache: EphemeralCache | None = None,
    use_transactions: bool | None = None,
) -> TransitionResult:
    """
    Apply a lifecycle command.

    Guards run against a fresh read of the application; a concurrent write
    between that read and the conditional update is retried once.

    Raises:
        ApplicationNotFoundError: unknown application
        InvalidTransitionError / PermissionDeniedError: guard failures (nothing written)
        ConflictError: the application kept changing underneath the command
    """
    now = now or datetime.now(timezone.utc)
    if use_transactions is None:
        use_transactions = settings.MONGO_USE_TRANSACTIONS
    data = coerce_payload(action, payload)
    await _validate_violation(db, cache, data)

    for attempt in (1, 2):
        application = await get_application(db, application_id)
        active_hearing = await get_active_hearing(db, application_id)
        hearing_officer = None
        if action == LifecycleAction.SCHEDULE_HEARING and data.hearing_officer_id:
            hearing_officer = await reference_service.get_user(db, data.hearing_officer_id)

        decision = decide(
            application,
            action,
            actor,
            data,
            now=now,
            active_hearing=active_hearing,
            hearing_officer=hearing_officer,
        )
        try:
            updated, hearing_id = await _write_decision(db, application, decision, actor, now, use_transactions)
        except ConcurrentModificationError:
            if attempt == 2:
                raise ConflictError("Application was modified concurrently; please retry") from None
            logger.warning(
                "Concurrent modification, retrying transition",
                extra=build_log_context(application_id=application_id, actor_id=actor.id, action=action.value),
            )
            continue
        break

    logger.info(
        "Application transitioned",
        extra={
            **build_log_context(application_id=application_id, actor_id=actor.id, action=action.value),
            "from_status": decision.from_status.value,
            "to_status": updated.status.value,
        },
    )
    await _emit_side_effects(db, updated, decision, actor)
    return TransitionResult(application=updated, decision=decision, hearing_id=hearing_id)


async def advance_due_hearings(db, now: datetime | None = None) -> list[str]:
    """
    Move ``hearing_scheduled`` applications whose active hearing date has
    arrived to ``under_hearing``. Returns the advanced application ids.
    """
    now = now or datetime.now(timezone.utc)
    due = await db[HEARING_DATES].find({"is_active": True, "hearing_date": {"$lte": now}}).to_list(length=None)

    advanced: list[str] = []
    for hearing in due:
        application_id = hearing["application_id"]
        try:
            application = await get_application(db, application_id)
            if application.status != ApplicationStatus.HEARING_SCHEDULED:
                continue
            await transition(
                db,
                application_id,
                LifecycleAction.BEGIN_HEARING,
                SYSTEM_ACTOR,
                {"remarks": "Hearing date reached"},
                now=now,
            )
        except LifecycleError as exc:
            logger.warning(
                "Could not advance hearing: %s",
                exc,
                extra=build_log_context(application_id=application_id, action=LifecycleAction.BEGIN_HEARING.value),
            )
            continue
        advanced.append(application_id)
    return advanced


async def notify_hearings_today(db, now: datetime | None = None) -> int:
    """
    Remind staff of active hearings falling on ``now``'s calendar day (UTC).

    Each hearing notifies its hearing officer (assigned, closing, or whoever
    scheduled it) and the assigned registrar, or every registrar when none is
    assigned. Safe to run repeatedly: reminders are deduplicated per hearing
    and recipient. Returns the number of notifications created.
    """
    now = now or datetime.now(timezone.utc)
    day_start = datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)
    hearings = await db[HEARING_DATES].find(
        {"is_active": True, "hearing_date": {"$gte": day_start, "$lt": day_start + timedelta(days=1)}}
    ).to_list(length=None)
    if not hearings:
        return 0

    registrar_ids: list[str] | None = None
    created = 0
    for hearing in hearings:
        try:
            application = await get_application(db, hearing["application_id"])
        except ApplicationNotFoundError:
            logger.warning(
                "Active hearing without application",
                extra=build_log_context(application_id=hearing["application_id"], collection=HEARING_DATES),
            )
            continue

        recipients: list[str] = []
        officer_id = (
            application.assigned_hearing_officer_id
            or application.hearing_officer_id
            or hearing.get("scheduled_by")
        )
        if officer_id:
            recipients.append(officer_id)
        if application.assigned_registrar_id:
            recipients.append(application.assigned_registrar_id)
        else:
            if registrar_ids is None:
                registrar_ids = await notification_service.user_ids_with_role(db, Role.REGISTRAR)
            recipients.extend(registrar_ids)

        hearing_id = str(hearing["_id"])
        for user_id in dict.fromkeys(recipients):
            notification = await notification_service.create_notification(
                db,
                recipient_user_id=user_id,
                type=NotificationType.HEARING_TODAY,
                title="Hearing Today",
                message=f"{application.tracking_id} hearing is scheduled for {hearing['hearing_date']:%H:%M} UTC today.",
                application_id=application.id,
                dedupe_key=f"hearing_today:{hearing_id}:{user_id}",
                dedupe_window=HEARING_REMINDER_DEDUPE_WINDOW,
            )
            if notification:
                created += 1

    logger.info("Hearing reminders sent: %d", created, extra=build_log_context(collection=NOTIFICATIONS))
    return created
