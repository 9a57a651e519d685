"""Application lifecycle: transition table and guard evaluation.

``decide`` is a pure function of (current application, action, actor,
payload, clock and the few facts it needs from the store) that either raises
a ``LifecycleError`` or returns the ``TransitionDecision`` the store layer
applies. Nothing here performs I/O, so a rejected command never writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from compliance.core.config import settings
from compliance.db.enums import (
    HEARING_ROLES,
    REGISTRAR_ROLES,
    ApplicationStatus,
    AuditAction,
    HearingType,
    LifecycleAction,
    NotificationType,
    RemarkType,
    Role,
)
from compliance.db.models import Application, ApplicationDescription, HearingDate, User
from compliance.schemas.application import (
    AdjournRequest,
    ApplicationResubmit,
    BeginHearingRequest,
    CloseApplicationRequest,
    MarkCompleteRequest,
    MarkIncompleteRequest,
    ScheduleHearingRequest,
    SetViolationRequest,
)
from compliance.schemas.auth import Actor

S = ApplicationStatus
A = LifecycleAction

NON_TERMINAL = frozenset(s for s in ApplicationStatus if not s.is_terminal)

# action -> (allowed source statuses, target status; None keeps the status)
TRANSITIONS: dict[LifecycleAction, tuple[frozenset[ApplicationStatus], ApplicationStatus | None]] = {
    A.MARK_INCOMPLETE: (frozenset({S.SUBMITTED}), S.INCOMPLETE),
    A.MARK_COMPLETE: (frozenset({S.SUBMITTED}), S.COMPLETE),
    A.RESUBMIT: (frozenset({S.INCOMPLETE}), S.SUBMITTED),
    A.SCHEDULE_HEARING: (frozenset({S.COMPLETE}), S.HEARING_SCHEDULED),
    A.BEGIN_HEARING: (frozenset({S.HEARING_SCHEDULED}), S.UNDER_HEARING),
    A.ADJOURN: (frozenset({S.UNDER_HEARING}), S.HEARING_SCHEDULED),
    A.SET_VIOLATION: (NON_TERMINAL, None),
    A.APPROVE: (frozenset({S.UNDER_HEARING}), S.APPROVED_RESOLVED),
    A.REJECT: (frozenset({S.UNDER_HEARING}), S.REJECTED_CLOSED),
}

# Applicant fields a resubmission may explicitly clear
CLEARABLE_FIELDS = frozenset({"applicant_phone", "company_name", "company_address"})

PAYLOAD_TYPES: dict[LifecycleAction, type] = {
    A.MARK_INCOMPLETE: MarkIncompleteRequest,
    A.MARK_COMPLETE: MarkCompleteRequest,
    A.RESUBMIT: ApplicationResubmit,
    A.SCHEDULE_HEARING: ScheduleHearingRequest,
    A.BEGIN_HEARING: BeginHearingRequest,
    A.ADJOURN: AdjournRequest,
    A.SET_VIOLATION: SetViolationRequest,
    A.APPROVE: CloseApplicationRequest,
    A.REJECT: CloseApplicationRequest,
}


class LifecycleError(ValueError):
    """Base for rejected lifecycle commands; ``status_code`` maps to HTTP."""

    status_code = 400


class InvalidTransitionError(LifecycleError):
    status_code = 400


class PermissionDeniedError(LifecycleError):
    status_code = 403


class ApplicationNotFoundError(LifecycleError):
    status_code = 404


class ConflictError(LifecycleError):
    status_code = 409


class ConcurrentModificationError(Exception):
    """The application changed between read and conditional write."""


@dataclass(frozen=True)
class HearingSwap:
    hearing_date: datetime
    hearing_type: HearingType


@dataclass(frozen=True)
class RemarkDraft:
    remark: str
    remark_type: RemarkType
    proceedings: str | None = None


@dataclass(frozen=True)
class NotificationDraft:
    title: str
    message: str
    type: NotificationType
    dedupe_key: str
    recipient_user_id: str | None = None
    recipient_role: Role | None = None


@dataclass
class TransitionDecision:
    action: LifecycleAction
    from_status: ApplicationStatus
    to_status: ApplicationStatus | None
    set_fields: dict[str, Any] = field(default_factory=dict)
    unset_fields: tuple[str, ...] = ()
    hearing: HearingSwap | None = None
    deactivate_hearings: bool = False
    remark: RemarkDraft | None = None
    notifications: list[NotificationDraft] = field(default_factory=list)
    audit_action: AuditAction | None = None
    audit_details: dict[str, Any] = field(default_factory=dict)

    @property
    def swaps_hearing(self) -> bool:
        return self.hearing is not None or self.deactivate_hearings


def allowed_actions(status: ApplicationStatus) -> list[LifecycleAction]:
    """Actions whose source states include ``status`` (ignores actor guards)."""
    return [action for action, (sources, _) in TRANSITIONS.items() if status in sources]


def coerce_payload(action: LifecycleAction, payload: Any):
    payload_type = PAYLOAD_TYPES[action]
    if payload is None:
        return payload_type()
    if isinstance(payload, payload_type):
        return payload
    if isinstance(payload, dict):
        return payload_type.model_validate(payload)
    raise TypeError(f"Unexpected payload for {action.value}: {type(payload).__name__}")


# =============================================================================
# Guards
# =============================================================================


def _require_roles(actor: Actor, roles: frozenset[Role], action: LifecycleAction) -> None:
    if not actor.has_any(roles):
        raise PermissionDeniedError(f"Role not permitted to {action.value.replace('_', ' ')}")


def _require_district(actor: Actor, application: Application) -> None:
    if actor.is_hearing_only and actor.district and application.district != actor.district:
        raise PermissionDeniedError("Application is outside your district")


def _require_assigned_officer(actor: Actor, application: Application, verb: str) -> None:
    if actor.is_admin:
        return
    if not application.assigned_hearing_officer_id:
        raise InvalidTransitionError("No hearing officer assigned to this application.")
    if application.assigned_hearing_officer_id != actor.id:
        raise PermissionDeniedError(f"Only the assigned hearing officer can {verb} this application.")


def _require_remarks(remarks: str, minimum: int) -> None:
    if len(remarks) < minimum:
        raise InvalidTransitionError(f"Remarks must be at least {minimum} characters.")


def _require_future(when: datetime | None, now: datetime, label: str) -> datetime:
    if when is None:
        raise InvalidTransitionError(f"{label} is required.")
    if when.tzinfo is None:
        when = when.replace(tzinfo=now.tzinfo)
    if when <= now:
        raise InvalidTransitionError(f"{label} must be in the future.")
    return when


def applicant_matches(actor: Actor, application: Application) -> bool:
    if application.applicant_user_id and application.applicant_user_id == actor.id:
        return True
    if actor.email and application.applicant_email == actor.email.lower().strip():
        return True
    if actor.cnic:
        cnic = actor.cnic.strip()
        if application.applicant_cnic == cnic:
            return True
        if application.description and application.description.cnic == cnic:
            return True
    return False


def apply_violation(
    application: Application,
    violation_type: str | None,
    sub_violation: str | None,
) -> dict[str, Any] | None:
    """Description document with the violation fields merged in (None if unchanged)."""
    if not violation_type and not sub_violation:
        return None
    description = application.description or ApplicationDescription()
    updates: dict[str, Any] = {}
    if violation_type:
        updates["violation_type"] = violation_type
    if sub_violation:
        updates["sub_violation"] = sub_violation
    return description.model_copy(update=updates).to_document()


def _assigned_notification(application: Application, user_id: str) -> NotificationDraft:
    return NotificationDraft(
        recipient_user_id=user_id,
        title="Application Assigned",
        message=f"{application.tracking_id} is assigned to you.",
        type=NotificationType.APPLICATION_ASSIGNED,
        dedupe_key=f"application_assigned:{application.id}",
    )


# =============================================================================
# Decision
# =============================================================================


def decide(
    application: Application,
    action: LifecycleAction,
    actor: Actor,
    payload: Any = None,
    *,
    now: datetime,
    active_hearing: HearingDate | None = None,
    hearing_officer: User | None = None,
    min_remarks_length: int = settings.MIN_CLOSING_REMARKS_LENGTH,
) -> TransitionDecision:
    """
    Evaluate ``action`` against ``application`` and return what to write.

    Raises:
        InvalidTransitionError: terminal application, wrong source status or a
            failed payload guard
        PermissionDeniedError: actor lacks the role, district or assignment
    """
    if application.is_closed:
        raise InvalidTransitionError("Closed applications cannot be updated.")

    sources, target = TRANSITIONS[action]
    if application.status not in sources:
        raise InvalidTransitionError(
            f"Cannot {action.value.replace('_', ' ')} an application in status "
            f"'{application.status.value}'."
        )

    data = coerce_payload(action, payload)
    decision = TransitionDecision(action=action, from_status=application.status, to_status=target)
    decision.set_fields["updated_by"] = actor.id
    if target is not None:
        decision.set_fields["status"] = target.value

    handler = _HANDLERS[action]
    handler(
        decision,
        application,
        actor,
        data,
        now=now,
        active_hearing=active_hearing,
        hearing_officer=hearing_officer,
        min_remarks_length=min_remarks_length,
    )
    return decision


def _assign_registrar(decision: TransitionDecision, application: Application, actor: Actor) -> None:
    if not application.assigned_registrar_id:
        decision.set_fields["assigned_registrar_id"] = actor.id
        decision.notifications.append(_assigned_notification(application, actor.id))


def _mark_incomplete(decision, application, actor, data: MarkIncompleteRequest, **_):
    _require_roles(actor, REGISTRAR_ROLES, decision.action)
    if not data.remarks:
        raise InvalidTransitionError("Remarks are required when marking an application incomplete.")
    decision.set_fields["incomplete_reason"] = data.remarks
    _assign_registrar(decision, application, actor)
    decision.remark = RemarkDraft(data.remarks, RemarkType.INCOMPLETE)
    decision.audit_action = AuditAction.APPLICATION_MARK_INCOMPLETE


def _mark_complete(decision, application, actor, data: MarkCompleteRequest, **_):
    _require_roles(actor, REGISTRAR_ROLES, decision.action)
    _assign_registrar(decision, application, actor)
    if data.remarks:
        decision.remark = RemarkDraft(data.remarks, RemarkType.COMPLETE)
    decision.audit_action = AuditAction.APPLICATION_MARK_COMPLETE


def _resubmit(decision, application, actor, data: ApplicationResubmit, **_):
    if not actor.is_applicant_only or not applicant_matches(actor, application):
        raise PermissionDeniedError("Only the applicant may resubmit this application.")
    if data.description and data.description.cnic and actor.cnic:
        if data.description.cnic.strip() != actor.cnic.strip():
            raise InvalidTransitionError("Applicant CNIC does not match profile.")

    fields = data.model_dump(exclude_unset=True, exclude={"description"})
    if "applicant_email" in fields and fields["applicant_email"]:
        fields["applicant_email"] = fields["applicant_email"].lower().strip()
    decision.set_fields.update({k: v for k, v in fields.items() if k in CLEARABLE_FIELDS or v is not None})
    if "description" in data.model_fields_set:
        decision.set_fields["description"] = data.description.to_document() if data.description else None
    if not application.applicant_user_id:
        decision.set_fields["applicant_user_id"] = actor.id
    decision.unset_fields = ("incomplete_reason",)
    decision.remark = RemarkDraft("Application updated by applicant", RemarkType.RESUBMITTED)
    decision.notifications.append(
        NotificationDraft(
            recipient_role=Role.REGISTRAR,
            title="Application Resubmitted",
            message=f"{application.tracking_id} updated by {application.applicant_name}.",
            type=NotificationType.APPLICATION_RESUBMITTED,
            dedupe_key=f"application_resubmitted:{application.id}",
        )
    )
    decision.audit_action = AuditAction.APPLICATION_RESUBMITTED


def _schedule_hearing(decision, application, actor, data: ScheduleHearingRequest, *, now, hearing_officer, **_):
    _require_roles(actor, REGISTRAR_ROLES, decision.action)
    hearing_at = _require_future(data.hearing_datetime, now, "Hearing date")
    if not data.hearing_officer_id:
        raise InvalidTransitionError("Hearing officer is required for the first hearing.")
    if hearing_officer is None:
        raise InvalidTransitionError("Hearing officer not found.")
    if Role.HEARING_OFFICER not in hearing_officer.roles:
        raise InvalidTransitionError("Selected user is not a hearing officer.")
    if application.district and hearing_officer.district and hearing_officer.district != application.district:
        raise InvalidTransitionError("Hearing officer district does not match application district.")

    description = apply_violation(application, data.violation_type, data.sub_violation)
    if description is not None:
        decision.set_fields["description"] = description
    decision.set_fields["assigned_hearing_officer_id"] = hearing_officer.id
    decision.hearing = HearingSwap(hearing_date=hearing_at, hearing_type=data.hearing_type)
    decision.remark = RemarkDraft(
        data.remarks or f"Hearing scheduled ({data.hearing_type.value}).",
        RemarkType.HEARING_SCHEDULED,
        proceedings=data.proceedings,
    )
    decision.notifications.append(
        NotificationDraft(
            recipient_user_id=hearing_officer.id,
            title="Hearing Scheduled",
            message=f"{application.tracking_id} scheduled for {hearing_at.isoformat()}.",
            type=NotificationType.HEARING_SCHEDULED,
            dedupe_key=f"hearing_scheduled:{application.id}:{hearing_at.isoformat()}",
        )
    )
    decision.audit_action = AuditAction.HEARING_SCHEDULED
    decision.audit_details = {
        "hearing_date": hearing_at.isoformat(),
        "hearing_officer_id": hearing_officer.id,
    }


def _begin_hearing(decision, application, actor, data: BeginHearingRequest, *, now, active_hearing, **_):
    _require_roles(actor, HEARING_ROLES, decision.action)
    _require_district(actor, application)
    _require_assigned_officer(actor, application, "open the hearing of")
    if active_hearing is None:
        raise InvalidTransitionError("No hearing scheduled for this application.")
    if not actor.is_admin and active_hearing.hearing_date > now:
        raise InvalidTransitionError("Hearing has not occurred yet.")
    decision.remark = RemarkDraft(data.remarks or "Hearing started", RemarkType.HEARING_STARTED)
    decision.audit_action = AuditAction.HEARING_STARTED
    decision.audit_details = {"hearing_id": active_hearing.id}


def _adjourn(decision, application, actor, data: AdjournRequest, *, now, min_remarks_length, **_):
    _require_roles(actor, HEARING_ROLES, decision.action)
    _require_district(actor, application)
    _require_assigned_officer(actor, application, "adjourn")
    _require_remarks(data.remarks, min_remarks_length)
    hearing_at = _require_future(data.new_hearing_datetime, now, "New hearing date")

    description = apply_violation(application, data.violation_type, data.sub_violation)
    if description is not None:
        decision.set_fields["description"] = description
    decision.hearing = HearingSwap(hearing_date=hearing_at, hearing_type=HearingType.EXTENSION)
    decision.remark = RemarkDraft(data.remarks, RemarkType.ADJOURNED, proceedings=data.proceedings)
    if application.assigned_hearing_officer_id:
        decision.notifications.append(
            NotificationDraft(
                recipient_user_id=application.assigned_hearing_officer_id,
                title="Hearing Scheduled",
                message=f"{application.tracking_id} adjourned to {hearing_at.isoformat()}.",
                type=NotificationType.HEARING_SCHEDULED,
                dedupe_key=f"hearing_scheduled:{application.id}:{hearing_at.isoformat()}",
            )
        )
    decision.audit_action = AuditAction.APPLICATION_ADJOURNED
    decision.audit_details = {"hearing_date": hearing_at.isoformat()}


def _set_violation(decision, application, actor, data: SetViolationRequest, **_):
    _require_roles(actor, HEARING_ROLES, decision.action)
    _require_district(actor, application)
    if not data.violation_type:
        raise InvalidTransitionError("Violation type is required.")
    decision.set_fields["description"] = apply_violation(application, data.violation_type, data.sub_violation)
    decision.audit_action = AuditAction.VIOLATION_SET
    decision.audit_details = {"violation_type": data.violation_type, "sub_violation": data.sub_violation}


def _close(decision, application, actor, data: CloseApplicationRequest, *, now, min_remarks_length, **_):
    approving = decision.action == A.APPROVE
    _require_roles(actor, HEARING_ROLES, decision.action)
    _require_district(actor, application)
    _require_assigned_officer(actor, application, "approve" if approving else "reject")
    _require_remarks(data.remarks, min_remarks_length)
    if approving and not (data.violation_type or application.violation_type):
        raise InvalidTransitionError("A violation must be set before approving.")

    description = apply_violation(application, data.violation_type, data.sub_violation)
    if description is not None:
        decision.set_fields["description"] = description
    decision.set_fields.update({"closed_at": now, "closed_by": actor.id, "hearing_officer_id": actor.id})
    decision.deactivate_hearings = True
    decision.remark = RemarkDraft(
        data.remarks,
        RemarkType.APPROVED if approving else RemarkType.REJECTED,
        proceedings=data.proceedings,
    )
    if application.applicant_user_id:
        decision.notifications.append(
            NotificationDraft(
                recipient_user_id=application.applicant_user_id,
                title="Application Closed",
                message=f"{application.tracking_id} was {'approved' if approving else 'rejected'}.",
                type=NotificationType.APPLICATION_CLOSED,
                dedupe_key=f"application_closed:{application.id}",
            )
        )
    decision.audit_action = AuditAction.APPLICATION_APPROVED if approving else AuditAction.APPLICATION_REJECTED


_HANDLERS = {
    A.MARK_INCOMPLETE: _mark_incomplete,
    A.MARK_COMPLETE: _mark_complete,
    A.RESUBMIT: _resubmit,
    A.SCHEDULE_HEARING: _schedule_hearing,
    A.BEGIN_HEARING: _begin_hearing,
    A.ADJOURN: _adjourn,
    A.SET_VIOLATION: _set_violation,
    A.APPROVE: _close,
    A.REJECT: _close,
}
