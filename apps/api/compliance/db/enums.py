"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    Staff and applicant roles.

    - APPLICANT: Owns submitted applications, may resubmit when incomplete
    - REGISTRAR: Completeness review and first hearing scheduling
    - HEARING_OFFICER: Runs hearings, adjourns, approves or rejects
    - ADMIN / SUPER_ADMIN: May act in place of any staff role
    """
    APPLICANT = "applicant"
    REGISTRAR = "registrar"
    HEARING_OFFICER = "hearing_officer"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})
REGISTRAR_ROLES = frozenset({Role.REGISTRAR, Role.ADMIN, Role.SUPER_ADMIN})
HEARING_ROLES = frozenset({Role.HEARING_OFFICER, Role.ADMIN, Role.SUPER_ADMIN})
STAFF_ROLES = REGISTRAR_ROLES | HEARING_ROLES


class ApplicationStatus(str, Enum):
    """
    Application lifecycle status.

        submitted → complete → hearing_scheduled ⇄ under_hearing
                  ↘ incomplete → submitted (resubmission)
        under_hearing → approved_resolved | rejected_closed (terminal)
    """
    SUBMITTED = "submitted"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    HEARING_SCHEDULED = "hearing_scheduled"
    UNDER_HEARING = "under_hearing"
    APPROVED_RESOLVED = "approved_resolved"
    REJECTED_CLOSED = "rejected_closed"

    @classmethod
    def terminal(cls) -> frozenset["ApplicationStatus"]:
        """Statuses that accept no further transitions."""
        return frozenset({cls.APPROVED_RESOLVED, cls.REJECTED_CLOSED})

    @property
    def is_terminal(self) -> bool:
        return self in ApplicationStatus.terminal()


class LifecycleAction(str, Enum):
    """Commands that may change an application's workflow state."""
    MARK_INCOMPLETE = "mark_incomplete"
    MARK_COMPLETE = "mark_complete"
    RESUBMIT = "resubmit"
    SCHEDULE_HEARING = "schedule_hearing"
    BEGIN_HEARING = "begin_hearing"
    ADJOURN = "adjourn"
    SET_VIOLATION = "set_violation"
    APPROVE = "approve"
    REJECT = "reject"


class HearingType(str, Enum):
    INITIAL = "initial"
    EXTENSION = "extension"


class RemarkType(str, Enum):
    INCOMPLETE = "incomplete"
    COMPLETE = "complete"
    RESUBMITTED = "resubmitted"
    HEARING_SCHEDULED = "hearing_scheduled"
    HEARING_STARTED = "hearing_started"
    ADJOURNED = "adjourned"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationType(str, Enum):
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_RESUBMITTED = "application_resubmitted"
    APPLICATION_ASSIGNED = "application_assigned"
    HEARING_SCHEDULED = "hearing_scheduled"
    HEARING_TODAY = "hearing_today"
    APPLICATION_CLOSED = "application_closed"


class AuditAction(str, Enum):
    """Audit event names (entity_type is recorded separately)."""
    APPLICATION_SUBMITTED = "application.submitted"
    APPLICATION_RESUBMITTED = "application.resubmitted"
    APPLICATION_MARK_INCOMPLETE = "application.mark_incomplete"
    APPLICATION_MARK_COMPLETE = "application.mark_complete"
    HEARING_SCHEDULED = "application.hearing_scheduled"
    HEARING_STARTED = "application.hearing_started"
    APPLICATION_ADJOURNED = "application.adjourned"
    VIOLATION_SET = "application.violation_set"
    APPLICATION_APPROVED = "application.approved"
    APPLICATION_REJECTED = "application.rejected"
    VIOLATION_TYPE_CREATED = "violation_type.created"


class MigrationStepKind(str, Enum):
    """Kinds of maintenance step understood by the migration runner."""
    RENAME = "rename"
    UNSET = "unset"
    CLEANUP = "cleanup"
    RECONCILE_INDEX = "reconcile_index"
