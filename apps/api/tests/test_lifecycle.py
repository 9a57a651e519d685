"""Tests for lifecycle guards and transition decisions (no store involved)."""

from datetime import datetime, timedelta, timezone

import pytest

from compliance.db.enums import ApplicationStatus, HearingType, LifecycleAction, RemarkType, Role
from compliance.db.models import Application, ApplicationDescription, HearingDate, User
from compliance.schemas.auth import Actor
from compliance.services.lifecycle import (
    InvalidTransitionError,
    PermissionDeniedError,
    allowed_actions,
    decide,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
S = ApplicationStatus
A = LifecycleAction

REGISTRAR = Actor(id="reg", roles=frozenset({Role.REGISTRAR}))
ADMIN = Actor(id="adm", roles=frozenset({Role.ADMIN}))
OFFICER = Actor(id="off", roles=frozenset({Role.HEARING_OFFICER}), district="Lahore")
OTHER_OFFICER = Actor(id="off-2", roles=frozenset({Role.HEARING_OFFICER}), district="Lahore")
APPLICANT = Actor(id="app-user", roles=frozenset({Role.APPLICANT}), email="owner@example.com")


def make_application(status: S = S.SUBMITTED, **fields) -> Application:
    data = {
        "id": "65f000000000000000000001",
        "tracking_id": "PC-20260301-ABC123",
        "applicant_name": "Ayesha Khan",
        "applicant_email": "owner@example.com",
        "applicant_user_id": "app-user",
        "application_type": "registration",
        "description": ApplicationDescription(district="Lahore"),
        "status": status,
        "created_at": NOW - timedelta(days=2),
        "updated_at": NOW - timedelta(days=1),
    }
    data.update(fields)
    return Application(**data)


def make_hearing(when: datetime) -> HearingDate:
    return HearingDate(
        id="h1",
        application_id="65f000000000000000000001",
        hearing_date=when,
        hearing_type=HearingType.INITIAL,
        created_at=NOW - timedelta(days=1),
    )


LONG_REMARKS = "Heard both parties at length."


def test_allowed_actions_follow_transition_table():
    assert set(allowed_actions(S.SUBMITTED)) == {A.MARK_INCOMPLETE, A.MARK_COMPLETE, A.SET_VIOLATION}
    assert set(allowed_actions(S.UNDER_HEARING)) == {A.ADJOURN, A.SET_VIOLATION, A.APPROVE, A.REJECT}
    assert allowed_actions(S.APPROVED_RESOLVED) == []
    assert allowed_actions(S.REJECTED_CLOSED) == []


@pytest.mark.parametrize("status", [S.APPROVED_RESOLVED, S.REJECTED_CLOSED])
@pytest.mark.parametrize("action", list(LifecycleAction))
def test_terminal_applications_reject_every_action(status, action):
    application = make_application(status, closed_at=NOW - timedelta(hours=1))
    with pytest.raises(InvalidTransitionError, match="Closed"):
        decide(application, action, ADMIN, {"remarks": LONG_REMARKS}, now=NOW)


def test_wrong_source_status_is_rejected():
    with pytest.raises(InvalidTransitionError, match="status 'submitted'"):
        decide(make_application(S.SUBMITTED), A.APPROVE, ADMIN, {"remarks": LONG_REMARKS}, now=NOW)


def test_mark_incomplete_requires_remarks_and_registrar():
    application = make_application(S.SUBMITTED)
    with pytest.raises(InvalidTransitionError, match="Remarks are required"):
        decide(application, A.MARK_INCOMPLETE, REGISTRAR, {"remarks": "   "}, now=NOW)
    with pytest.raises(PermissionDeniedError):
        decide(application, A.MARK_INCOMPLETE, OFFICER, {"remarks": "Missing CNIC copy"}, now=NOW)

    decision = decide(application, A.MARK_INCOMPLETE, REGISTRAR, {"remarks": "Missing CNIC copy"}, now=NOW)

    assert decision.to_status == S.INCOMPLETE
    assert decision.set_fields["incomplete_reason"] == "Missing CNIC copy"
    assert decision.set_fields["assigned_registrar_id"] == "reg"
    assert decision.remark.remark_type == RemarkType.INCOMPLETE


def test_mark_complete_keeps_existing_registrar_assignment():
    application = make_application(S.SUBMITTED, assigned_registrar_id="someone-else")
    decision = decide(application, A.MARK_COMPLETE, REGISTRAR, None, now=NOW)
    assert decision.to_status == S.COMPLETE
    assert "assigned_registrar_id" not in decision.set_fields
    assert decision.remark is None


def test_resubmit_only_by_owning_applicant():
    application = make_application(S.INCOMPLETE, incomplete_reason="Missing documents")
    stranger = Actor(id="x", roles=frozenset({Role.APPLICANT}), email="x@example.com")
    with pytest.raises(PermissionDeniedError):
        decide(application, A.RESUBMIT, stranger, {"company_name": "Acme"}, now=NOW)
    with pytest.raises(PermissionDeniedError):
        decide(application, A.RESUBMIT, REGISTRAR, {"company_name": "Acme"}, now=NOW)

    decision = decide(application, A.RESUBMIT, APPLICANT, {"company_name": "Acme"}, now=NOW)

    assert decision.to_status == S.SUBMITTED
    assert decision.set_fields["company_name"] == "Acme"
    assert decision.unset_fields == ("incomplete_reason",)
    assert decision.notifications[0].recipient_role == Role.REGISTRAR


def test_resubmit_rejects_mismatched_cnic():
    application = make_application(S.INCOMPLETE)
    applicant = Actor(id="app-user", roles=frozenset({Role.APPLICANT}), cnic="35202-1111111-1")
    with pytest.raises(InvalidTransitionError, match="CNIC"):
        decide(application, A.RESUBMIT, applicant, {"description": {"cnic": "35202-2222222-2"}}, now=NOW)


class TestScheduleHearing:
    officer_user = User(id="off", roles=[Role.HEARING_OFFICER], district="Lahore")

    def test_requires_future_date(self):
        with pytest.raises(InvalidTransitionError, match="in the future"):
            decide(
                make_application(S.COMPLETE),
                A.SCHEDULE_HEARING,
                REGISTRAR,
                {"hearing_datetime": NOW - timedelta(minutes=1), "hearing_officer_id": "off"},
                now=NOW,
                hearing_officer=self.officer_user,
            )

    def test_requires_hearing_officer_role_and_district(self):
        payload = {"hearing_datetime": NOW + timedelta(days=3), "hearing_officer_id": "u"}
        clerk = User(id="u", roles=[Role.REGISTRAR], district="Lahore")
        with pytest.raises(InvalidTransitionError, match="not a hearing officer"):
            decide(make_application(S.COMPLETE), A.SCHEDULE_HEARING, REGISTRAR, payload, now=NOW, hearing_officer=clerk)

        elsewhere = User(id="u", roles=[Role.HEARING_OFFICER], district="Multan")
        with pytest.raises(InvalidTransitionError, match="district"):
            decide(make_application(S.COMPLETE), A.SCHEDULE_HEARING, REGISTRAR, payload, now=NOW, hearing_officer=elsewhere)

        with pytest.raises(InvalidTransitionError, match="not found"):
            decide(make_application(S.COMPLETE), A.SCHEDULE_HEARING, REGISTRAR, payload, now=NOW)

    def test_produces_hearing_swap_and_assignment(self):
        when = NOW + timedelta(days=3)
        decision = decide(
            make_application(S.COMPLETE),
            A.SCHEDULE_HEARING,
            REGISTRAR,
            {"hearing_datetime": when, "hearing_officer_id": "off", "violation_type": "Noise"},
            now=NOW,
            hearing_officer=self.officer_user,
        )
        assert decision.to_status == S.HEARING_SCHEDULED
        assert decision.hearing.hearing_date == when
        assert decision.hearing.hearing_type == HearingType.INITIAL
        assert decision.set_fields["assigned_hearing_officer_id"] == "off"
        assert decision.set_fields["description"]["violation_type"] == "Noise"
        assert decision.set_fields["description"]["district"] == "Lahore"


def test_begin_hearing_waits_for_hearing_date():
    application = make_application(S.HEARING_SCHEDULED, assigned_hearing_officer_id="off")
    future = make_hearing(NOW + timedelta(hours=2))
    with pytest.raises(InvalidTransitionError, match="not occurred"):
        decide(application, A.BEGIN_HEARING, OFFICER, None, now=NOW, active_hearing=future)
    with pytest.raises(PermissionDeniedError):
        decide(application, A.BEGIN_HEARING, OTHER_OFFICER, None, now=NOW, active_hearing=make_hearing(NOW))

    decision = decide(application, A.BEGIN_HEARING, OFFICER, None, now=NOW, active_hearing=make_hearing(NOW))

    assert decision.to_status == S.UNDER_HEARING
    assert not decision.swaps_hearing


def test_adjourn_guards():
    application = make_application(S.UNDER_HEARING, assigned_hearing_officer_id="off")
    later = NOW + timedelta(days=7)
    with pytest.raises(InvalidTransitionError, match="at least 10"):
        decide(application, A.ADJOURN, OFFICER, {"remarks": "short", "new_hearing_datetime": later}, now=NOW)
    with pytest.raises(InvalidTransitionError, match="required"):
        decide(application, A.ADJOURN, OFFICER, {"remarks": LONG_REMARKS}, now=NOW)
    with pytest.raises(PermissionDeniedError, match="assigned hearing officer"):
        decide(application, A.ADJOURN, OTHER_OFFICER, {"remarks": LONG_REMARKS, "new_hearing_datetime": later}, now=NOW)

    decision = decide(application, A.ADJOURN, ADMIN, {"remarks": LONG_REMARKS, "new_hearing_datetime": later}, now=NOW)

    assert decision.to_status == S.HEARING_SCHEDULED
    assert decision.hearing.hearing_type == HearingType.EXTENSION


def test_hearing_only_actor_is_confined_to_district():
    application = make_application(
        S.UNDER_HEARING,
        description=ApplicationDescription(district="Multan"),
        assigned_hearing_officer_id="off",
    )
    with pytest.raises(PermissionDeniedError, match="district"):
        decide(application, A.SET_VIOLATION, OFFICER, {"violation_type": "Noise"}, now=NOW)


def test_approve_requires_violation():
    application = make_application(S.UNDER_HEARING, assigned_hearing_officer_id="off")
    with pytest.raises(InvalidTransitionError, match="violation"):
        decide(application, A.APPROVE, OFFICER, {"remarks": LONG_REMARKS}, now=NOW)

    decision = decide(
        application, A.APPROVE, OFFICER, {"remarks": LONG_REMARKS, "violation_type": "Noise"}, now=NOW
    )

    assert decision.to_status == S.APPROVED_RESOLVED
    assert decision.set_fields["closed_at"] == NOW
    assert decision.set_fields["closed_by"] == "off"
    assert decision.deactivate_hearings and decision.hearing is None


def test_approve_accepts_previously_set_violation():
    application = make_application(
        S.UNDER_HEARING,
        assigned_hearing_officer_id="off",
        description=ApplicationDescription(district="Lahore", violation_type="Noise"),
    )
    decision = decide(application, A.APPROVE, OFFICER, {"remarks": LONG_REMARKS}, now=NOW)
    assert decision.remark.remark_type == RemarkType.APPROVED
    assert "description" not in decision.set_fields


def test_reject_needs_no_violation():
    application = make_application(S.UNDER_HEARING, assigned_hearing_officer_id="off")
    decision = decide(application, A.REJECT, OFFICER, {"remarks": LONG_REMARKS}, now=NOW)
    assert decision.to_status == S.REJECTED_CLOSED
    assert decision.notifications[0].recipient_user_id == "app-user"


def test_set_violation_keeps_status():
    application = make_application(S.COMPLETE)
    decision = decide(application, A.SET_VIOLATION, ADMIN, {"violation_type": "Noise", "sub_violation": "Night"}, now=NOW)
    assert decision.to_status is None
    assert "status" not in decision.set_fields
    assert decision.set_fields["description"]["sub_violation"] == "Night"
