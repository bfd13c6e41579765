# test_requests/tests/test_permissions.py

from types import SimpleNamespace

import pytest

from test_requests.workflows import EVENTS, REPORT_GENERATED, REVIEW_PENDING
from test_requests.workflows.exceptions import TransitionForbidden
from test_requests.workflows.permissions import (
    SYSTEM_ACTOR,
    Actor,
    allowed_events_for,
    check_permission,
    normalize_role,
    permitted_events,
    required_roles,
    role_allows,
)


LAB_EVENTS = {
    "AssignLabStaff",
    "ScheduleCollection",
    "RecordCollection",
    "StartTesting",
    "CompleteTesting",
    "GenerateReport",
    "SendReport",
    "Cancel",
}
REVIEW_EVENTS = {"SubmitForReview", "ApproveReview", "RejectReview", "RequestChanges"}


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Doctor", "Doctor"),
        ("physician", "Doctor"),
        ("Lab Technician", "LabTechnician"),
        ("lab-tech", "LabTechnician"),
        ("LAB_ASSISTANT", "LabAssistant"),
        ("lab manager", "LabManager"),
        ("reviewer", "Reviewer"),
        ("SUPERADMIN", "Superadmin"),
        ("super-admin", "Superadmin"),
        ("", ""),
        ("Janitor", "Janitor"),
    ],
)
def test_normalize_role(raw, expected):
    assert normalize_role(raw) == expected


def test_matrix():
    assert permitted_events("Doctor") == {"Create", "Cancel"}
    for role in ("LabTechnician", "LabAssistant", "LabManager"):
        assert permitted_events(role) == LAB_EVENTS
    assert permitted_events("Reviewer") == REVIEW_EVENTS
    assert permitted_events("Superadmin") == REVIEW_EVENTS
    assert permitted_events("Janitor") == frozenset()


def test_no_user_role_may_complete():
    for role in ("Doctor", "LabTechnician", "LabAssistant", "LabManager", "Reviewer", "Superadmin"):
        assert not role_allows(role, "Complete")
    assert role_allows("System", "Complete")


def test_required_roles():
    assert required_roles("ApproveReview") == ["Reviewer", "Superadmin"]
    assert required_roles("Create") == ["Doctor"]
    assert required_roles("Cancel") == ["Doctor", "LabTechnician", "LabAssistant", "LabManager"]


@pytest.mark.parametrize("event", sorted(set(EVENTS) - {"Create", "Cancel"}))
def test_doctor_forbidden_from_lab_and_review_events(event):
    with pytest.raises(TransitionForbidden):
        check_permission(Actor("doc-1", "Doctor"), event)


def test_reviewer_cannot_run_lab_stages():
    with pytest.raises(TransitionForbidden) as exc:
        check_permission(Actor("rev-1", "Reviewer"), "StartTesting")
    assert "LabTechnician" in exc.value.message
    assert exc.value.code == "forbidden"


def test_lab_staff_cannot_review():
    with pytest.raises(TransitionForbidden):
        check_permission(Actor("tech-1", "lab technician"), "ApproveReview")


def test_doctor_cancels_only_own_requests():
    entity = SimpleNamespace(doctor_ref="doc-1", center_ref="C1")

    check_permission(Actor("doc-1", "Doctor", "C1"), "Cancel", entity)

    with pytest.raises(TransitionForbidden):
        check_permission(Actor("doc-2", "Doctor", "C1"), "Cancel", entity)


def test_center_scoping():
    entity = SimpleNamespace(doctor_ref="doc-1", center_ref="C1")

    check_permission(Actor("tech-1", "LabTechnician", "C1"), "AssignLabStaff", entity)
    with pytest.raises(TransitionForbidden):
        check_permission(Actor("tech-2", "LabTechnician", "C2"), "AssignLabStaff", entity)

    # unscoped actors and superadmins are not center-bound
    check_permission(Actor("tech-3", "LabTechnician"), "AssignLabStaff", entity)
    check_permission(Actor("root", "Superadmin", "C2"), "ApproveReview", entity)
    check_permission(SYSTEM_ACTOR, "Complete", entity)


def test_actor_normalizes_fields():
    actor = Actor(" 42 ", "lab-manager", "  ")
    assert actor.actor_id == "42"
    assert actor.role == "LabManager"
    assert actor.center_id is None


def test_allowed_events_for_intersects_matrix_and_table():
    entity = SimpleNamespace(doctor_ref="doc-1", center_ref="C1")

    assert allowed_events_for(Actor("tech-1", "LabTechnician", "C1"), REPORT_GENERATED, False, entity) == [
        "Cancel",
        "SendReport",
    ]
    assert allowed_events_for(Actor("tech-1", "LabTechnician", "C1"), REPORT_GENERATED, True, entity) == ["Cancel"]
    assert allowed_events_for(Actor("rev-1", "Reviewer", "C1"), REPORT_GENERATED, True, entity) == ["SubmitForReview"]
    assert allowed_events_for(Actor("rev-1", "Reviewer", "C1"), REVIEW_PENDING, True, entity) == [
        "ApproveReview",
        "RejectReview",
        "RequestChanges",
    ]
    assert allowed_events_for(Actor("doc-2", "Doctor", "C1"), "Pending", False, entity) == []
    assert allowed_events_for(Actor("doc-1", "Doctor", "C1"), "Pending", False, entity) == ["Cancel"]
