# test_requests/tests/test_state_table.py

import pytest

from test_requests.workflows import (
    CANCELLED,
    COMPLETED,
    EVENTS,
    PENDING,
    REPORT_GENERATED,
    REPORT_SENT,
    REVIEW_PENDING,
    REVIEW_REJECTED,
    REVIEW_REQUIRES_CHANGES,
    STATES,
    TESTING_COMPLETED,
    TRANSITIONS,
    allowed_events,
    is_terminal,
    normalize_event,
    normalize_state,
    resolve_target,
    validate_transition,
    workflow_definition,
)
from test_requests.workflows.exceptions import IllegalTransition


@pytest.mark.parametrize(
    "state,event,review,target",
    [
        ("Pending", "AssignLabStaff", False, "Assigned"),
        ("Assigned", "ScheduleCollection", False, "Sample_Collection_Scheduled"),
        ("Sample_Collection_Scheduled", "RecordCollection", False, "Sample_Collected"),
        ("Sample_Collected", "StartTesting", False, "In_Lab_Testing"),
        ("In_Lab_Testing", "CompleteTesting", False, "Testing_Completed"),
        ("Testing_Completed", "GenerateReport", True, "Report_Generated"),
        ("Report_Generated", "SendReport", False, "Report_Sent"),
        ("Report_Generated", "SubmitForReview", True, "Review_Pending"),
        ("Review_Pending", "ApproveReview", True, "Review_Approved"),
        ("Review_Pending", "RejectReview", True, "Review_Rejected"),
        ("Review_Pending", "RequestChanges", True, "Review_RequiresChanges"),
        ("Review_RequiresChanges", "CompleteTesting", True, "Testing_Completed"),
        ("Review_Approved", "SendReport", True, "Report_Sent"),
    ],
)
def test_table_rows(state, event, review, target):
    assert validate_transition(state, event, review_required=review) == target


def test_review_policy_gates_report_generated_exits():
    assert resolve_target(REPORT_GENERATED, "SendReport", review_required=True) is None
    assert resolve_target(REPORT_GENERATED, "SubmitForReview", review_required=False) is None

    with pytest.raises(IllegalTransition):
        validate_transition(REPORT_GENERATED, "SendReport", review_required=True)


@pytest.mark.parametrize("state", [s for s in STATES if s not in {COMPLETED, CANCELLED}])
def test_cancel_legal_from_every_non_terminal_state(state):
    assert validate_transition(state, "Cancel", review_required=True) == CANCELLED
    assert validate_transition(state, "Cancel", review_required=False) == CANCELLED


@pytest.mark.parametrize("state", [COMPLETED, CANCELLED])
@pytest.mark.parametrize("event", list(EVENTS))
def test_terminal_states_accept_nothing(state, event):
    assert allowed_events(state) == []
    with pytest.raises(IllegalTransition) as exc:
        validate_transition(state, event)
    if event != "Create":
        assert "terminal" in exc.value.message


def test_rejected_review_only_cancels():
    assert allowed_events(REVIEW_REJECTED, review_required=True) == ["Cancel"]


def test_create_is_never_a_transition():
    with pytest.raises(IllegalTransition):
        validate_transition(PENDING, "Create")


def test_skipping_stages_is_illegal():
    with pytest.raises(IllegalTransition) as exc:
        validate_transition(PENDING, "StartTesting")
    assert exc.value.state == PENDING
    assert exc.value.event == "StartTesting"
    assert exc.value.code == "illegal_transition"


def test_unknown_state_and_event():
    with pytest.raises(IllegalTransition):
        validate_transition("Archived", "Cancel")
    with pytest.raises(IllegalTransition):
        validate_transition(PENDING, "Teleport")


def test_normalization():
    assert normalize_state("sample collected") == "Sample_Collected"
    assert normalize_state("IN_LAB_TESTING") == "In_Lab_Testing"
    assert normalize_state("review-requires-changes") == REVIEW_REQUIRES_CHANGES
    assert normalize_event("assign_lab_staff") == "AssignLabStaff"
    assert normalize_event("send report") == "SendReport"
    assert normalize_state("Whatever") == "Whatever"

    assert validate_transition("testing completed", "generate-report") == REPORT_GENERATED


def test_completion_is_internal():
    assert validate_transition(REPORT_SENT, "Complete") == COMPLETED
    assert "Complete" not in allowed_events(REPORT_SENT)
    assert allowed_events(REPORT_SENT) == ["Cancel"]


def test_allowed_events_depend_on_policy():
    assert allowed_events(REPORT_GENERATED, review_required=False) == ["Cancel", "SendReport"]
    assert allowed_events(REPORT_GENERATED, review_required=True) == ["Cancel", "SubmitForReview"]
    assert allowed_events(REVIEW_PENDING, review_required=True) == [
        "ApproveReview",
        "Cancel",
        "RejectReview",
        "RequestChanges",
    ]
    assert is_terminal("completed")
    assert not is_terminal(TESTING_COMPLETED)


def test_workflow_definition_is_stable():
    d = workflow_definition()

    assert d["kind"] == "test_request"
    assert d["initial"] == PENDING
    assert d["terminal_states"] == ["Cancelled", "Completed"]
    assert len(d["states"]) == 14
    assert "Complete" not in d["events"]

    rows = {(t["from"], t["event"]): t for t in d["transitions"]}
    assert len(rows) == len(TRANSITIONS) + 12
    assert rows[("Report_Sent", "Complete")]["internal"] is True
    assert rows[("Report_Generated", "SubmitForReview")]["review_required"] is True
    assert rows[("Report_Generated", "SendReport")]["review_required"] is False
    assert rows[("Pending", "Cancel")]["to"] == "Cancelled"
    assert ("Completed", "Cancel") not in rows
