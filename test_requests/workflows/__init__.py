# test_requests/workflows/__init__.py
"""
Authoritative state machine for diagnostic test requests.

This module is PURE LOGIC + DATA.
- No Django imports
- The transition table is the only place that decides legality
- UI and API consume the helpers below, never raw status comparisons
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple

from .exceptions import IllegalTransition


# ===============================================================
# States
# ===============================================================

PENDING = "Pending"
ASSIGNED = "Assigned"
SAMPLE_COLLECTION_SCHEDULED = "Sample_Collection_Scheduled"
SAMPLE_COLLECTED = "Sample_Collected"
IN_LAB_TESTING = "In_Lab_Testing"
TESTING_COMPLETED = "Testing_Completed"
REPORT_GENERATED = "Report_Generated"
REPORT_SENT = "Report_Sent"
COMPLETED = "Completed"
CANCELLED = "Cancelled"

# Review gate sub-states (reachable only when the center requires sign-off)
REVIEW_PENDING = "Review_Pending"
REVIEW_APPROVED = "Review_Approved"
REVIEW_REJECTED = "Review_Rejected"
REVIEW_REQUIRES_CHANGES = "Review_RequiresChanges"

MAIN_STATES: Tuple[str, ...] = (
    PENDING,
    ASSIGNED,
    SAMPLE_COLLECTION_SCHEDULED,
    SAMPLE_COLLECTED,
    IN_LAB_TESTING,
    TESTING_COMPLETED,
    REPORT_GENERATED,
    REPORT_SENT,
    COMPLETED,
    CANCELLED,
)

REVIEW_STATES: Tuple[str, ...] = (
    REVIEW_PENDING,
    REVIEW_APPROVED,
    REVIEW_REJECTED,
    REVIEW_REQUIRES_CHANGES,
)

STATES: Tuple[str, ...] = MAIN_STATES + REVIEW_STATES

TERMINAL_STATES: Set[str] = {COMPLETED, CANCELLED}


# ===============================================================
# Events
# ===============================================================

CREATE = "Create"
ASSIGN_LAB_STAFF = "AssignLabStaff"
SCHEDULE_COLLECTION = "ScheduleCollection"
RECORD_COLLECTION = "RecordCollection"
START_TESTING = "StartTesting"
COMPLETE_TESTING = "CompleteTesting"
GENERATE_REPORT = "GenerateReport"
SUBMIT_FOR_REVIEW = "SubmitForReview"
APPROVE_REVIEW = "ApproveReview"
REJECT_REVIEW = "RejectReview"
REQUEST_CHANGES = "RequestChanges"
SEND_REPORT = "SendReport"
CANCEL = "Cancel"

# Internal: Report_Sent -> Completed. Never raised through the API.
COMPLETE = "Complete"

EVENTS: Tuple[str, ...] = (
    CREATE,
    ASSIGN_LAB_STAFF,
    SCHEDULE_COLLECTION,
    RECORD_COLLECTION,
    START_TESTING,
    COMPLETE_TESTING,
    GENERATE_REPORT,
    SUBMIT_FOR_REVIEW,
    APPROVE_REVIEW,
    REJECT_REVIEW,
    REQUEST_CHANGES,
    SEND_REPORT,
    CANCEL,
)


# ===============================================================
# Transition table
# ===============================================================
# (from_state, event) -> (to_state, review policy condition)
#
# policy condition:
#   None  -> always legal
#   True  -> legal only when the request's center requires review
#   False -> legal only when it does not
#
# Cancel is handled separately: legal from every non-terminal state.

TRANSITIONS: Dict[Tuple[str, str], Tuple[str, Optional[bool]]] = {
    (PENDING, ASSIGN_LAB_STAFF): (ASSIGNED, None),
    (ASSIGNED, SCHEDULE_COLLECTION): (SAMPLE_COLLECTION_SCHEDULED, None),
    (SAMPLE_COLLECTION_SCHEDULED, RECORD_COLLECTION): (SAMPLE_COLLECTED, None),
    (SAMPLE_COLLECTED, START_TESTING): (IN_LAB_TESTING, None),
    (IN_LAB_TESTING, COMPLETE_TESTING): (TESTING_COMPLETED, None),
    (TESTING_COMPLETED, GENERATE_REPORT): (REPORT_GENERATED, None),
    (REPORT_GENERATED, SEND_REPORT): (REPORT_SENT, False),
    (REPORT_GENERATED, SUBMIT_FOR_REVIEW): (REVIEW_PENDING, True),
    (REVIEW_PENDING, APPROVE_REVIEW): (REVIEW_APPROVED, True),
    (REVIEW_PENDING, REJECT_REVIEW): (REVIEW_REJECTED, True),
    (REVIEW_PENDING, REQUEST_CHANGES): (REVIEW_REQUIRES_CHANGES, True),
    # re-entrant fix loop
    (REVIEW_REQUIRES_CHANGES, COMPLETE_TESTING): (TESTING_COMPLETED, True),
    (REVIEW_APPROVED, SEND_REPORT): (REPORT_SENT, True),
    (REPORT_SENT, COMPLETE): (COMPLETED, None),
}

CREATE_TARGET = PENDING


# ===============================================================
# Normalization
# ===============================================================

def _key(value: Any) -> str:
    # "Sample collected", "sample-collected" and "SAMPLE_COLLECTED" all collapse
    return "".join(ch for ch in str(value or "").upper() if ch.isalnum())


_STATE_LOOKUP: Dict[str, str] = {_key(s): s for s in STATES}
_EVENT_LOOKUP: Dict[str, str] = {_key(e): e for e in EVENTS + (COMPLETE,)}


def normalize_state(value: Any) -> str:
    """
    Canonical spelling of a state ("sample collected" -> "Sample_Collected").
    Unknown values come back stripped but otherwise untouched.
    """
    raw = str(value or "").strip()
    return _STATE_LOOKUP.get(_key(raw), raw)


def normalize_event(value: Any) -> str:
    raw = str(value or "").strip()
    return _EVENT_LOOKUP.get(_key(raw), raw)


def is_terminal(state: str) -> bool:
    return normalize_state(state) in TERMINAL_STATES


# ===============================================================
# Validation
# ===============================================================

def _policy_allows(condition: Optional[bool], review_required: bool) -> bool:
    if condition is None:
        return True
    return bool(review_required) is condition


def resolve_target(state: str, event: str, review_required: bool = False) -> Optional[str]:
    """
    Target state for (state, event) under the given review policy, or None.
    """
    cur = normalize_state(state)
    ev = normalize_event(event)

    if cur in TERMINAL_STATES:
        return None

    if ev == CANCEL:
        return CANCELLED if cur in STATES else None

    row = TRANSITIONS.get((cur, ev))
    if row is None:
        return None

    target, condition = row
    if not _policy_allows(condition, review_required):
        return None
    return target


def validate_transition(state: str, event: str, review_required: bool = False) -> str:
    """
    Returns the target state, or raises IllegalTransition.
    """
    cur = normalize_state(state)
    ev = normalize_event(event)

    if cur not in STATES:
        raise IllegalTransition(cur, ev, f"Unknown test request state: {cur}")

    if ev not in EVENTS and ev != COMPLETE:
        raise IllegalTransition(cur, ev, f"Unknown test request event: {ev}")

    if ev == CREATE:
        raise IllegalTransition(cur, ev, "Create only applies to new test requests.")

    if cur in TERMINAL_STATES:
        raise IllegalTransition(
            cur, ev, f"Test request is in terminal state '{cur}' and cannot be modified."
        )

    target = resolve_target(cur, ev, review_required)
    if target is None:
        raise IllegalTransition(cur, ev)
    return target


# ===============================================================
# Introspection helpers
# ===============================================================

def allowed_events(state: str, review_required: bool = False) -> List[str]:
    """
    Events legal from this state under the review policy, independent of role.
    The internal completion event is not listed.
    """
    out = [ev for ev in EVENTS if resolve_target(state, ev, review_required) is not None]
    return sorted(out)


def workflow_definition() -> Dict[str, Any]:
    """
    Stable JSON-serializable definition for UI.
    """
    transitions = []
    for (src, ev), (tgt, condition) in TRANSITIONS.items():
        transitions.append(
            {
                "from": src,
                "event": ev,
                "to": tgt,
                "review_required": condition,
                "internal": ev == COMPLETE,
            }
        )

    non_terminal = [s for s in STATES if s not in TERMINAL_STATES]
    for src in non_terminal:
        transitions.append(
            {
                "from": src,
                "event": CANCEL,
                "to": CANCELLED,
                "review_required": None,
                "internal": False,
            }
        )

    return {
        "kind": "test_request",
        "initial": CREATE_TARGET,
        "states": list(STATES),
        "review_states": list(REVIEW_STATES),
        "terminal_states": sorted(TERMINAL_STATES),
        "events": list(EVENTS),
        "transitions": transitions,
    }


__all__ = [
    "STATES",
    "MAIN_STATES",
    "REVIEW_STATES",
    "TERMINAL_STATES",
    "EVENTS",
    "TRANSITIONS",
    "CREATE_TARGET",
    "normalize_state",
    "normalize_event",
    "is_terminal",
    "resolve_target",
    "validate_transition",
    "allowed_events",
    "workflow_definition",
]
