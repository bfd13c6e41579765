# test_requests/workflows/handlers.py
"""
Stage handlers: one per workflow stage.

Each handler is a pure function

    handler(entity, payload, *, now, actor_id) -> patch

that validates only its own event's payload and returns model-field updates.
Payload shape is checked by the event's serializer (see payloads.py); the
handler adds the ordering checks against timestamps already on the record.
Handlers never look at roles or the state table and never touch storage;
the executor commits the patch and records the timeline entry.
"""
from __future__ import annotations

from datetime import datetime
from functools import partial
from typing import Any, Callable, Dict, Optional

from . import (
    APPROVE_REVIEW,
    ASSIGN_LAB_STAFF,
    COMPLETE_TESTING,
    GENERATE_REPORT,
    RECORD_COLLECTION,
    REJECT_REVIEW,
    REQUEST_CHANGES,
    SCHEDULE_COLLECTION,
    SEND_REPORT,
    START_TESTING,
    SUBMIT_FOR_REVIEW,
    normalize_event,
)
from .exceptions import TransitionValidationError
from .payloads import (
    COLLECTION_STATUSES,
    NAME_LIMIT,
    REF_LIMIT,
    REVIEW_APPROVED,
    REVIEW_PENDING,
    REVIEW_REJECTED,
    REVIEW_REQUIRES_CHANGES,
    REVIEW_STATUSES,
    SEND_METHODS,
    TEXT_LIMIT,
    URGENCIES,
    ApproveReviewPayloadSerializer,
    AssignLabStaffPayloadSerializer,
    CompleteTestingPayloadSerializer,
    GenerateReportPayloadSerializer,
    RecordCollectionPayloadSerializer,
    ReviewObjectionPayloadSerializer,
    ScheduleCollectionPayloadSerializer,
    SendReportPayloadSerializer,
    StartTestingPayloadSerializer,
    SubmitForReviewPayloadSerializer,
    require_mapping,
    text,
    validate_payload,
)

Patch = Dict[str, Any]
Handler = Callable[..., Patch]


# ===============================================================
# Ordering against the stored record
# ===============================================================

class Ordering:
    """
    Collects timestamp-ordering errors so one response lists all of them.
    """

    def __init__(self):
        self.errors: Dict[str, str] = {}

    def not_before(self, key: str, value: Optional[datetime], floor: Optional[datetime], floor_label: str) -> None:
        if value is None or floor is None or key in self.errors:
            return
        if value < floor:
            self.errors[key] = f"Must not be earlier than {floor_label} ({floor.isoformat()})."

    def not_after(self, key: str, value: Optional[datetime], ceiling: datetime) -> None:
        if value is None or key in self.errors:
            return
        if value > ceiling:
            self.errors[key] = "Must not be in the future."

    def done(self) -> None:
        if self.errors:
            raise TransitionValidationError(field_errors=self.errors)


# ===============================================================
# Handlers
# ===============================================================

def assign_lab_staff(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(AssignLabStaffPayloadSerializer, payload)

    return {
        "lab_staff_ref": data["labStaffRef"],
        "lab_staff_name": text(data, "labStaffName"),
        "assigned_at": now,
    }


def schedule_collection(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(ScheduleCollectionPayloadSerializer, payload)
    scheduled_at = data["scheduledAt"]

    check = Ordering()
    check.not_before("scheduledAt", scheduled_at, entity.assigned_at, "the assignment time")
    check.done()

    return {
        "collector_ref": data["collectorRef"],
        "collector_name": text(data, "collectorName"),
        "collection_scheduled_at": scheduled_at,
        "collection_notes": text(data, "notes"),
    }


def record_collection(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(RecordCollectionPayloadSerializer, payload)
    collected_at = data.get("collectedAt") or now

    check = Ordering()
    check.not_before("collectedAt", collected_at, entity.collection_scheduled_at, "the scheduled time")
    check.not_after("collectedAt", collected_at, now)
    check.done()

    patch: Patch = {
        "collection_actual_at": collected_at,
        "collection_status": data["collectionStatus"],
    }
    if text(data, "notes"):
        patch["collection_notes"] = data["notes"]
    return patch


def start_testing(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(StartTestingPayloadSerializer, payload)
    staff_ref = text(data, "labStaffRef", default=entity.lab_staff_ref or "")
    started_at = data.get("startedAt") or now

    check = Ordering()
    if not staff_ref:
        check.errors["labStaffRef"] = "This field is required."
    check.not_before("startedAt", started_at, entity.collection_actual_at, "the collection time")
    check.not_after("startedAt", started_at, now)
    check.done()

    return {
        "testing_staff_ref": staff_ref,
        "testing_started_at": started_at,
        "testing_notes": text(data, "notes"),
    }


def complete_testing(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(CompleteTestingPayloadSerializer, payload)

    check = Ordering()
    check.not_before("completedAt", now, entity.testing_started_at, "the testing start time")
    check.done()

    patch: Patch = {
        "test_results": data["testResults"],
        "conclusion": text(data, "conclusion"),
        "recommendations": text(data, "recommendations"),
        "testing_completed_at": now,
        # a rework after review invalidates any earlier report
        "report_file_handle": "",
        "report_generated_at": None,
    }
    if "parameters" in data:
        patch["test_parameters"] = [dict(p) for p in data["parameters"]]
    if text(data, "notes"):
        patch["testing_notes"] = data["notes"]
    return patch


def generate_report(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(GenerateReportPayloadSerializer, payload)

    check = Ordering()
    check.not_before("generatedAt", now, entity.testing_completed_at, "the testing completion time")
    check.done()

    return {
        "report_file_handle": data["fileHandle"],
        "report_generated_at": now,
        "report_notes": text(data, "notes"),
    }


def submit_for_review(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(SubmitForReviewPayloadSerializer, payload)

    return {
        "reviewer_ref": text(data, "reviewerRef"),
        "review_status": REVIEW_PENDING,
        "review_notes": text(data, "notes"),
        "reviewed_at": None,
    }


def decide_review(entity, payload, *, now: datetime, actor_id: str = "", decision: str) -> Patch:
    """
    ApproveReview / RejectReview / RequestChanges.
    Rejections and change requests must say why.
    """
    serializer_class = (
        ApproveReviewPayloadSerializer if decision == REVIEW_APPROVED else ReviewObjectionPayloadSerializer
    )
    data = validate_payload(serializer_class, payload)

    check = Ordering()
    check.not_before("reviewedAt", now, entity.report_generated_at, "the report generation time")
    check.done()

    return {
        "reviewer_ref": actor_id or entity.reviewer_ref,
        "review_status": decision,
        "review_notes": text(data, "reviewNotes"),
        "reviewed_at": now,
    }


def send_report(entity, payload, *, now: datetime, actor_id: str = "") -> Patch:
    data = validate_payload(SendReportPayloadSerializer, payload)

    check = Ordering()
    check.not_before("sentAt", now, entity.report_generated_at, "the report generation time")
    check.not_before("sentAt", now, entity.reviewed_at, "the review time")
    check.done()

    patch: Patch = {
        "report_sent_at": now,
        "report_send_method": data["sendMethod"],
        "report_sent_to": text(data, "sentTo"),
    }
    if text(data, "notes"):
        patch["report_notes"] = data["notes"]
    return patch


HANDLERS: Dict[str, Handler] = {
    ASSIGN_LAB_STAFF: assign_lab_staff,
    SCHEDULE_COLLECTION: schedule_collection,
    RECORD_COLLECTION: record_collection,
    START_TESTING: start_testing,
    COMPLETE_TESTING: complete_testing,
    GENERATE_REPORT: generate_report,
    SUBMIT_FOR_REVIEW: submit_for_review,
    APPROVE_REVIEW: partial(decide_review, decision=REVIEW_APPROVED),
    REJECT_REVIEW: partial(decide_review, decision=REVIEW_REJECTED),
    REQUEST_CHANGES: partial(decide_review, decision=REVIEW_REQUIRES_CHANGES),
    SEND_REPORT: send_report,
}


def run_handler(entity, event: str, payload, *, now: datetime, actor_id: str = "") -> Patch:
    """
    Patch for `event`; events without a stage handler (Cancel, the internal
    completion step) change no sub-record and yield an empty patch.
    """
    handler = HANDLERS.get(normalize_event(event))
    if handler is None:
        require_mapping(payload)
        return {}
    return handler(entity, payload, now=now, actor_id=actor_id)


__all__ = [
    "COLLECTION_STATUSES",
    "REVIEW_STATUSES",
    "SEND_METHODS",
    "URGENCIES",
    "REF_LIMIT",
    "NAME_LIMIT",
    "TEXT_LIMIT",
    "HANDLERS",
    "Ordering",
    "run_handler",
]
