# test_requests/workflows/notifications.py
"""
Domain events raised by accepted transitions.

Events are published only after the surrounding database transaction commits,
so listeners never observe a transition that was rolled back. Delivery is the
listeners' business (see test_requests.signals); a failing listener is logged
and never affects the transition that raised the event.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List
from uuid import uuid4

from django.db import transaction
from django.dispatch import Signal
from django.utils import timezone

from . import (
    APPROVE_REVIEW,
    CANCEL,
    CREATE,
    GENERATE_REPORT,
    SEND_REPORT,
    SUBMIT_FOR_REVIEW,
)

logger = logging.getLogger(__name__)


TEST_REQUEST_CREATED = "TestRequestCreated"
REVIEW_REQUIRED = "ReviewRequired"
REPORT_READY = "ReportReady"
REPORT_SENT = "ReportSent"
TEST_REQUEST_CANCELLED = "TestRequestCancelled"

# single entry point; receivers get `event=DomainEvent`
domain_event = Signal()


@dataclass
class DomainEvent:
    event_type: str
    request_id: int
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=timezone.now)
    id: str = field(default_factory=lambda: str(uuid4()))

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


def _base_payload(test_request) -> Dict[str, Any]:
    return {
        "patient_ref": test_request.patient_ref,
        "doctor_ref": test_request.doctor_ref,
        "center_ref": test_request.center_ref,
        "test_type": test_request.test_type,
        "status": test_request.status,
        "version": test_request.version,
    }


def events_for(test_request, event: str, *, actor_id: str = "") -> List[DomainEvent]:
    """
    Domain events implied by an accepted `event` on `test_request` (post-commit state).
    """
    payload = _base_payload(test_request)
    payload["actor_id"] = actor_id
    out: List[DomainEvent] = []

    def add(event_type: str, **extra):
        out.append(DomainEvent(event_type, test_request.pk, {**payload, **extra}))

    if event == CREATE:
        add(TEST_REQUEST_CREATED, urgency=test_request.urgency)
    elif event == SUBMIT_FOR_REVIEW:
        add(REVIEW_REQUIRED, reviewer_ref=test_request.reviewer_ref)
    elif event == GENERATE_REPORT and not test_request.review_required:
        add(REPORT_READY, report_file_handle=test_request.report_file_handle)
    elif event == APPROVE_REVIEW:
        add(REPORT_READY, report_file_handle=test_request.report_file_handle)
    elif event == SEND_REPORT:
        add(
            REPORT_SENT,
            send_method=test_request.report_send_method,
            sent_to=test_request.report_sent_to,
        )
    elif event == CANCEL:
        add(TEST_REQUEST_CANCELLED)

    return out


def publish(event: DomainEvent) -> None:
    for receiver, response in domain_event.send_robust(sender=DomainEvent, event=event):
        if isinstance(response, Exception):
            logger.error(
                "Domain event %s for test request %s failed in %r: %s",
                event.event_type,
                event.request_id,
                receiver,
                response,
            )


def emit(events: List[DomainEvent]) -> None:
    """
    Queue events for publication once the current transaction commits.
    Outside a transaction they are published immediately.
    """
    for ev in events:
        transaction.on_commit(lambda ev=ev: publish(ev))


__all__ = [
    "TEST_REQUEST_CREATED",
    "REVIEW_REQUIRED",
    "REPORT_READY",
    "REPORT_SENT",
    "TEST_REQUEST_CANCELLED",
    "DomainEvent",
    "domain_event",
    "events_for",
    "publish",
    "emit",
]
