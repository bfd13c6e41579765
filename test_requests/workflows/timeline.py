# test_requests/workflows/timeline.py
"""
Audit timeline recorder.

Entries are built here (unsaved) and persisted by the store in the same
transaction as the entity update. Sequence numbers follow the version the
transition produces, so they are contiguous from 0 (Create).
"""
from __future__ import annotations

from typing import List

from test_requests.models import TestRequest, TimelineEntry

from .permissions import Actor


def build_entry(
    *,
    test_request: TestRequest,
    to_state: str,
    event: str,
    actor: Actor,
    now,
    note: str = "",
) -> TimelineEntry:
    return TimelineEntry(
        test_request_id=test_request.pk,
        sequence=test_request.version + 1,
        from_state=test_request.status,
        to_state=to_state,
        event=event,
        actor_id=actor.actor_id,
        actor_role=actor.role,
        note=(note or "").strip(),
        timestamp=now,
    )


def timeline_for(test_request) -> List[TimelineEntry]:
    """
    Ordered entries for a request (instance or primary key).
    """
    pk = getattr(test_request, "pk", test_request)
    return list(TimelineEntry.objects.filter(test_request_id=pk).order_by("sequence"))


__all__ = ["build_entry", "timeline_for"]
