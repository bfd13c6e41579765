# test_requests/workflows/completion.py
"""
Implicit completion: Report_Sent -> Completed.

A delivered report closes the request once the grace period passes. Runs as
the System actor from the Celery beat schedule; each request goes through the
normal engine so it gets its own versioned commit and timeline entry.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.utils import timezone

from test_requests.models import TestRequest

from . import COMPLETE, REPORT_SENT
from .exceptions import WorkflowError
from .executor import apply_transition
from .permissions import SYSTEM_ACTOR

logger = logging.getLogger(__name__)


def completion_cutoff(now=None):
    now = now or timezone.now()
    hours = float(getattr(settings, "TEST_REQUEST_AUTO_COMPLETE_AFTER_HOURS", 24))
    return now - timedelta(hours=hours)


def complete_delivered_requests(now=None, limit: Optional[int] = None) -> int:
    """
    Close every request whose report was sent before the cutoff.
    Returns the number of requests completed.
    """
    now = now or timezone.now()
    cutoff = completion_cutoff(now)

    qs = (
        TestRequest.objects.filter(status=REPORT_SENT, report_sent_at__lte=cutoff)
        .order_by("report_sent_at", "id")
        .values_list("id", "version")
    )
    if limit:
        qs = qs[:limit]

    completed = 0
    for request_id, version in qs:
        try:
            apply_transition(
                request_id=request_id,
                event=COMPLETE,
                actor=SYSTEM_ACTOR,
                base_version=version,
                note="Closed automatically after report delivery.",
                now=now,
            )
        except WorkflowError as exc:
            # someone else moved it (e.g. cancelled); next sweep re-evaluates
            logger.warning("Auto-completion skipped for test request %s: %s", request_id, exc)
            continue
        completed += 1

    if completed:
        logger.info("Auto-completed %s test request(s) sent before %s", completed, cutoff.isoformat())
    return completed


__all__ = ["completion_cutoff", "complete_delivered_requests"]
