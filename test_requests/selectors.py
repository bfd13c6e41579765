# test_requests/selectors.py
"""
Read side. Listings are eventually consistent with the last commit and are
never the basis for a write; the executor always re-loads.
"""
from __future__ import annotations

from typing import Dict

from django.db.models import Count, QuerySet

from .models import TestRequest
from .workflows import STATES
from .workflows import store
from .workflows.exceptions import TransitionForbidden
from .workflows.permissions import DOCTOR, LAB_ROLES, REVIEWER, SUPERADMIN, Actor


def list_by_role(actor: Actor, base_qs: QuerySet = None) -> QuerySet:
    """
    Doctor: own requests. Lab staff and reviewers: their center.
    Superadmin: everything (optionally narrowed to the selected center).
    """
    qs = base_qs if base_qs is not None else TestRequest.objects.all()

    if actor.role == SUPERADMIN:
        return qs.filter(center_ref=actor.center_id) if actor.center_id else qs

    if actor.role == DOCTOR:
        qs = qs.filter(doctor_ref=actor.actor_id)
        return qs.filter(center_ref=actor.center_id) if actor.center_id else qs

    if actor.role in LAB_ROLES or actor.role == REVIEWER:
        if not actor.center_id:
            return qs.none()
        return qs.filter(center_ref=actor.center_id)

    return qs.none()


def can_view(actor: Actor, test_request: TestRequest) -> bool:
    return list_by_role(actor, TestRequest.objects.filter(pk=test_request.pk)).exists()


def get_by_id(actor: Actor, request_id) -> TestRequest:
    """
    Raises TestRequestNotFound, or TransitionForbidden when outside the actor's scope.
    """
    tr = store.get(request_id)
    if not can_view(actor, tr):
        raise TransitionForbidden("You do not have access to this test request.")
    return tr


def status_counts(qs: QuerySet) -> Dict[str, int]:
    counts = {s: 0 for s in STATES}
    for row in qs.order_by().values("status").annotate(n=Count("id")):
        counts[row["status"]] = row["n"]
    counts["total"] = sum(counts[s] for s in STATES)
    return counts
