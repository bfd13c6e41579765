# test_requests/workflows/executor.py
"""
Workflow engine.

Every write goes through here:

    load -> guard (role) -> validator (table + predicates) -> handler (patch)
         -> timeline entry -> store.commit (version check) -> domain events

Any failure before commit leaves the request and its timeline untouched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from test_requests.models import TestRequest, TimelineEntry

from . import CREATE, normalize_event, validate_transition
from . import store
from .exceptions import TransitionForbidden, VersionConflict
from .handlers import run_handler
from .notifications import emit, events_for
from .payloads import CreatePayloadSerializer, require_mapping, text, validate_payload
from .permissions import Actor, check_permission
from .policy import requires_review
from .predicates import check_predicates
from .timeline import build_entry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    test_request: TestRequest
    entry: TimelineEntry
    from_state: str
    to_state: str
    event: str


# ===============================================================
# Create
# ===============================================================

def create_test_request(
    *,
    actor: Actor,
    patient_ref: str,
    test_type: str,
    test_description: str = "",
    urgency: str = TestRequest.URGENCY_NORMAL,
    notes: str = "",
    center_ref: Optional[str] = None,
    now=None,
) -> TestRequest:
    """
    Doctor opens a new request at their center: status Pending, version 0,
    one Create timeline entry. The center's review policy is frozen here.
    """
    check_permission(actor, CREATE)

    data = validate_payload(
        CreatePayloadSerializer,
        {
            "patientRef": patient_ref,
            "testType": test_type,
            "testDescription": test_description,
            "notes": notes,
            "centerRef": center_ref if center_ref is not None else actor.center_id,
            "urgency": (urgency or TestRequest.URGENCY_NORMAL).strip().capitalize(),
        },
    )
    patient = data["patientRef"]
    kind = data["testType"]
    description = text(data, "testDescription")
    note_text = text(data, "notes")
    center = data["centerRef"]
    urgency = data["urgency"]

    if actor.center_id and center != actor.center_id:
        raise TransitionForbidden(
            f"Cannot create test requests for center {center} while acting for {actor.center_id}."
        )

    now = now or timezone.now()

    with transaction.atomic():
        tr = store.create(
            patient_ref=patient,
            doctor_ref=actor.actor_id,
            center_ref=center,
            test_type=kind,
            test_description=description,
            urgency=urgency,
            notes=note_text,
            review_required=requires_review(center),
            actor_id=actor.actor_id,
            actor_role=actor.role,
            now=now,
        )
        emit(events_for(tr, CREATE, actor_id=actor.actor_id))

    logger.info(
        "Test request %s created by %s for patient %s at %s (review %s)",
        tr.pk,
        actor.actor_id,
        tr.patient_ref,
        tr.center_ref,
        "required" if tr.review_required else "off",
    )
    return tr


# ===============================================================
# Transitions
# ===============================================================

def apply_transition(
    *,
    request_id,
    event: str,
    actor: Actor,
    payload: Optional[Mapping[str, Any]] = None,
    base_version: Optional[int] = None,
    note: str = "",
    now=None,
) -> TransitionResult:
    now = now or timezone.now()
    ev = normalize_event(event)

    tr = store.get(request_id)

    # 1) Role (and ownership / center scope)
    check_permission(actor, ev, tr)

    # 2) Caller acted on a stale copy
    if base_version is not None and int(base_version) != tr.version:
        raise VersionConflict(tr.pk, int(base_version), tr.version)

    # 3) Legality from the current state, then cross-field predicates
    target = validate_transition(tr.status, ev, tr.review_required)
    payload = require_mapping(payload)
    check_predicates(tr, ev, payload)

    # 4) Stage handler computes the patch
    patch: Dict[str, Any] = run_handler(tr, ev, payload, now=now, actor_id=actor.actor_id)

    # 5) Entry + versioned commit
    entry = build_entry(test_request=tr, to_state=target, event=ev, actor=actor, now=now, note=note)

    with transaction.atomic():
        updated = store.commit(tr.pk, tr.version, patch, entry)
        emit(events_for(updated, ev, actor_id=actor.actor_id))

    logger.info(
        "Test request %s: %s -> %s via %s by %s:%s (v%s)",
        updated.pk,
        tr.status,
        target,
        ev,
        actor.role,
        actor.actor_id,
        updated.version,
    )

    return TransitionResult(
        test_request=updated,
        entry=entry,
        from_state=tr.status,
        to_state=target,
        event=ev,
    )


def max_commit_attempts() -> int:
    return max(1, int(getattr(settings, "TEST_REQUEST_MAX_COMMIT_ATTEMPTS", 3)))


def apply_transition_with_retry(*, attempts: Optional[int] = None, **kwargs) -> TransitionResult:
    """
    apply_transition against a freshly loaded request, retrying only on
    VersionConflict. Callers pinning a base_version should call
    apply_transition directly: a retry would silently act on newer data.
    """
    if "base_version" in kwargs:
        raise TypeError("apply_transition_with_retry() does not accept base_version")

    attempts = attempts or max_commit_attempts()
    attempt = 0
    while True:
        attempt += 1
        try:
            return apply_transition(**kwargs)
        except VersionConflict as exc:
            if attempt >= attempts:
                logger.warning(
                    "Giving up on test request %s after %s conflicting attempts",
                    exc.request_id,
                    attempt,
                )
                raise
            logger.info(
                "Version conflict on test request %s (attempt %s/%s); retrying",
                exc.request_id,
                attempt,
                attempts,
            )


__all__ = [
    "TransitionResult",
    "create_test_request",
    "apply_transition",
    "apply_transition_with_retry",
    "max_commit_attempts",
]
