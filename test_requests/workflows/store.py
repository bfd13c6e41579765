# test_requests/workflows/store.py
"""
Entity store for test requests.

Optimistic concurrency: every accepted transition is a single UPDATE filtered
on (id, version). A stale writer updates zero rows and gets VersionConflict.
The timeline INSERT runs in the same transaction, so an entity change never
lands without its audit entry (and vice versa).
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from django.db import IntegrityError, transaction
from django.db.models import F

from test_requests.models import TestRequest, TimelineEntry

from . import CREATE, CREATE_TARGET
from .exceptions import TestRequestNotFound, VersionConflict

logger = logging.getLogger(__name__)

# Columns only the store may write
_PROTECTED_FIELDS = {"id", "pk", "status", "version", "created_at", "updated_at"}


def get(request_id) -> TestRequest:
    try:
        return TestRequest.objects.get(pk=request_id)
    except (TestRequest.DoesNotExist, ValueError, TypeError):
        raise TestRequestNotFound(request_id)


def create(
    *,
    patient_ref: str,
    doctor_ref: str,
    center_ref: str,
    test_type: str,
    test_description: str = "",
    urgency: str = TestRequest.URGENCY_NORMAL,
    notes: str = "",
    review_required: bool = False,
    actor_id: str,
    actor_role: str,
    now,
) -> TestRequest:
    """
    New request at version 0 in the initial state, with its Create entry.
    """
    with transaction.atomic():
        tr = TestRequest(
            patient_ref=patient_ref,
            doctor_ref=doctor_ref,
            center_ref=center_ref,
            test_type=test_type,
            test_description=test_description,
            urgency=urgency,
            notes=notes,
            review_required=review_required,
            status=CREATE_TARGET,
            version=0,
        )
        tr.save()

        TimelineEntry.objects.create(
            test_request=tr,
            sequence=0,
            from_state="",
            to_state=CREATE_TARGET,
            event=CREATE,
            actor_id=actor_id,
            actor_role=actor_role,
            timestamp=now,
        )

    return tr


def commit(request_id, expected_version: int, patch: Dict[str, Any], entry: TimelineEntry) -> TestRequest:
    """
    Apply `patch` plus the entry's target state, bump the version and append
    the entry. Raises VersionConflict if someone else committed first.
    """
    fields = {k: v for k, v in (patch or {}).items() if k not in _PROTECTED_FIELDS}

    with transaction.atomic():
        updated = TestRequest.objects.filter(pk=request_id, version=expected_version).update(
            **fields,
            status=entry.to_state,
            version=F("version") + 1,
            updated_at=entry.timestamp,
        )

        if updated == 0:
            actual = (
                TestRequest.objects.filter(pk=request_id)
                .values_list("version", flat=True)
                .first()
            )
            if actual is None:
                raise TestRequestNotFound(request_id)
            raise VersionConflict(request_id, expected_version, actual)

        entry.test_request_id = request_id
        try:
            # savepoint so a losing race leaves the outer block usable
            with transaction.atomic():
                entry.save()
        except IntegrityError:
            logger.warning(
                "Timeline sequence collision on test request %s at version %s",
                request_id,
                expected_version,
            )
            raise VersionConflict(request_id, expected_version)

    return TestRequest.objects.get(pk=request_id)


__all__ = ["get", "create", "commit"]
