# test_requests/tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest
from django.contrib.auth import authenticate, get_user_model
from rest_framework.test import APIClient

from test_requests.models import CenterPolicy, UserRole
from test_requests.workflows import (
    APPROVE_REVIEW,
    ASSIGNED,
    ASSIGN_LAB_STAFF,
    COMPLETE_TESTING,
    GENERATE_REPORT,
    IN_LAB_TESTING,
    PENDING,
    RECORD_COLLECTION,
    REPORT_GENERATED,
    REPORT_SENT,
    REVIEW_APPROVED,
    REVIEW_PENDING,
    SAMPLE_COLLECTED,
    SAMPLE_COLLECTION_SCHEDULED,
    SCHEDULE_COLLECTION,
    SEND_REPORT,
    START_TESTING,
    SUBMIT_FOR_REVIEW,
    TESTING_COMPLETED,
)
from test_requests.workflows.executor import apply_transition, create_test_request
from test_requests.workflows.permissions import Actor


CENTER = "C1"
REVIEW_CENTER = "C-REVIEW"
OTHER_CENTER = "C2"

BASE_TIME = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)


def iso(dt: datetime) -> str:
    return dt.isoformat()


# ===============================================================
# Actors (engine-level tests)
# ===============================================================

@pytest.fixture
def doctor() -> Actor:
    return Actor(actor_id="doc-1", role="Doctor", center_id=CENTER)


@pytest.fixture
def other_doctor() -> Actor:
    return Actor(actor_id="doc-2", role="Doctor", center_id=CENTER)


@pytest.fixture
def labtech() -> Actor:
    return Actor(actor_id="tech-1", role="LabTechnician", center_id=CENTER)


@pytest.fixture
def reviewer() -> Actor:
    return Actor(actor_id="rev-1", role="Reviewer", center_id=REVIEW_CENTER)


@pytest.fixture
def review_doctor() -> Actor:
    return Actor(actor_id="doc-r", role="Doctor", center_id=REVIEW_CENTER)


@pytest.fixture
def review_labtech() -> Actor:
    return Actor(actor_id="tech-r", role="Lab Technician", center_id=REVIEW_CENTER)


@pytest.fixture
def review_policy(db) -> CenterPolicy:
    policy, _ = CenterPolicy.objects.get_or_create(
        center_ref=REVIEW_CENTER, defaults={"review_required": True}
    )
    return policy


# ===============================================================
# Workflow driver
# ===============================================================

# Payload builders per event; `t` is the transition time.
STEP_PAYLOADS = {
    ASSIGN_LAB_STAFF: lambda t: {"labStaffRef": "tech-1", "labStaffName": "Tech One"},
    SCHEDULE_COLLECTION: lambda t: {"collectorRef": "col-1", "collectorName": "Collector", "scheduledAt": iso(t)},
    RECORD_COLLECTION: lambda t: {"collectedAt": iso(t), "collectionStatus": "Completed"},
    START_TESTING: lambda t: {},
    COMPLETE_TESTING: lambda t: {
        "testResults": "Hemoglobin within range.",
        "conclusion": "Normal",
        "parameters": [
            {"name": "Hemoglobin", "value": "13.5", "unit": "g/dL", "normalRange": "12-16"},
            {"name": "WBC", "value": "6.1", "unit": "10^9/L", "normalRange": "4-11"},
        ],
    },
    GENERATE_REPORT: lambda t: {"fileHandle": "test_reports/fixture/report.pdf"},
    SUBMIT_FOR_REVIEW: lambda t: {"reviewerRef": "rev-1"},
    APPROVE_REVIEW: lambda t: {"reviewNotes": "Looks good."},
    SEND_REPORT: lambda t: {"sendMethod": "system"},
}

# event needed to leave each state on the main path
NEXT_EVENT = {
    PENDING: ASSIGN_LAB_STAFF,
    ASSIGNED: SCHEDULE_COLLECTION,
    SAMPLE_COLLECTION_SCHEDULED: RECORD_COLLECTION,
    SAMPLE_COLLECTED: START_TESTING,
    IN_LAB_TESTING: COMPLETE_TESTING,
    TESTING_COMPLETED: GENERATE_REPORT,
    REVIEW_PENDING: APPROVE_REVIEW,
    REVIEW_APPROVED: SEND_REPORT,
}


class WorkflowDriver:
    """
    Walks test requests through the engine on a deterministic clock.
    """

    def __init__(self, reviewer: Actor):
        self.clock = BASE_TIME
        self.reviewer = reviewer

    def tick(self) -> datetime:
        self.clock = self.clock + timedelta(hours=1)
        return self.clock

    def create(self, actor: Actor, **kwargs):
        params = {"patient_ref": "pat-1", "test_type": "Complete Blood Count"}
        params.update(kwargs)
        return create_test_request(actor=actor, now=self.tick(), **params)

    def apply(self, tr, event: str, actor: Actor, payload: Optional[Dict[str, Any]] = None, **kwargs):
        now = self.tick()
        if payload is None:
            payload = STEP_PAYLOADS.get(event, lambda t: {})(now)
        return apply_transition(
            request_id=tr.pk,
            event=event,
            actor=actor,
            payload=payload,
            now=now,
            **kwargs,
        )

    def advance_to(self, tr, target: str, lab_actor: Actor):
        """
        Follow the happy path until `target`. Review steps use the reviewer actor.
        """
        tr.refresh_from_db()
        while tr.status != target:
            if tr.status == REPORT_GENERATED:
                event = SUBMIT_FOR_REVIEW if tr.review_required else SEND_REPORT
            elif tr.status == REPORT_SENT:
                raise AssertionError(f"cannot advance past {REPORT_SENT} to {target}")
            else:
                event = NEXT_EVENT[tr.status]

            actor = self.reviewer if event in {SUBMIT_FOR_REVIEW, APPROVE_REVIEW} else lab_actor
            tr = self.apply(tr, event, actor).test_request
        return tr


@pytest.fixture
def driver(db, reviewer) -> WorkflowDriver:
    return WorkflowDriver(reviewer)


# ===============================================================
# HTTP clients and users (API tests)
# ===============================================================

class AuthAPIClient(APIClient):
    """
    Test client that uses force_authenticate for predictable DRF auth.
    """

    _user = None

    def login(self, username: str, password: str, **kwargs) -> bool:  # type: ignore[override]
        user = authenticate(username=username, password=password)
        if not user:
            return False
        self.force_authenticate(user=user)
        self._user = user
        return True

    def logout(self) -> None:  # type: ignore[override]
        # DRF's force_authenticate(user=None) calls self.logout() internally.
        super().logout()
        self.handler._force_user = None
        self.handler._force_token = None
        self._user = None


@pytest.fixture
def api_client() -> AuthAPIClient:
    return AuthAPIClient()


def _user(username: str, *, superuser: bool = False):
    User = get_user_model()
    user, _ = User.objects.get_or_create(
        username=username,
        defaults={"is_staff": superuser, "is_superuser": superuser},
    )
    user.set_password("pass123")
    user.save(update_fields=["password"])
    return user


def _with_role(user, role: str, center: str = CENTER):
    UserRole.objects.get_or_create(user=user, center_ref=center, defaults={"role": role})
    return user


@pytest.fixture
def user_doctor(db):
    return _with_role(_user("doctor"), "Doctor")


@pytest.fixture
def user_other_doctor(db):
    return _with_role(_user("doctor2"), "Doctor")


@pytest.fixture
def user_labtech(db):
    return _with_role(_user("labtech"), "Lab Technician")


@pytest.fixture
def user_labtech_other_center(db):
    return _with_role(_user("labtech2"), "LabTechnician", OTHER_CENTER)


@pytest.fixture
def user_reviewer(db):
    return _with_role(_user("reviewer"), "Reviewer")


@pytest.fixture
def user_superadmin(db):
    return _user("root", superuser=True)
