# test_requests/tests/test_concurrency.py
"""
Optimistic versioning. Races are replayed sequentially: both writers read the
same version, the first commit wins, the second gets VersionConflict.
"""

from datetime import timedelta

import pytest

from test_requests.models import TestRequest, TimelineEntry
from test_requests.workflows import ASSIGNED, CANCELLED, PENDING, store
from test_requests.workflows.exceptions import IllegalTransition, TestRequestNotFound, VersionConflict
from test_requests.workflows.executor import apply_transition, apply_transition_with_retry
from test_requests.workflows.timeline import build_entry


@pytest.mark.django_db
def test_second_commit_on_same_version_conflicts(driver, doctor, labtech):
    tr = driver.create(doctor)

    # both writers loaded version 0
    first = store.get(tr.pk)
    second = store.get(tr.pk)
    now = driver.tick()

    store.commit(
        first.pk,
        first.version,
        {"lab_staff_ref": "tech-1", "assigned_at": now},
        build_entry(test_request=first, to_state=ASSIGNED, event="AssignLabStaff", actor=labtech, now=now),
    )

    with pytest.raises(VersionConflict) as exc:
        store.commit(
            second.pk,
            second.version,
            {"lab_staff_ref": "tech-2", "assigned_at": now + timedelta(minutes=1)},
            build_entry(test_request=second, to_state=ASSIGNED, event="AssignLabStaff", actor=labtech, now=now),
        )
    assert exc.value.expected == 0
    assert exc.value.actual == 1
    assert exc.value.retryable is True

    tr.refresh_from_db()
    assert tr.version == 1
    assert tr.lab_staff_ref == "tech-1"
    assert TimelineEntry.objects.filter(test_request=tr).count() == 2


@pytest.mark.django_db
def test_loser_refetches_and_retries(driver, doctor, labtech):
    tr = driver.create(doctor)

    driver.apply(tr, "AssignLabStaff", labtech, base_version=0)

    # the doctor still holds version 0
    with pytest.raises(VersionConflict):
        driver.apply(tr, "Cancel", doctor, base_version=0)

    fresh = store.get(tr.pk)
    result = driver.apply(fresh, "Cancel", doctor, base_version=fresh.version)

    assert result.from_state == ASSIGNED
    assert result.to_state == CANCELLED
    assert result.test_request.version == 2


@pytest.mark.django_db
def test_same_logical_transition_applies_once(driver, doctor, labtech):
    tr = driver.create(doctor)

    driver.apply(tr, "AssignLabStaff", labtech, base_version=0)

    # a replayed request cannot be applied twice
    with pytest.raises(VersionConflict):
        driver.apply(tr, "AssignLabStaff", labtech, base_version=0)
    with pytest.raises(IllegalTransition):
        driver.apply(tr, "AssignLabStaff", labtech)

    assert TestRequest.objects.get(pk=tr.pk).version == 1


@pytest.mark.django_db
def test_retry_wrapper_recovers_from_lost_race(driver, doctor, labtech, monkeypatch):
    tr = driver.create(doctor)
    real_commit = store.commit
    calls = []

    def racing_commit(request_id, expected_version, patch, entry):
        calls.append(expected_version)
        if len(calls) == 1:
            raise VersionConflict(request_id, expected_version)
        return real_commit(request_id, expected_version, patch, entry)

    monkeypatch.setattr(store, "commit", racing_commit)

    result = apply_transition_with_retry(
        request_id=tr.pk,
        event="AssignLabStaff",
        actor=labtech,
        payload={"labStaffRef": "tech-1"},
    )

    assert len(calls) == 2
    assert result.test_request.version == 1


@pytest.mark.django_db
def test_retry_wrapper_gives_up(driver, doctor, labtech, monkeypatch, settings):
    settings.TEST_REQUEST_MAX_COMMIT_ATTEMPTS = 3
    tr = driver.create(doctor)
    calls = []

    def always_conflict(request_id, expected_version, patch, entry):
        calls.append(expected_version)
        raise VersionConflict(request_id, expected_version)

    monkeypatch.setattr(store, "commit", always_conflict)

    with pytest.raises(VersionConflict):
        apply_transition_with_retry(
            request_id=tr.pk,
            event="AssignLabStaff",
            actor=labtech,
            payload={"labStaffRef": "tech-1"},
        )

    assert len(calls) == 3
    tr.refresh_from_db()
    assert (tr.status, tr.version) == (PENDING, 0)


@pytest.mark.django_db
def test_deterministic_errors_are_not_retried(driver, doctor, labtech, monkeypatch):
    tr = driver.create(doctor)
    calls = []

    real_get = store.get

    def counting_get(request_id):
        calls.append(request_id)
        return real_get(request_id)

    monkeypatch.setattr(store, "get", counting_get)

    with pytest.raises(IllegalTransition):
        apply_transition_with_retry(request_id=tr.pk, event="StartTesting", actor=labtech)

    assert len(calls) == 1


def test_retry_wrapper_refuses_pinned_version():
    with pytest.raises(TypeError):
        apply_transition_with_retry(request_id=1, event="Cancel", actor=None, base_version=0)


@pytest.mark.django_db
def test_commit_on_missing_request(labtech, driver, doctor):
    tr = driver.create(doctor)
    entry = build_entry(test_request=tr, to_state=ASSIGNED, event="AssignLabStaff", actor=labtech, now=driver.tick())

    with pytest.raises(TestRequestNotFound):
        store.commit(tr.pk + 1000, 0, {}, entry)
