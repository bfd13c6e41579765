# test_requests/tests/test_timeline_and_guards.py

from django.core.exceptions import PermissionDenied
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from test_requests.models import TestRequest, TimelineEntry
from test_requests.workflows.exceptions import IllegalTransition
from test_requests.workflows.executor import apply_transition, create_test_request
from test_requests.workflows.permissions import Actor


class TimelineAndWriteGuardTests(TestCase):
    """
    Status and version move only through the executor; timeline rows are
    written once and never changed.
    """

    def setUp(self):
        self.doctor = Actor("doc-1", "Doctor", "C1")
        self.labtech = Actor("tech-1", "LabTechnician", "C1")
        self.tr = create_test_request(actor=self.doctor, patient_ref="pat-1", test_type="Lipid panel")
        apply_transition(
            request_id=self.tr.pk,
            event="AssignLabStaff",
            actor=self.labtech,
            payload={"labStaffRef": "tech-1"},
        )
        self.tr.refresh_from_db()

    # ---------------------------------------------------------
    # WRITE GUARD
    # ---------------------------------------------------------
    def test_direct_status_edit_is_blocked(self):
        self.tr.status = "Completed"
        with self.assertRaises(PermissionDenied):
            self.tr.save()

        self.assertEqual(TestRequest.objects.get(pk=self.tr.pk).status, "Assigned")

    def test_direct_version_edit_is_blocked(self):
        self.tr.version = 42
        with self.assertRaises(PermissionDenied):
            self.tr.save()

    def test_other_fields_can_still_be_saved(self):
        self.tr.notes = "Fasting sample"
        self.tr.save()
        self.assertEqual(TestRequest.objects.get(pk=self.tr.pk).notes, "Fasting sample")

    def test_bypass_for_repairs(self):
        self.tr.status = "Cancelled"
        self.tr.save(_workflow_bypass=True)
        self.assertEqual(TestRequest.objects.get(pk=self.tr.pk).status, "Cancelled")

    # ---------------------------------------------------------
    # TIMELINE IMMUTABILITY
    # ---------------------------------------------------------
    def test_entries_cannot_be_edited(self):
        entry = TimelineEntry.objects.get(test_request=self.tr, sequence=1)
        entry.note = "rewritten"
        with self.assertRaises(PermissionDenied):
            entry.save()

        self.assertEqual(TimelineEntry.objects.get(pk=entry.pk).note, "")

    def test_entries_cannot_be_deleted(self):
        entry = TimelineEntry.objects.get(test_request=self.tr, sequence=0)
        with self.assertRaises(PermissionDenied):
            entry.delete()
        self.assertEqual(TimelineEntry.objects.filter(test_request=self.tr).count(), 2)

    def test_sequence_is_unique_per_request(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                TimelineEntry.objects.create(
                    test_request=self.tr,
                    sequence=1,
                    from_state="Pending",
                    to_state="Assigned",
                    event="AssignLabStaff",
                    actor_id="intruder",
                    actor_role="LabTechnician",
                    timestamp=timezone.now(),
                )

    def test_timeline_length_matches_accepted_transitions(self):
        with self.assertRaises(IllegalTransition):
            apply_transition(request_id=self.tr.pk, event="SendReport", actor=self.labtech)

        entries = list(TimelineEntry.objects.filter(test_request=self.tr))
        self.assertEqual([e.event for e in entries], ["Create", "AssignLabStaff"])
        self.assertEqual(len(entries), self.tr.version + 1)
