# test_requests/models/core.py

from django.conf import settings
from django.db import models

from test_requests.workflows import CREATE_TARGET, STATES
from test_requests.workflows.guards import WorkflowWriteGuardMixin
from test_requests.workflows.handlers import (
    COLLECTION_STATUSES,
    REVIEW_STATUSES,
    SEND_METHODS,
    URGENCIES,
)
from test_requests.workflows.permissions import ROLES


# ============================================================
# Base
# ============================================================
class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


# ============================================================
# Center review policy
# ============================================================
class CenterPolicy(TimeStampedModel):
    """
    Per-center workflow configuration. Centers without a row fall back to
    settings.TEST_REQUEST_REVIEW_REQUIRED_DEFAULT.
    """

    center_ref = models.CharField(max_length=64, unique=True)
    review_required = models.BooleanField(default=False)

    class Meta:
        verbose_name_plural = "center policies"

    def __str__(self):
        return f"{self.center_ref} (review {'on' if self.review_required else 'off'})"


# ============================================================
# User Roles
# ============================================================
class UserRole(TimeStampedModel):
    ROLE_CHOICES = [(r, r) for r in ROLES]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="test_request_roles",
    )
    center_ref = models.CharField(max_length=64, blank=True)
    role = models.CharField(max_length=32, choices=ROLE_CHOICES)

    class Meta:
        unique_together = ("user", "center_ref")

    def __str__(self):
        return f"{self.user.get_username()} - {self.role}@{self.center_ref or '*'}"


# ============================================================
# Test Request
# ============================================================
class TestRequest(WorkflowWriteGuardMixin, TimeStampedModel):
    # keep pytest from collecting the model as a test class
    __test__ = False

    URGENCY_NORMAL = "Normal"
    URGENCY_CHOICES = [(u, u) for u in URGENCIES]
    STATUS_CHOICES = [(s, s.replace("_", " ")) for s in STATES]

    # references to external records
    patient_ref = models.CharField(max_length=64, db_index=True)
    doctor_ref = models.CharField(max_length=64, db_index=True)
    center_ref = models.CharField(max_length=64, db_index=True)

    test_type = models.CharField(max_length=255)
    test_description = models.TextField(blank=True)
    urgency = models.CharField(max_length=16, choices=URGENCY_CHOICES, default=URGENCY_NORMAL)
    notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=32,
        choices=STATUS_CHOICES,
        default=CREATE_TARGET,
        editable=False,
        db_index=True,
    )
    version = models.PositiveIntegerField(default=0, editable=False)
    review_required = models.BooleanField(default=False, editable=False)

    # assignment
    lab_staff_ref = models.CharField(max_length=64, blank=True)
    lab_staff_name = models.CharField(max_length=255, blank=True)
    assigned_at = models.DateTimeField(null=True, blank=True)

    # collection
    collector_ref = models.CharField(max_length=64, blank=True)
    collector_name = models.CharField(max_length=255, blank=True)
    collection_scheduled_at = models.DateTimeField(null=True, blank=True)
    collection_actual_at = models.DateTimeField(null=True, blank=True)
    collection_status = models.CharField(
        max_length=16,
        choices=[(s, s.replace("_", " ")) for s in COLLECTION_STATUSES],
        blank=True,
    )
    collection_notes = models.TextField(blank=True)

    # testing
    testing_staff_ref = models.CharField(max_length=64, blank=True)
    testing_started_at = models.DateTimeField(null=True, blank=True)
    testing_completed_at = models.DateTimeField(null=True, blank=True)
    testing_notes = models.TextField(blank=True)
    test_parameters = models.JSONField(default=list, blank=True)

    # results
    test_results = models.TextField(blank=True)
    conclusion = models.TextField(blank=True)
    recommendations = models.TextField(blank=True)

    # report
    report_file_handle = models.CharField(max_length=255, blank=True)
    report_generated_at = models.DateTimeField(null=True, blank=True)
    report_sent_at = models.DateTimeField(null=True, blank=True)
    report_notes = models.TextField(blank=True)
    report_send_method = models.CharField(
        max_length=8,
        choices=[(m, m) for m in SEND_METHODS],
        blank=True,
    )
    report_sent_to = models.CharField(max_length=255, blank=True)

    # review
    reviewer_ref = models.CharField(max_length=64, blank=True)
    review_status = models.CharField(
        max_length=16,
        choices=[(s, s) for s in REVIEW_STATUSES],
        blank=True,
    )
    review_notes = models.TextField(blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["center_ref", "status"], name="test_request_center_status_idx"),
        ]

    def __str__(self):
        return f"TR-{self.pk} {self.test_type} [{self.status}]"
