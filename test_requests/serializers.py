from __future__ import annotations

from typing import Any, Dict, Optional

from rest_framework import serializers

from .models import TestRequest, TimelineEntry


def _dt(value) -> Optional[str]:
    return value.isoformat() if value else None


# ===============================================================
# Timeline
# ===============================================================

class TimelineEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = TimelineEntry
        fields = (
            "sequence",
            "from_state",
            "to_state",
            "event",
            "actor_id",
            "actor_role",
            "timestamp",
            "note",
        )
        read_only_fields = fields


# ===============================================================
# Test request projection
# ===============================================================

class TestRequestSerializer(serializers.ModelSerializer):
    """
    Flat columns folded back into the sub-records the clients work with.
    Read-only: every write goes through the workflow endpoints.
    """

    assignment = serializers.SerializerMethodField()
    collection = serializers.SerializerMethodField()
    testing = serializers.SerializerMethodField()
    results = serializers.SerializerMethodField()
    report = serializers.SerializerMethodField()
    review = serializers.SerializerMethodField()

    class Meta:
        model = TestRequest
        fields = (
            "id",
            "patient_ref",
            "doctor_ref",
            "center_ref",
            "test_type",
            "test_description",
            "urgency",
            "notes",
            "status",
            "version",
            "review_required",
            "created_at",
            "updated_at",
            "assignment",
            "collection",
            "testing",
            "results",
            "report",
            "review",
        )
        read_only_fields = fields

    def get_assignment(self, obj) -> Optional[Dict[str, Any]]:
        if not obj.lab_staff_ref:
            return None
        return {
            "lab_staff_ref": obj.lab_staff_ref,
            "lab_staff_name": obj.lab_staff_name,
            "assigned_at": _dt(obj.assigned_at),
        }

    def get_collection(self, obj) -> Optional[Dict[str, Any]]:
        if not obj.collection_scheduled_at:
            return None
        return {
            "collector_ref": obj.collector_ref,
            "collector_name": obj.collector_name,
            "scheduled_at": _dt(obj.collection_scheduled_at),
            "actual_at": _dt(obj.collection_actual_at),
            "status": obj.collection_status or None,
            "notes": obj.collection_notes,
        }

    def get_testing(self, obj) -> Optional[Dict[str, Any]]:
        if not obj.testing_started_at:
            return None
        return {
            "lab_staff_ref": obj.testing_staff_ref,
            "started_at": _dt(obj.testing_started_at),
            "completed_at": _dt(obj.testing_completed_at),
            "notes": obj.testing_notes,
            "parameters": list(obj.test_parameters or []),
        }

    def get_results(self, obj) -> Optional[Dict[str, Any]]:
        if not obj.test_results:
            return None
        return {
            "test_results": obj.test_results,
            "conclusion": obj.conclusion,
            "recommendations": obj.recommendations,
        }

    def get_report(self, obj) -> Optional[Dict[str, Any]]:
        if not (obj.report_file_handle or obj.report_sent_at):
            return None
        return {
            "file_handle": obj.report_file_handle or None,
            "generated_at": _dt(obj.report_generated_at),
            "sent_at": _dt(obj.report_sent_at),
            "send_method": obj.report_send_method or None,
            "sent_to": obj.report_sent_to,
            "notes": obj.report_notes,
        }

    def get_review(self, obj) -> Optional[Dict[str, Any]]:
        if not obj.review_required or not obj.review_status:
            return None
        return {
            "reviewer_ref": obj.reviewer_ref,
            "status": obj.review_status,
            "notes": obj.review_notes,
            "reviewed_at": _dt(obj.reviewed_at),
        }


class TestRequestDetailSerializer(TestRequestSerializer):
    timeline = TimelineEntrySerializer(many=True, read_only=True)

    class Meta(TestRequestSerializer.Meta):
        fields = TestRequestSerializer.Meta.fields + ("timeline",)
        read_only_fields = fields


# ===============================================================
# Write inputs
# ===============================================================

class TestRequestCreateSerializer(serializers.Serializer):
    patient_ref = serializers.CharField(max_length=64)
    test_type = serializers.CharField(max_length=255)
    test_description = serializers.CharField(required=False, allow_blank=True, default="")
    urgency = serializers.CharField(required=False, default=TestRequest.URGENCY_NORMAL)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    center_ref = serializers.CharField(max_length=64, required=False)


class TransitionRequestSerializer(serializers.Serializer):
    event = serializers.CharField(max_length=64)
    payload = serializers.DictField(required=False, default=dict)
    base_version = serializers.IntegerField(required=False, min_value=0)
    note = serializers.CharField(required=False, allow_blank=True, default="")


class ReportUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    base_version = serializers.IntegerField(required=False, min_value=0)
