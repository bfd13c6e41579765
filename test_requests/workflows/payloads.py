# test_requests/workflows/payloads.py
"""
Per-event payload serializers.

Wire keys are camelCase, matching what the lab and review screens send.
Serializers here only check shape; ordering against the stored record is
the stage handler's job.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from rest_framework import serializers
from rest_framework.settings import api_settings

from .exceptions import TransitionValidationError


# ===============================================================
# Vocabularies
# ===============================================================

URGENCIES = ("Normal", "Urgent", "Emergency")

COLLECTION_STATUSES = ("In_Progress", "Completed", "Failed", "Rescheduled")

REVIEW_PENDING = "Pending"
REVIEW_APPROVED = "Approved"
REVIEW_REJECTED = "Rejected"
REVIEW_REQUIRES_CHANGES = "RequiresChanges"
REVIEW_STATUSES = (REVIEW_PENDING, REVIEW_APPROVED, REVIEW_REJECTED, REVIEW_REQUIRES_CHANGES)

SEND_METHODS = ("system", "email", "both")

TEXT_LIMIT = 10_000
REF_LIMIT = 64
NAME_LIMIT = 255


def _optional_text(max_length: int = TEXT_LIMIT):
    return serializers.CharField(
        required=False, allow_blank=True, allow_null=True, default="", max_length=max_length
    )


# ===============================================================
# Create
# ===============================================================

class CreatePayloadSerializer(serializers.Serializer):
    patientRef = serializers.CharField(max_length=REF_LIMIT)
    testType = serializers.CharField(max_length=NAME_LIMIT)
    testDescription = _optional_text()
    notes = _optional_text()
    centerRef = serializers.CharField(max_length=REF_LIMIT)
    urgency = serializers.ChoiceField(choices=URGENCIES, default="Normal")


# ===============================================================
# Lab stages
# ===============================================================

class AssignLabStaffPayloadSerializer(serializers.Serializer):
    labStaffRef = serializers.CharField(max_length=REF_LIMIT)
    labStaffName = _optional_text(NAME_LIMIT)


class ScheduleCollectionPayloadSerializer(serializers.Serializer):
    collectorRef = serializers.CharField(max_length=REF_LIMIT)
    collectorName = _optional_text(NAME_LIMIT)
    scheduledAt = serializers.DateTimeField()
    notes = _optional_text()


class RecordCollectionPayloadSerializer(serializers.Serializer):
    collectedAt = serializers.DateTimeField(required=False, allow_null=True)
    collectionStatus = serializers.ChoiceField(choices=COLLECTION_STATUSES, default="Completed")
    notes = _optional_text()


class StartTestingPayloadSerializer(serializers.Serializer):
    labStaffRef = _optional_text(REF_LIMIT)
    startedAt = serializers.DateTimeField(required=False, allow_null=True)
    notes = _optional_text()


class ParameterSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=NAME_LIMIT)
    value = serializers.CharField(max_length=NAME_LIMIT)
    unit = serializers.CharField(required=False, allow_blank=True, default="", max_length=64)
    normalRange = serializers.CharField(required=False, allow_blank=True, default="", max_length=NAME_LIMIT)


class CompleteTestingPayloadSerializer(serializers.Serializer):
    testResults = serializers.CharField(max_length=TEXT_LIMIT)
    conclusion = _optional_text()
    recommendations = _optional_text()
    notes = _optional_text()
    parameters = serializers.ListField(child=ParameterSerializer(), required=False)


class GenerateReportPayloadSerializer(serializers.Serializer):
    fileHandle = serializers.CharField(max_length=NAME_LIMIT)
    notes = _optional_text()


# ===============================================================
# Review and delivery
# ===============================================================

class SubmitForReviewPayloadSerializer(serializers.Serializer):
    reviewerRef = _optional_text(REF_LIMIT)
    notes = _optional_text()


class ApproveReviewPayloadSerializer(serializers.Serializer):
    reviewNotes = _optional_text()


class ReviewObjectionPayloadSerializer(serializers.Serializer):
    """RejectReview / RequestChanges: the reviewer must say why."""

    reviewNotes = serializers.CharField(max_length=TEXT_LIMIT)


class SendReportPayloadSerializer(serializers.Serializer):
    sendMethod = serializers.ChoiceField(choices=SEND_METHODS, default="system")
    sentTo = _optional_text(NAME_LIMIT)
    notes = _optional_text()

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        if attrs["sendMethod"] in {"email", "both"} and not attrs.get("sentTo"):
            raise serializers.ValidationError({"sentTo": "A recipient is required for email delivery."})
        return attrs


# ===============================================================
# Validation entry point
# ===============================================================

def require_mapping(payload) -> Mapping[str, Any]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise TransitionValidationError(field_errors={"payload": "Payload must be an object."})
    return payload


def flatten_errors(errors, prefix: str = "") -> Dict[str, str]:
    """
    DRF's nested error structure -> {"parameters[0].value": "..."}.
    """
    out: Dict[str, str] = {}

    if isinstance(errors, Mapping):
        for key, value in errors.items():
            if key == api_settings.NON_FIELD_ERRORS_KEY:
                name = prefix or "payload"
            elif isinstance(key, int):
                name = f"{prefix}[{key}]"
            else:
                name = f"{prefix}.{key}" if prefix else str(key)
            out.update(flatten_errors(value, name))
    elif isinstance(errors, (list, tuple)):
        if errors and all(not isinstance(e, (Mapping, list, tuple)) for e in errors):
            out[prefix or "payload"] = str(errors[0])
        else:
            # ListSerializer style: one entry per item, empty when valid
            for idx, item in enumerate(errors):
                if item:
                    out.update(flatten_errors(item, f"{prefix}[{idx}]"))
    elif errors:
        out[prefix or "payload"] = str(errors)

    return out


def validate_payload(serializer_class, payload) -> Dict[str, Any]:
    """
    Run `serializer_class` over `payload`; field errors become
    TransitionValidationError. Returns the validated data.
    """
    ser = serializer_class(data=dict(require_mapping(payload)))
    if not ser.is_valid():
        raise TransitionValidationError(field_errors=flatten_errors(ser.errors))
    return dict(ser.validated_data)


def text(data: Mapping[str, Any], key: str, default: str = "") -> str:
    value: Optional[str] = data.get(key)
    return value or default


__all__ = [
    "URGENCIES",
    "COLLECTION_STATUSES",
    "REVIEW_STATUSES",
    "SEND_METHODS",
    "REF_LIMIT",
    "NAME_LIMIT",
    "TEXT_LIMIT",
    "ParameterSerializer",
    "require_mapping",
    "flatten_errors",
    "validate_payload",
    "text",
]
