# test_requests/views.py
from __future__ import annotations

import logging

from django.http import HttpResponse

from drf_spectacular.utils import extend_schema
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import (
    APIException,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .filters import TestRequestFilter
from .identity import resolve_actor
from .models import TestRequest
from . import reports
from .selectors import get_by_id, list_by_role, status_counts
from .serializers import (
    ReportUploadSerializer,
    TestRequestCreateSerializer,
    TestRequestDetailSerializer,
    TestRequestSerializer,
    TimelineEntrySerializer,
    TransitionRequestSerializer,
)
from .workflows import GENERATE_REPORT, workflow_definition
from .workflows.exceptions import (
    IllegalTransition,
    TestRequestNotFound,
    TransitionForbidden,
    TransitionValidationError,
    VersionConflict,
    WorkflowError,
)
from .workflows.executor import (
    apply_transition,
    apply_transition_with_retry,
    create_test_request,
)
from .workflows.permissions import allowed_events_for
from .workflows.timeline import timeline_for

logger = logging.getLogger(__name__)


# ===============================================================
# Error mapping
# ===============================================================

class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The test request changed or is in the wrong state."
    default_code = "conflict"

    def __init__(self, detail=None, code=None):
        super().__init__(detail, code)
        if isinstance(detail, dict):
            # keep versions as numbers in the response body
            self.detail = detail


def raise_api_error(exc: WorkflowError):
    """
    Translate workflow errors into DRF exceptions (and so into HTTP codes).
    """
    if isinstance(exc, TransitionValidationError):
        raise ValidationError(exc.field_errors or {"detail": exc.message})

    if isinstance(exc, TransitionForbidden):
        raise PermissionDenied(exc.message)

    if isinstance(exc, TestRequestNotFound):
        raise NotFound(exc.message)

    if isinstance(exc, VersionConflict):
        raise Conflict(
            {
                "code": exc.code,
                "detail": exc.message,
                "retryable": True,
                "expected_version": exc.expected,
                "current_version": exc.actual,
            }
        )

    if isinstance(exc, IllegalTransition):
        raise Conflict(
            {
                "code": exc.code,
                "detail": exc.message,
                "state": exc.state,
                "event": exc.event,
            }
        )

    raise APIException(exc.message)


def _transition(actor, **kwargs):
    """
    Pinned base_version: one attempt, conflicts go back to the caller.
    Otherwise the engine re-fetches and retries a bounded number of times.
    """
    if kwargs.get("base_version") is None:
        kwargs.pop("base_version", None)
        return apply_transition_with_retry(actor=actor, **kwargs)
    return apply_transition(actor=actor, **kwargs)


# ===============================================================
# Health
# ===============================================================

class HealthCheckView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(tags=["System"])
    def get(self, request):
        return Response({"status": "ok", "service": "HMS test requests"})


# ===============================================================
# Workflow definition (static, read-only)
# ===============================================================

class WorkflowDefinitionView(APIView):
    """
    GET /api/workflow/definition/
    """

    @extend_schema(tags=["Workflow"])
    def get(self, request):
        return Response(workflow_definition())


# ===============================================================
# Test requests
# ===============================================================

class TestRequestViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Read surface plus the only write entry points for test requests.

    Scope is role-based: doctors see their own requests, lab staff and
    reviewers see their center, superadmins see everything.
    """

    serializer_class = TestRequestSerializer
    filterset_class = TestRequestFilter
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def get_actor(self):
        if not hasattr(self, "_actor"):
            self._actor = resolve_actor(self.request)
        return self._actor

    def get_queryset(self):
        return list_by_role(self.get_actor(), TestRequest.objects.all())

    def get_serializer_class(self):
        if self.action == "retrieve":
            return TestRequestDetailSerializer
        if self.action == "create":
            return TestRequestCreateSerializer
        return TestRequestSerializer

    def get_object(self):
        try:
            return get_by_id(self.get_actor(), self.kwargs["pk"])
        except WorkflowError as exc:
            raise_api_error(exc)

    # -----------------------------------------------------------
    # Create (Doctor)
    # -----------------------------------------------------------
    @extend_schema(request=TestRequestCreateSerializer, responses=TestRequestDetailSerializer, tags=["Test requests"])
    def create(self, request, *args, **kwargs):
        actor = self.get_actor()

        ser = TestRequestCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            tr = create_test_request(actor=actor, **ser.validated_data)
        except WorkflowError as exc:
            raise_api_error(exc)

        return Response(TestRequestDetailSerializer(tr).data, status=status.HTTP_201_CREATED)

    # -----------------------------------------------------------
    # Transition (authoritative)
    # -----------------------------------------------------------
    @extend_schema(request=TransitionRequestSerializer, responses=TestRequestDetailSerializer, tags=["Test requests"])
    @action(detail=True, methods=["post"])
    def transition(self, request, pk=None):
        """
        Body: {"event": "StartTesting", "payload": {...}, "base_version": 3, "note": ""}
        """
        actor = self.get_actor()

        ser = TransitionRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            result = _transition(
                actor,
                request_id=pk,
                event=data["event"],
                payload=data.get("payload") or {},
                base_version=data.get("base_version"),
                note=data.get("note", ""),
            )
        except WorkflowError as exc:
            raise_api_error(exc)

        body = TestRequestDetailSerializer(result.test_request).data
        body["transition"] = {
            "from": result.from_state,
            "to": result.to_state,
            "event": result.event,
        }
        return Response(body)

    # -----------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------
    @extend_schema(tags=["Test requests"])
    @action(detail=True, methods=["get"])
    def allowed(self, request, pk=None):
        actor = self.get_actor()
        tr = self.get_object()

        return Response(
            {
                "id": tr.pk,
                "current": tr.status,
                "version": tr.version,
                "review_required": tr.review_required,
                "role": actor.role,
                "allowed": allowed_events_for(actor, tr.status, tr.review_required, tr),
            }
        )

    @extend_schema(responses=TimelineEntrySerializer(many=True), tags=["Test requests"])
    @action(detail=True, methods=["get"])
    def timeline(self, request, pk=None):
        tr = self.get_object()
        return Response(
            {
                "id": tr.pk,
                "status": tr.status,
                "version": tr.version,
                "timeline": TimelineEntrySerializer(timeline_for(tr), many=True).data,
            }
        )

    @extend_schema(tags=["Test requests"])
    @action(detail=False, methods=["get"])
    def summary(self, request):
        qs = self.filter_queryset(self.get_queryset())
        return Response(status_counts(qs))

    # -----------------------------------------------------------
    # Report file: upload (GenerateReport) / download
    # -----------------------------------------------------------
    @extend_schema(request=ReportUploadSerializer, tags=["Test requests"])
    @action(detail=True, methods=["get", "post"])
    def report(self, request, pk=None):
        if request.method == "GET":
            return self._download_report()

        actor = self.get_actor()
        tr = self.get_object()

        ser = ReportUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        upload = ser.validated_data["file"]

        try:
            reports.validate_upload(upload)
        except WorkflowError as exc:
            raise_api_error(exc)

        handle = reports.put(tr.pk, upload.read(), upload.name)

        try:
            result = _transition(
                actor,
                request_id=tr.pk,
                event=GENERATE_REPORT,
                payload={"fileHandle": handle, "notes": ser.validated_data.get("notes", "")},
                base_version=ser.validated_data.get("base_version"),
            )
        except WorkflowError as exc:
            # no transition, no file
            reports.delete(handle)
            raise_api_error(exc)
        except Exception:
            reports.delete(handle)
            raise

        return Response(TestRequestDetailSerializer(result.test_request).data, status=status.HTTP_201_CREATED)

    def _download_report(self):
        tr = self.get_object()
        if not tr.report_file_handle:
            raise NotFound("No report has been generated for this test request.")

        if not reports.belongs_to(tr.pk, tr.report_file_handle):
            logger.warning(
                "Refusing to serve report handle %s for test request %s", tr.report_file_handle, tr.pk
            )
            raise NotFound("No stored report file for this test request.")

        try:
            data = reports.get(tr.report_file_handle)
        except reports.ReportNotFound:
            logger.error("Report file %s for test request %s is missing", tr.report_file_handle, tr.pk)
            raise NotFound("The report file is missing from storage.")

        response = HttpResponse(data, content_type="application/pdf")
        response["Content-Disposition"] = f'attachment; filename="{reports.filename_for(tr.report_file_handle)}"'
        return response
