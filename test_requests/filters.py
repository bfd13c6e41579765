# test_requests/filters.py
import django_filters as df
from django.db.models import Q

from .models import TestRequest
from .workflows import normalize_state


class TestRequestFilter(df.FilterSet):
    status = df.CharFilter(method="filter_status")
    urgency = df.CharFilter(field_name="urgency", lookup_expr="iexact")
    center = df.CharFilter(field_name="center_ref")
    patient = df.CharFilter(field_name="patient_ref")
    doctor = df.CharFilter(field_name="doctor_ref")
    test_type = df.CharFilter(field_name="test_type", lookup_expr="icontains")
    search = df.CharFilter(method="filter_search")
    created = df.DateFromToRangeFilter(field_name="created_at")

    class Meta:
        model = TestRequest
        fields = ["status", "urgency", "center", "patient", "doctor", "test_type", "created"]

    def filter_status(self, qs, name, value):
        # comma-separated, any spelling ("sample collected", "In_Lab_Testing")
        states = [normalize_state(v) for v in str(value).split(",") if v.strip()]
        return qs.filter(status__in=states) if states else qs

    def filter_search(self, qs, name, value):
        value = (value or "").strip()
        if not value:
            return qs
        return qs.filter(
            Q(test_type__icontains=value)
            | Q(test_description__icontains=value)
            | Q(patient_ref__icontains=value)
            | Q(lab_staff_name__icontains=value)
        )
