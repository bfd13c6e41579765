# test_requests/workflows/policy.py

from django.conf import settings

from test_requests.models import CenterPolicy


def default_review_required() -> bool:
    return bool(getattr(settings, "TEST_REQUEST_REVIEW_REQUIRED_DEFAULT", False))


def requires_review(center_ref: str) -> bool:
    """
    Whether requests created at this center must pass the review gate.
    Read once at creation and frozen on the request.
    """
    value = (
        CenterPolicy.objects.filter(center_ref=(center_ref or "").strip())
        .values_list("review_required", flat=True)
        .first()
    )
    if value is None:
        return default_review_required()
    return bool(value)
