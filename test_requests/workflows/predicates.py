# test_requests/workflows/predicates.py
"""
Cross-field guard predicates.

A predicate looks at the stored request (and, for CompleteTesting, the
incoming payload) and returns an error message when the transition must be
refused. Failures surface as TransitionValidationError, never as
IllegalTransition: the state is right, the data is not.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from . import (
    COMPLETE_TESTING,
    GENERATE_REPORT,
    RECORD_COLLECTION,
    START_TESTING,
    normalize_event,
)
from .exceptions import TransitionValidationError

COLLECTION_COMPLETED = "Completed"

Predicate = Callable[[Any, Mapping[str, Any]], Optional[Tuple[str, str]]]


def _blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def results_in_payload(entity, payload: Mapping[str, Any]):
    if _blank(payload.get("testResults")):
        return "testResults", "Test results are required to complete testing."
    return None


def collection_scheduled(entity, payload: Mapping[str, Any]):
    if getattr(entity, "collection_scheduled_at", None) is None:
        return "collection", "Sample collection has not been scheduled."
    return None


def collection_completed(entity, payload: Mapping[str, Any]):
    status = getattr(entity, "collection_status", "") or ""
    if status != COLLECTION_COMPLETED:
        return (
            "collection",
            f"Sample collection status is '{status or 'unset'}'; testing requires 'Completed'.",
        )
    return None


def results_recorded(entity, payload: Mapping[str, Any]):
    if _blank(getattr(entity, "test_results", "")):
        return "results", "No test results recorded; complete testing first."
    return None


PREDICATES: Dict[str, List[Predicate]] = {
    COMPLETE_TESTING: [results_in_payload],
    RECORD_COLLECTION: [collection_scheduled],
    START_TESTING: [collection_completed],
    GENERATE_REPORT: [results_recorded],
}


def check_predicates(entity, event: str, payload: Optional[Mapping[str, Any]] = None) -> None:
    """
    Raises TransitionValidationError listing every failed predicate.
    """
    payload = payload or {}
    errors: Dict[str, str] = {}

    for predicate in PREDICATES.get(normalize_event(event), []):
        failure = predicate(entity, payload)
        if failure:
            field, message = failure
            errors.setdefault(field, message)

    if errors:
        raise TransitionValidationError(field_errors=errors)


__all__ = ["PREDICATES", "check_predicates", "COLLECTION_COMPLETED"]
