# test_requests/workflows/exceptions.py
"""
Workflow error taxonomy.

Pure Python: the API layer translates these into DRF responses.
Only VersionConflict is transient; everything else is deterministic for
the same inputs and must not be retried automatically.
"""

from __future__ import annotations

from typing import Dict, Optional


class WorkflowError(Exception):
    """Base class for every rejected workflow attempt."""

    code = "workflow_error"
    retryable = False

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__name__
        super().__init__(self.message)


class TransitionValidationError(WorkflowError):
    """
    Malformed or missing payload field, or a failed guard predicate.
    """

    code = "validation_error"

    def __init__(self, message: str = "", *, field_errors: Optional[Dict[str, str]] = None):
        self.field_errors = dict(field_errors or {})
        if not message and self.field_errors:
            message = "; ".join(f"{k}: {v}" for k, v in sorted(self.field_errors.items()))
        super().__init__(message or "Invalid transition payload.")


class TransitionForbidden(WorkflowError):
    """The actor's role may not raise this event (or not on this request)."""

    code = "forbidden"


class IllegalTransition(WorkflowError):
    """The event is not legal from the request's current state."""

    code = "illegal_transition"

    def __init__(self, state: str, event: str, message: str = ""):
        self.state = state
        self.event = event
        super().__init__(message or f"Event {event} is not allowed from state {state}.")


class VersionConflict(WorkflowError):
    """A concurrent write committed first; re-fetch and retry."""

    code = "version_conflict"
    retryable = True

    def __init__(self, request_id, expected: int, actual: Optional[int] = None):
        self.request_id = request_id
        self.expected = expected
        self.actual = actual
        detail = f"Test request {request_id} changed: expected version {expected}"
        if actual is not None:
            detail += f", found {actual}"
        super().__init__(detail + ".")


class TestRequestNotFound(WorkflowError):
    code = "not_found"

    # keep pytest from collecting this as a test class
    __test__ = False

    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"Test request {request_id} does not exist.")


__all__ = [
    "WorkflowError",
    "TransitionValidationError",
    "TransitionForbidden",
    "IllegalTransition",
    "VersionConflict",
    "TestRequestNotFound",
]
