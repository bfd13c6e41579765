# test_requests/workflows/permissions.py
"""
Authorization guard for test request events.

Defines:
- Canonical roles and their aliases
- The role -> permitted events matrix
- Ownership and center scoping rules

Evaluated before the state table: a role without permission for an event
is refused even when the event would be legal from the current state.
Pure logic, no Django imports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

from . import (
    APPROVE_REVIEW,
    ASSIGN_LAB_STAFF,
    CANCEL,
    COMPLETE,
    COMPLETE_TESTING,
    CREATE,
    GENERATE_REPORT,
    RECORD_COLLECTION,
    REJECT_REVIEW,
    REQUEST_CHANGES,
    SCHEDULE_COLLECTION,
    SEND_REPORT,
    START_TESTING,
    SUBMIT_FOR_REVIEW,
    allowed_events,
    normalize_event,
)
from .exceptions import TransitionForbidden


# ===============================================================
# Roles
# ===============================================================

DOCTOR = "Doctor"
LAB_TECHNICIAN = "LabTechnician"
LAB_ASSISTANT = "LabAssistant"
LAB_MANAGER = "LabManager"
REVIEWER = "Reviewer"
SUPERADMIN = "Superadmin"

# Background jobs (implicit completion). Not assignable to users.
SYSTEM = "System"

ROLES = (DOCTOR, LAB_TECHNICIAN, LAB_ASSISTANT, LAB_MANAGER, REVIEWER, SUPERADMIN)
LAB_ROLES = frozenset({LAB_TECHNICIAN, LAB_ASSISTANT, LAB_MANAGER})


# Keys are uppercase with separators collapsed to "_".
ROLE_ALIASES: Dict[str, str] = {
    "DOCTOR": DOCTOR,
    "PHYSICIAN": DOCTOR,
    "LAB_TECHNICIAN": LAB_TECHNICIAN,
    "LABTECHNICIAN": LAB_TECHNICIAN,
    "LAB_TECH": LAB_TECHNICIAN,
    "TECHNICIAN": LAB_TECHNICIAN,
    "LAB_ASSISTANT": LAB_ASSISTANT,
    "LABASSISTANT": LAB_ASSISTANT,
    "LAB_MANAGER": LAB_MANAGER,
    "LABMANAGER": LAB_MANAGER,
    "REVIEWER": REVIEWER,
    "SUPERADMIN": SUPERADMIN,
    "SUPER_ADMIN": SUPERADMIN,
    "SYSTEM": SYSTEM,
}


def normalize_role(role: Any) -> str:
    """
    Canonicalize role strings so small formatting differences
    ("Lab Technician", "lab-tech", "LAB_TECH") do not break the matrix.
    Unknown roles come back unchanged and are permitted nothing.
    """
    raw = str(role or "").strip()
    if not raw:
        return ""

    r = raw.upper()
    r = re.sub(r"[\s\-]+", "_", r)
    r = re.sub(r"_+", "_", r)

    return ROLE_ALIASES.get(r, raw)


# ===============================================================
# Permission matrix
# ===============================================================

_LAB_EVENTS: FrozenSet[str] = frozenset(
    {
        ASSIGN_LAB_STAFF,
        SCHEDULE_COLLECTION,
        RECORD_COLLECTION,
        START_TESTING,
        COMPLETE_TESTING,
        GENERATE_REPORT,
        SEND_REPORT,
        CANCEL,
    }
)

_REVIEW_EVENTS: FrozenSet[str] = frozenset(
    {SUBMIT_FOR_REVIEW, APPROVE_REVIEW, REJECT_REVIEW, REQUEST_CHANGES}
)

ROLE_EVENTS: Dict[str, FrozenSet[str]] = {
    DOCTOR: frozenset({CREATE, CANCEL}),
    LAB_TECHNICIAN: _LAB_EVENTS,
    LAB_ASSISTANT: _LAB_EVENTS,
    LAB_MANAGER: _LAB_EVENTS,
    REVIEWER: _REVIEW_EVENTS,
    SUPERADMIN: _REVIEW_EVENTS,
    SYSTEM: frozenset({COMPLETE}),
}


@dataclass(frozen=True)
class Actor:
    """
    Who is acting, as supplied by the identity/session provider.
    """

    actor_id: str
    role: str
    center_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "actor_id", str(self.actor_id or "").strip())
        object.__setattr__(self, "role", normalize_role(self.role))
        center = str(self.center_id).strip() if self.center_id is not None else ""
        object.__setattr__(self, "center_id", center or None)


SYSTEM_ACTOR = Actor(actor_id="system", role=SYSTEM)


def permitted_events(role: str) -> FrozenSet[str]:
    return ROLE_EVENTS.get(normalize_role(role), frozenset())


def role_allows(role: str, event: str) -> bool:
    return normalize_event(event) in permitted_events(role)


def required_roles(event: str) -> List[str]:
    """
    Roles that may raise the event, in declaration order.
    """
    ev = normalize_event(event)
    return [r for r in ROLES if ev in ROLE_EVENTS[r]]


def check_permission(actor: Actor, event: str, entity=None) -> None:
    """
    Raises TransitionForbidden when the actor may not raise the event.

    When an entity is given, also enforces:
    - center scoping for everyone except Superadmin and System
    - doctors cancel only their own requests
    """
    ev = normalize_event(event)
    role = actor.role

    if not role_allows(role, ev):
        raise TransitionForbidden(
            f"Role {role or 'anonymous'} cannot perform {ev}. "
            f"Required: {', '.join(required_roles(ev)) or 'none'}"
        )

    if entity is None:
        return

    if role not in {SUPERADMIN, SYSTEM} and actor.center_id:
        center = str(getattr(entity, "center_ref", "") or "")
        if center and center != actor.center_id:
            raise TransitionForbidden(
                f"Test request belongs to center {center}, not {actor.center_id}."
            )

    if role == DOCTOR and ev == CANCEL:
        owner = str(getattr(entity, "doctor_ref", "") or "")
        if owner != actor.actor_id:
            raise TransitionForbidden("Doctors may only cancel their own test requests.")


def allowed_events_for(actor: Actor, state: str, review_required: bool = False, entity=None) -> List[str]:
    """
    Events legal from `state` that this actor may also raise.
    """
    out: List[str] = []
    for ev in allowed_events(state, review_required):
        try:
            check_permission(actor, ev, entity)
        except TransitionForbidden:
            continue
        out.append(ev)
    return sorted(out)


__all__ = [
    "DOCTOR",
    "LAB_TECHNICIAN",
    "LAB_ASSISTANT",
    "LAB_MANAGER",
    "REVIEWER",
    "SUPERADMIN",
    "SYSTEM",
    "ROLES",
    "LAB_ROLES",
    "ROLE_EVENTS",
    "Actor",
    "SYSTEM_ACTOR",
    "normalize_role",
    "permitted_events",
    "role_allows",
    "required_roles",
    "check_permission",
    "allowed_events_for",
]
