# test_requests/identity.py
"""
Identity/session adapter: authenticated Django user -> workflow Actor.

The center is chosen with ?center=<ref> or the X-Center header. A role row
with a blank center applies to every center.
"""
from __future__ import annotations

from typing import Optional

from django.db.models import Q

from rest_framework.exceptions import NotAuthenticated, PermissionDenied

from .models import UserRole
from .workflows.permissions import SUPERADMIN, Actor


def _require_auth(user) -> None:
    """
    Enforce authentication in a way that returns DRF's normal 401/403
    instead of Django login redirects (302) under session-based setups.
    """
    if not user or not getattr(user, "is_authenticated", False):
        raise NotAuthenticated("Authentication credentials were not provided.")


def resolve_current_center(request) -> Optional[str]:
    """
    Priority:
      1) ?center=<ref>
      2) X-Center header
    """
    value = getattr(request, "query_params", {}).get("center")
    if not value:
        value = getattr(request, "headers", {}).get("X-Center")
    value = str(value or "").strip()
    return value or None


def resolve_actor(request) -> Actor:
    user = getattr(request, "user", None)
    _require_auth(user)

    actor_id = str(user.pk)
    center = resolve_current_center(request)

    if user.is_superuser:
        return Actor(actor_id=actor_id, role=SUPERADMIN, center_id=center)

    qs = UserRole.objects.filter(user=user)
    if center:
        qs = qs.filter(Q(center_ref=center) | Q(center_ref=""))

    rows = list(qs.order_by("-center_ref").values_list("center_ref", "role")[:2])

    if not rows:
        raise PermissionDenied(
            "You have no test request role"
            + (f" at center {center}." if center else ".")
        )

    if center:
        # an exact center row wins over a global one
        center_ref, role = rows[0]
        return Actor(actor_id=actor_id, role=role, center_id=center)

    if len(rows) > 1:
        raise PermissionDenied(
            "You hold roles at several centers. Provide ?center=<ref> or the X-Center header."
        )

    center_ref, role = rows[0]
    return Actor(actor_id=actor_id, role=role, center_id=center_ref or None)


__all__ = ["resolve_current_center", "resolve_actor"]
