# test_requests/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from test_requests.workflows.completion import complete_delivered_requests as _complete_delivered

logger = logging.getLogger(__name__)


def _email_body(event: dict) -> str:
    payload = event.get("payload") or {}
    lines = [
        f"Test request event: {event.get('event_type')}",
        "",
        f"Test request: {event.get('request_id')}",
    ]
    for key in ("test_type", "status", "center_ref", "patient_ref", "doctor_ref"):
        if payload.get(key):
            lines.append(f"{key.replace('_', ' ').capitalize()}: {payload[key]}")
    lines.append(f"At: {event.get('timestamp')}")
    return "\n".join(lines)


@shared_task
def deliver_domain_event(event: dict) -> bool:
    """
    Deliver one serialized DomainEvent. Email is feature-flagged; the event is
    always logged. Returns True when an email was handed to the backend.
    """
    logger.info(
        "Domain event %s for test request %s",
        event.get("event_type"),
        event.get("request_id"),
    )

    if not getattr(settings, "WORKFLOW_EMAIL_NOTIFICATIONS", False):
        return False

    recipients = list(getattr(settings, "WORKFLOW_NOTIFY_EMAILS", None) or [])
    if not recipients:
        return False

    try:
        send_mail(
            subject=f"[HMS] Test request {event.get('request_id')}: {event.get('event_type')}",
            message=_email_body(event),
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=recipients,
        )
    except Exception:
        logger.exception("Notification email for %s failed", event.get("id"))
        return False
    return True


@shared_task
def complete_delivered_requests() -> int:
    return _complete_delivered()
