# test_requests/signals.py
from __future__ import annotations

import logging

from django.db.models.signals import post_save
from django.dispatch import receiver

from test_requests.models import TimelineEntry
from test_requests.workflows.notifications import DomainEvent, domain_event

logger = logging.getLogger(__name__)


# ===============================================================
# Timeline audit log
# ===============================================================
@receiver(post_save, sender=TimelineEntry)
def log_timeline_entry(sender, instance: TimelineEntry, created: bool, **kwargs):
    if not created:
        return

    logger.info(
        "AUDIT test_request=%s seq=%s %s -> %s event=%s actor=%s:%s",
        instance.test_request_id,
        instance.sequence,
        instance.from_state or "-",
        instance.to_state,
        instance.event,
        instance.actor_role,
        instance.actor_id,
    )


# ===============================================================
# Domain events -> background delivery
# ===============================================================
@receiver(domain_event)
def dispatch_domain_event(sender, event: DomainEvent, **kwargs):
    """
    Runs after the transition committed. Delivery problems are logged only.
    """
    from test_requests.tasks import deliver_domain_event

    try:
        deliver_domain_event.delay(event.as_dict())
    except Exception:
        logger.exception(
            "Could not queue %s for test request %s",
            event.event_type,
            event.request_id,
        )
