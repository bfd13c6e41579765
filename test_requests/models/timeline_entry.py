from django.db import models

from test_requests.workflows.guards import AppendOnlyModelMixin


class TimelineEntry(AppendOnlyModelMixin, models.Model):
    """
    Immutable audit log for test request transitions.
    """

    test_request = models.ForeignKey(
        "test_requests.TestRequest",
        on_delete=models.PROTECT,
        related_name="timeline",
    )

    sequence = models.PositiveIntegerField()
    from_state = models.CharField(max_length=32, blank=True)
    to_state = models.CharField(max_length=32)
    event = models.CharField(max_length=32)

    actor_id = models.CharField(max_length=64)
    actor_role = models.CharField(max_length=32)

    note = models.TextField(blank=True)

    timestamp = models.DateTimeField()

    class Meta:
        ordering = ["sequence"]
        verbose_name_plural = "timeline entries"
        constraints = [
            models.UniqueConstraint(
                fields=["test_request", "sequence"],
                name="timeline_entry_unique_sequence",
            ),
        ]

    def __str__(self):
        return (
            f"TR-{self.test_request_id} #{self.sequence}: "
            f"{self.from_state or '-'} -> {self.to_state} "
            f"({self.event} by {self.actor_role}:{self.actor_id})"
        )
