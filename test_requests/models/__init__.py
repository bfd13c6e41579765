from .core import CenterPolicy, TestRequest, TimeStampedModel, UserRole
from .timeline_entry import TimelineEntry

__all__ = [
    "TimeStampedModel",
    "CenterPolicy",
    "UserRole",
    "TestRequest",
    "TimelineEntry",
]
