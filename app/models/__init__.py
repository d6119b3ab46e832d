"""Digestly database models."""

from app.models.profile import Profile
from app.models.schedule import Frequency, Schedule, ScheduleStatus
from app.models.subscription import Subscription, SubscriptionStatus

__all__ = [
    "Profile",
    "Schedule",
    "ScheduleStatus",
    "Frequency",
    "Subscription",
    "SubscriptionStatus",
]
