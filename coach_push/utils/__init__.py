"""Utility helpers package."""

from coach_push.utils.exceptions import (
    CoachPushException,
    NotificationDataError,
    PushConfigurationError,
    SubscriptionError,
)

__all__ = [
    "CoachPushException",
    "NotificationDataError",
    "PushConfigurationError",
    "SubscriptionError",
]
