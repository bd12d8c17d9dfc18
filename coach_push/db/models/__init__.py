"""Database models package."""
from coach_push.db.models.user import User
from coach_push.db.models.push_subscription import PushSubscription
from coach_push.db.models.native_push_token import NativePushToken

__all__ = [
    "User",
    "PushSubscription",
    "NativePushToken",
]
