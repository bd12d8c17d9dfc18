"""Pydantic schemas package."""

from coach_push.schemas.push import (
    DispatchResultRead,
    NativePushTokenCreate,
    NativePushTokenDelete,
    PushKeys,
    PushSubscriptionCreate,
    PushTestResponse,
    PushUnsubscribeRequest,
    VapidPublicKeyRead,
)

__all__ = [
    "DispatchResultRead",
    "NativePushTokenCreate",
    "NativePushTokenDelete",
    "PushKeys",
    "PushSubscriptionCreate",
    "PushTestResponse",
    "PushUnsubscribeRequest",
    "VapidPublicKeyRead",
]
