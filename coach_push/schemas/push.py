"""Schemas for push subscription registration."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class PushKeys(BaseModel):
    """Encryption keys from ``PushSubscription.toJSON()``."""

    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionCreate(BaseModel):
    """Browser subscription submitted on device registration."""

    endpoint: str = Field(..., min_length=1)
    keys: PushKeys
    platform: Optional[Literal["web"]] = None


class PushUnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)


class VapidPublicKeyRead(BaseModel):
    publicKey: str


class DispatchResultRead(BaseModel):
    sent: int
    failed: int
    error: Optional[str] = None


class PushTestResponse(BaseModel):
    success: bool
    result: DispatchResultRead
    message: str


class NativePushTokenCreate(BaseModel):
    """Device token submitted by the mobile app."""

    token: str = Field(..., min_length=1)
    platform: Literal["ios", "android"]
    deviceId: Optional[str] = None


class NativePushTokenDelete(BaseModel):
    token: str = Field(..., min_length=1)
    platform: Optional[Literal["ios", "android"]] = None
