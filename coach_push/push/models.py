"""Value types shared by the push fan-out pipeline."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from coach_push.utils.exceptions import NotificationDataError


class Role(str, Enum):
    """Recipient roles that drive deep-link routing."""

    CLIENT = "client"
    COACH = "coach"
    ADMIN = "admin"


class Priority(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class Platform(str, Enum):
    """Delivery channel of a registration."""

    WEB = "web"
    IOS = "ios"
    ANDROID = "android"


NATIVE_PLATFORMS = (Platform.ANDROID.value, Platform.IOS.value)


DEFAULT_ROLE = Role.CLIENT


@dataclass(frozen=True)
class RawNotificationData:
    """Notification data still in its serialized JSON form."""

    text: str


@dataclass(frozen=True)
class ParsedNotificationData:
    """Notification data as a structured map."""

    values: Mapping[str, Any] = field(default_factory=dict)


NotificationData = Union[RawNotificationData, ParsedNotificationData]


def coerce_notification_data(value: Any) -> NotificationData:
    """Wrap whatever the caller supplied without interpreting it yet."""

    if isinstance(value, (RawNotificationData, ParsedNotificationData)):
        return value
    if value is None:
        return ParsedNotificationData({})
    if isinstance(value, (str, bytes)):
        text = value.decode("utf-8") if isinstance(value, bytes) else value
        return RawNotificationData(text)
    if isinstance(value, Mapping):
        return ParsedNotificationData(dict(value))
    raise NotificationDataError(
        "Notification data must be a mapping or a JSON string",
        details={"type": type(value).__name__},
    )


def parse_notification_data(data: NotificationData) -> ParsedNotificationData:
    if isinstance(data, ParsedNotificationData):
        return data
    if not data.text.strip():
        return ParsedNotificationData({})
    try:
        decoded = json.loads(data.text)
    except json.JSONDecodeError as exc:
        raise NotificationDataError(
            "Notification data is not valid JSON", details={"error": str(exc)}
        ) from exc
    if not isinstance(decoded, dict):
        raise NotificationDataError(
            "Notification data must decode to an object",
            details={"type": type(decoded).__name__},
        )
    return ParsedNotificationData(decoded)


@dataclass(frozen=True)
class Notification:
    """A single logical notification addressed to one recipient."""

    id: Any = None
    title: Optional[str] = None
    message: Optional[str] = None
    body: Optional[str] = None
    type: Optional[str] = None
    priority: Optional[str] = None
    data: NotificationData = field(default_factory=ParsedNotificationData)

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", coerce_notification_data(self.data))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Notification":
        return cls(
            id=payload.get("id"),
            title=payload.get("title"),
            message=payload.get("message"),
            body=payload.get("body"),
            type=payload.get("type"),
            priority=payload.get("priority"),
            data=payload.get("data"),
        )

    @property
    def is_normalized(self) -> bool:
        return isinstance(self.data, ParsedNotificationData)

    @property
    def data_values(self) -> Dict[str, Any]:
        """Structured data; only valid once the notification is normalized."""

        if not isinstance(self.data, ParsedNotificationData):
            raise NotificationDataError("Notification data has not been normalized")
        return dict(self.data.values)


def normalize_notification(notification: Notification) -> Notification:
    """Return ``notification`` with its data parsed into a structured map."""

    if notification.is_normalized:
        return notification
    return replace(notification, data=parse_notification_data(notification.data))


@dataclass(frozen=True)
class Subscription:
    """One device registration for a recipient.

    Web registrations carry the push service URL and its encryption keys.
    Native registrations (``ios``, ``android``) carry the device token in
    ``endpoint`` and have no keys.
    """

    endpoint: str
    auth_secret: Optional[str] = None
    p256dh_key: Optional[str] = None
    owner_id: Any = None
    platform: Optional[str] = None
    device_id: Optional[str] = None

    @property
    def token(self) -> str:
        return self.endpoint

    def to_subscription_info(self) -> Dict[str, Any]:
        """Shape expected by the Web Push transport."""

        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh_key, "auth": self.auth_secret},
        }


@dataclass
class DispatchResult:
    """Aggregate outcome of one dispatch call."""

    sent: int = 0
    failed: int = 0
    error: Optional[str] = None
    pruned: int = 0

    def merge(self, other: "DispatchResult") -> "DispatchResult":
        """Combine per-platform results; the first error wins."""

        return DispatchResult(
            sent=self.sent + other.sent,
            failed=self.failed + other.failed,
            error=self.error if self.error is not None else other.error,
            pruned=self.pruned + other.pruned,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"sent": self.sent, "failed": self.failed}
        if self.error is not None:
            result["error"] = self.error
        return result
