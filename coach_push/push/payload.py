"""Build the Web Push payload for a notification."""
from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from coach_push.push.models import Notification, Priority, Role, normalize_notification
from coach_push.push.routing import RouteResolver, default_resolver

DEFAULT_TITLE = "New Notification"
DEFAULT_BODY = "You have a new notification"
DEFAULT_ICON = "/assets/icons/icon-192x192.svg"
DEFAULT_BADGE = "/assets/icons/icon-96x96.svg"
DEFAULT_SOUND = "default"


def _random_suffix() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class PushPayload:
    """Immutable payload shared by every endpoint of one dispatch."""

    title: str
    body: str
    data: Dict[str, Any]
    tag: str
    require_interaction: bool
    timestamp: int
    icon: str = DEFAULT_ICON
    badge: str = DEFAULT_BADGE
    sound: str = DEFAULT_SOUND
    priority: str = Priority.NORMAL.value

    @property
    def url(self) -> str:
        return self.data["url"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "badge": self.badge,
            "sound": self.sound,
            "data": dict(self.data),
            "tag": self.tag,
            "requireInteraction": self.require_interaction,
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


@dataclass
class PayloadBuilder:
    """Turn a notification and recipient role into a :class:`PushPayload`.

    ``clock_ns`` and ``suffix_factory`` feed the collapse tag so it differs
    on every build, even for the same notification.
    """

    resolver: RouteResolver = field(default_factory=lambda: default_resolver)
    icon: str = DEFAULT_ICON
    badge: str = DEFAULT_BADGE
    sound: str = DEFAULT_SOUND
    clock_ns: Callable[[], int] = time.time_ns
    suffix_factory: Callable[[], str] = _random_suffix

    def build(self, notification: Optional[Notification], role: Union[Role, str, None]) -> PushPayload:
        if notification is None:
            raise ValueError("A notification is required to build a push payload")

        notification = normalize_notification(notification)
        priority = notification.priority or Priority.NORMAL.value
        url = self.resolver.resolve(notification, role)

        data: Dict[str, Any] = {
            "notificationId": notification.id,
            "type": notification.type,
            "priority": priority,
        }
        data.update(notification.data_values)
        # url is set last so caller data cannot override it
        data["url"] = url

        now_ns = self.clock_ns()
        return PushPayload(
            title=notification.title or DEFAULT_TITLE,
            body=notification.message or notification.body or DEFAULT_BODY,
            data=data,
            tag=f"notification-{notification.id}-{now_ns}-{self.suffix_factory()}",
            require_interaction=priority == Priority.URGENT.value,
            timestamp=now_ns // 1_000_000,
            icon=self.icon,
            badge=self.badge,
            sound=self.sound,
            priority=priority,
        )
