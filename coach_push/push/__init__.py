"""Push notification fan-out: routing, payloads, transport and dispatch."""

from coach_push.push.apns import ApnsConfig, ApnsTransport
from coach_push.push.dispatcher import PushDispatcher, missing_credentials
from coach_push.push.fcm import FcmTransport, FirebaseConfig
from coach_push.push.models import (
    DispatchResult,
    Notification,
    ParsedNotificationData,
    Platform,
    RawNotificationData,
    Role,
    Subscription,
    normalize_notification,
)
from coach_push.push.observers import DispatchObserver, LoguruDispatchObserver
from coach_push.push.payload import PayloadBuilder, PushPayload
from coach_push.push.routing import RouteResolver, resolve_route
from coach_push.push.store import (
    SqlAlchemyNativeTokenStore,
    SqlAlchemySubscriptionStore,
    SubscriptionStore,
)
from coach_push.push.transport import (
    Delivered,
    PermanentFailure,
    PushTransport,
    SendOptions,
    TransientFailure,
    VapidConfig,
    WebPushTransport,
)

__all__ = [
    "ApnsConfig",
    "ApnsTransport",
    "Delivered",
    "DispatchObserver",
    "DispatchResult",
    "FcmTransport",
    "FirebaseConfig",
    "LoguruDispatchObserver",
    "Notification",
    "ParsedNotificationData",
    "PayloadBuilder",
    "PermanentFailure",
    "Platform",
    "PushDispatcher",
    "PushPayload",
    "PushTransport",
    "RawNotificationData",
    "Role",
    "RouteResolver",
    "SendOptions",
    "SqlAlchemyNativeTokenStore",
    "SqlAlchemySubscriptionStore",
    "Subscription",
    "SubscriptionStore",
    "TransientFailure",
    "VapidConfig",
    "WebPushTransport",
    "missing_credentials",
    "normalize_notification",
    "resolve_route",
]
