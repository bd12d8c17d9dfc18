"""Firebase Cloud Messaging transport for Android devices."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Dict, Mapping, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from coach_push.config import Settings
from coach_push.push.models import Subscription
from coach_push.push.payload import PushPayload
from coach_push.push.transport import (
    Delivered,
    PermanentFailure,
    SendOptions,
    SendOutcome,
    TransientFailure,
)
from coach_push.utils.exceptions import PushConfigurationError

FIREBASE_APP_NAME = "coach-push"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class FirebaseConfig:
    """Service account fields needed to talk to FCM."""

    project_id: str
    client_email: str
    private_key: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirebaseConfig":
        missing = [
            name
            for name in ("FIREBASE_PROJECT_ID", "FIREBASE_CLIENT_EMAIL", "FIREBASE_PRIVATE_KEY")
            if not getattr(settings, name)
        ]
        if missing:
            raise PushConfigurationError(
                "Firebase credentials are not configured", details={"missing": missing}
            )
        return cls(
            project_id=settings.FIREBASE_PROJECT_ID,
            client_email=settings.FIREBASE_CLIENT_EMAIL,
            # env files usually carry the PEM on one line with escaped newlines
            private_key=settings.FIREBASE_PRIVATE_KEY.replace("\\n", "\n"),
        )

    def service_account_info(self) -> Dict[str, str]:
        return {
            "type": "service_account",
            "project_id": self.project_id,
            "client_email": self.client_email,
            "private_key": self.private_key,
            "token_uri": GOOGLE_TOKEN_URI,
        }


def get_firebase_app(config: FirebaseConfig) -> firebase_admin.App:
    """Return the process-wide Firebase app, initializing it once."""

    try:
        return firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        return firebase_admin.initialize_app(
            credentials.Certificate(config.service_account_info()),
            options={"projectId": config.project_id},
            name=FIREBASE_APP_NAME,
        )


def stringify_data(data: Mapping[str, Any]) -> Dict[str, str]:
    """FCM data messages only accept string values."""

    result: Dict[str, str] = {}
    for key, value in data.items():
        if value is None:
            continue
        result[str(key)] = value if isinstance(value, str) else json.dumps(value)
    return result


def _http_status(exc: exceptions.FirebaseError) -> Optional[int]:
    response = getattr(exc, "http_response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


class FcmTransport:
    """``firebase-admin`` backed transport.

    ``messaging.send`` is blocking, so each call runs in a worker thread.
    Tokens FCM reports as unregistered, malformed or owned by another
    sender are permanent failures and get pruned.
    """

    def __init__(self, app: Optional[firebase_admin.App] = None, channel_id: str = "high_importance_channel") -> None:
        self.app = app
        self.channel_id = channel_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "FcmTransport":
        config = FirebaseConfig.from_settings(settings)
        return cls(get_firebase_app(config), channel_id=settings.FCM_ANDROID_CHANNEL_ID)

    def build_message(
        self, subscription: Subscription, payload: PushPayload, options: SendOptions
    ) -> messaging.Message:
        return messaging.Message(
            token=subscription.token,
            notification=messaging.Notification(title=payload.title, body=payload.body),
            data=stringify_data(payload.data),
            android=messaging.AndroidConfig(
                priority="high" if options.urgency == "high" else "normal",
                ttl=options.ttl_seconds,
                notification=messaging.AndroidNotification(
                    sound=payload.sound,
                    channel_id=self.channel_id,
                    tag=payload.tag,
                ),
            ),
        )

    async def send(
        self, subscription: Subscription, payload: PushPayload, options: SendOptions
    ) -> SendOutcome:
        message = self.build_message(subscription, payload, options)
        try:
            await asyncio.to_thread(messaging.send, message, app=self.app)
        except messaging.UnregisteredError as exc:
            return PermanentFailure(status=_http_status(exc) or HTTPStatus.NOT_FOUND, message=str(exc))
        except messaging.SenderIdMismatchError as exc:
            return PermanentFailure(status=_http_status(exc) or HTTPStatus.FORBIDDEN, message=str(exc))
        except exceptions.InvalidArgumentError as exc:
            return PermanentFailure(status=_http_status(exc) or HTTPStatus.BAD_REQUEST, message=str(exc))
        except exceptions.FirebaseError as exc:
            return TransientFailure(status=_http_status(exc), message=str(exc))
        return Delivered()
