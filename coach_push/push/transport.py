"""Web Push transport with typed per-endpoint outcomes."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from http import HTTPStatus
from typing import Optional, Protocol, Union

import requests
from pywebpush import WebPushException, webpush

from coach_push.config import Settings
from coach_push.push.models import Priority, Subscription
from coach_push.push.payload import PushPayload
from coach_push.utils.exceptions import PushConfigurationError

DEFAULT_TTL_SECONDS = 24 * 60 * 60

# Push services answer 404/410 once a registration is gone for good
PERMANENT_FAILURE_STATUSES = frozenset({HTTPStatus.NOT_FOUND, HTTPStatus.GONE})


@dataclass(frozen=True)
class Delivered:
    status: Optional[int] = None


@dataclass(frozen=True)
class TransientFailure:
    status: Optional[int]
    message: str


@dataclass(frozen=True)
class PermanentFailure:
    status: int
    message: str


SendOutcome = Union[Delivered, TransientFailure, PermanentFailure]


@dataclass(frozen=True)
class SendOptions:
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    urgency: str = "normal"

    @classmethod
    def for_priority(cls, priority: Optional[str], ttl_seconds: int = DEFAULT_TTL_SECONDS) -> "SendOptions":
        urgency = "high" if priority == Priority.URGENT.value else "normal"
        return cls(ttl_seconds=ttl_seconds, urgency=urgency)


@dataclass(frozen=True)
class VapidConfig:
    """Credentials used to sign Web Push requests."""

    public_key: str
    private_key: str
    subject: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "VapidConfig":
        missing = [
            name
            for name in ("VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY")
            if not getattr(settings, name)
        ]
        if missing:
            raise PushConfigurationError(
                "VAPID keys are not configured", details={"missing": missing}
            )
        return cls(
            public_key=settings.VAPID_PUBLIC_KEY,
            private_key=settings.VAPID_PRIVATE_KEY,
            subject=settings.VAPID_SUBJECT,
        )


class PushTransport(Protocol):
    """Delivers one payload to one subscription."""

    async def send(
        self, subscription: Subscription, payload: PushPayload, options: SendOptions
    ) -> SendOutcome:  # pragma: no cover - interface definition
        """Attempt a single delivery."""


def classify_status(status: Optional[int], message: str) -> SendOutcome:
    if status is not None and status in PERMANENT_FAILURE_STATUSES:
        return PermanentFailure(status=status, message=message)
    return TransientFailure(status=status, message=message)


def _extract_status_code(exc: WebPushException) -> Optional[int]:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


class WebPushTransport:
    """``pywebpush`` backed transport.

    ``webpush`` blocks on ``requests``, so each call runs in a worker thread
    and concurrent sends overlap.
    """

    def __init__(self, vapid: VapidConfig, timeout_seconds: float = 10.0) -> None:
        self.vapid = vapid
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebPushTransport":
        return cls(
            VapidConfig.from_settings(settings),
            timeout_seconds=settings.PUSH_REQUEST_TIMEOUT_SECONDS,
        )

    def _post(self, subscription: Subscription, body: str, options: SendOptions) -> None:
        webpush(
            subscription_info=subscription.to_subscription_info(),
            data=body,
            vapid_private_key=self.vapid.private_key,
            # webpush adds aud/exp to the claims dict, so pass a fresh one
            vapid_claims={"sub": self.vapid.subject},
            ttl=options.ttl_seconds,
            headers={"Urgency": options.urgency},
            timeout=self.timeout_seconds,
        )

    async def send(
        self, subscription: Subscription, payload: PushPayload, options: SendOptions
    ) -> SendOutcome:
        try:
            await asyncio.to_thread(self._post, subscription, payload.to_json(), options)
        except WebPushException as exc:
            return classify_status(_extract_status_code(exc), str(exc))
        except requests.RequestException as exc:
            return TransientFailure(status=None, message=str(exc))
        return Delivered()
