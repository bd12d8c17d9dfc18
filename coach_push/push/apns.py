"""Apple Push Notification service transport for iOS devices."""
from __future__ import annotations

import time
from dataclasses import dataclass
from http import HTTPStatus
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import httpx
from jose import jwt

from coach_push.config import Settings
from coach_push.push.models import Priority, Subscription
from coach_push.push.payload import PushPayload
from coach_push.push.transport import (
    Delivered,
    PermanentFailure,
    SendOptions,
    SendOutcome,
    TransientFailure,
)
from coach_push.utils.exceptions import PushConfigurationError

APNS_PRODUCTION_URL = "https://api.push.apple.com"
APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"

# Apple rejects provider tokens older than an hour
TOKEN_REFRESH_INTERVAL = 50 * 60

# 400 reasons that mean the device token itself is unusable
INVALID_TOKEN_REASONS = frozenset({"BadDeviceToken", "DeviceTokenNotForTopic"})


@dataclass(frozen=True)
class ApnsConfig:
    key_id: str
    team_id: str
    bundle_id: str
    private_key: str
    use_sandbox: bool = True

    @property
    def base_url(self) -> str:
        return APNS_SANDBOX_URL if self.use_sandbox else APNS_PRODUCTION_URL

    @classmethod
    def from_settings(cls, settings: Settings) -> "ApnsConfig":
        missing = [name for name in ("APNS_KEY_ID", "APNS_TEAM_ID") if not getattr(settings, name)]
        if not (settings.APNS_KEY or settings.APNS_KEY_PATH):
            missing.append("APNS_KEY")
        if missing:
            raise PushConfigurationError(
                "APNs credentials are not configured", details={"missing": missing}
            )

        if settings.APNS_KEY_PATH:
            key_path = Path(settings.APNS_KEY_PATH)
            if not key_path.is_file():
                raise PushConfigurationError(
                    "APNs key file not found", details={"path": str(key_path)}
                )
            private_key = key_path.read_text()
        else:
            private_key = settings.APNS_KEY.replace("\\n", "\n")

        return cls(
            key_id=settings.APNS_KEY_ID,
            team_id=settings.APNS_TEAM_ID,
            bundle_id=settings.APNS_BUNDLE_ID,
            private_key=private_key,
            use_sandbox=settings.APNS_USE_SANDBOX,
        )


class ProviderToken:
    """ES256 provider JWT, re-signed every :data:`TOKEN_REFRESH_INTERVAL`."""

    def __init__(self, config: ApnsConfig, clock: Callable[[], float] = time.time) -> None:
        self.config = config
        self.clock = clock
        self._token: Optional[str] = None
        self._issued_at = 0.0

    def get(self) -> str:
        now = self.clock()
        if self._token is None or now - self._issued_at >= TOKEN_REFRESH_INTERVAL:
            self._token = jwt.encode(
                {"iss": self.config.team_id, "iat": int(now)},
                self.config.private_key,
                algorithm="ES256",
                headers={"kid": self.config.key_id},
            )
            self._issued_at = now
        return self._token


def build_apns_body(payload: PushPayload) -> Dict[str, Any]:
    """``aps`` dictionary plus the routing data as custom top-level keys."""

    body: Dict[str, Any] = dict(payload.data)
    body["aps"] = {
        "alert": {"title": payload.title, "body": payload.body},
        "sound": payload.sound,
        "badge": 1,
        "thread-id": payload.data.get("type") or "notification",
    }
    return body


def classify_apns_response(status: int, reason: Optional[str]) -> SendOutcome:
    message = reason or f"APNs returned {status}"
    if status == HTTPStatus.GONE or (status == HTTPStatus.BAD_REQUEST and reason in INVALID_TOKEN_REASONS):
        return PermanentFailure(status=status, message=message)
    return TransientFailure(status=status, message=message)


def _reason(response: httpx.Response) -> Optional[str]:
    try:
        return response.json().get("reason")
    except ValueError:
        return None


class ApnsTransport:
    """HTTP/2 APNs client using token-based authentication."""

    def __init__(self, config: ApnsConfig, timeout_seconds: float = 10.0) -> None:
        self.config = config
        self.timeout_seconds = timeout_seconds
        self.provider_token = ProviderToken(config)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ApnsTransport":
        return cls(ApnsConfig.from_settings(settings), timeout_seconds=settings.PUSH_REQUEST_TIMEOUT_SECONDS)

    def headers(self, payload: PushPayload, options: SendOptions) -> Dict[str, str]:
        return {
            "authorization": f"bearer {self.provider_token.get()}",
            "apns-topic": self.config.bundle_id,
            "apns-push-type": "alert",
            "apns-priority": "10" if payload.priority == Priority.URGENT.value else "5",
            "apns-expiration": str(int(time.time()) + options.ttl_seconds),
        }

    async def send(
        self, subscription: Subscription, payload: PushPayload, options: SendOptions
    ) -> SendOutcome:
        url = f"{self.config.base_url}/3/device/{subscription.token}"
        try:
            async with httpx.AsyncClient(http2=True, timeout=self.timeout_seconds) as client:
                response = await client.post(
                    url, json=build_apns_body(payload), headers=self.headers(payload, options)
                )
        except httpx.HTTPError as exc:
            return TransientFailure(status=None, message=str(exc))
        if response.status_code == HTTPStatus.OK:
            return Delivered(status=response.status_code)
        return classify_apns_response(response.status_code, _reason(response))
