"""Fan a notification out to every registered device of a recipient."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from coach_push.config import Settings, settings as default_settings
from coach_push.push.apns import ApnsConfig, ApnsTransport
from coach_push.push.fcm import FcmTransport, FirebaseConfig
from coach_push.push.models import DispatchResult, Notification, Platform, Subscription
from coach_push.push.observers import DispatchObserver, LoguruDispatchObserver
from coach_push.push.payload import PayloadBuilder, PushPayload
from coach_push.push.store import (
    WEB_PLATFORM,
    SqlAlchemyNativeTokenStore,
    SqlAlchemySubscriptionStore,
    SubscriptionStore,
)
from coach_push.push.transport import (
    DEFAULT_TTL_SECONDS,
    Delivered,
    PermanentFailure,
    PushTransport,
    SendOptions,
    SendOutcome,
    TransientFailure,
    VapidConfig,
    WebPushTransport,
)
from coach_push.utils.exceptions import PushConfigurationError

TRANSPORT_FACTORIES: Dict[str, Callable[[Settings], PushTransport]] = {
    Platform.WEB.value: WebPushTransport.from_settings,
    Platform.ANDROID.value: FcmTransport.from_settings,
    Platform.IOS.value: ApnsTransport.from_settings,
}

_CREDENTIALS = {
    Platform.WEB.value: VapidConfig.from_settings,
    Platform.ANDROID.value: FirebaseConfig.from_settings,
    Platform.IOS.value: ApnsConfig.from_settings,
}


def missing_credentials(settings: Settings) -> Dict[str, List[str]]:
    """Settings each push platform still lacks; empty when all can deliver."""

    missing: Dict[str, List[str]] = {}
    for platform, load in _CREDENTIALS.items():
        try:
            load(settings)
        except PushConfigurationError as exc:
            missing[platform] = list(exc.details.get("missing", [])) or [exc.message]
    return missing


class PushDispatcher:
    """Deliver one notification to all of a recipient's subscriptions.

    Each subscription gets exactly one send attempt. Sends run concurrently
    and the dispatcher waits for all of them; endpoints reported gone are
    pruned once every send has finished. :meth:`dispatch` never raises.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        transport: PushTransport,
        payload_builder: Optional[PayloadBuilder] = None,
        observer: Optional[DispatchObserver] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self.store = store
        self.transport = transport
        self.payload_builder = payload_builder or PayloadBuilder()
        self.observer = observer or LoguruDispatchObserver()
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(
        cls,
        db: Session,
        settings: Settings = default_settings,
        observer: Optional[DispatchObserver] = None,
        platform: str = WEB_PLATFORM,
    ) -> "PushDispatcher":
        """Wire the database store and the transport for ``platform``.

        Raises :class:`PushConfigurationError` when that transport's
        credentials are missing.
        """

        try:
            transport_factory = TRANSPORT_FACTORIES[platform]
        except KeyError:
            raise ValueError(f"Unsupported push platform: {platform}") from None
        if platform == WEB_PLATFORM:
            store: SubscriptionStore = SqlAlchemySubscriptionStore(db)
        else:
            store = SqlAlchemyNativeTokenStore(db, platform)

        return cls(
            store=store,
            transport=transport_factory(settings),
            payload_builder=PayloadBuilder(
                icon=settings.PUSH_ICON_URL,
                badge=settings.PUSH_BADGE_URL,
                sound=settings.PUSH_SOUND,
            ),
            observer=observer,
            ttl_seconds=settings.PUSH_TTL_SECONDS,
        )

    async def dispatch(self, owner_id: Any, notification: Notification) -> DispatchResult:
        try:
            return await self._dispatch(owner_id, notification)
        except Exception as exc:
            self._notify("dispatch_failed", owner_id, exc)
            return DispatchResult(sent=0, failed=0, error=str(exc))

    def dispatch_sync(self, owner_id: Any, notification: Notification) -> DispatchResult:
        """Run :meth:`dispatch` from synchronous code."""

        return asyncio.run(self.dispatch(owner_id, notification))

    def _notify(self, hook: str, *args: Any) -> None:
        """Call an observer hook; a failing observer never affects delivery."""

        try:
            getattr(self.observer, hook)(*args)
        except Exception as exc:
            logger.opt(exception=exc).warning("Dispatch observer failed", hook=hook)

    async def _dispatch(self, owner_id: Any, notification: Notification) -> DispatchResult:
        role = await asyncio.to_thread(self.store.resolve_owner_role, owner_id)
        subscriptions = await asyncio.to_thread(self.store.list_subscriptions, owner_id)
        if not subscriptions:
            result = DispatchResult(sent=0, failed=0)
            self._notify("dispatch_completed", owner_id, result, [])
            return result

        payload = self.payload_builder.build(notification, role)
        options = SendOptions.for_priority(payload.priority, self.ttl_seconds)
        self._notify("dispatch_started", owner_id, notification, role, len(subscriptions))

        outcomes = await self._fan_out(subscriptions, payload, options)

        result = DispatchResult()
        failures: List[Tuple[Subscription, SendOutcome]] = []
        prune_list: List[str] = []
        for subscription, outcome in outcomes:
            if isinstance(outcome, Delivered):
                result.sent += 1
                continue
            result.failed += 1
            failures.append((subscription, outcome))
            if isinstance(outcome, PermanentFailure):
                prune_list.append(subscription.endpoint)

        if prune_list:
            await asyncio.to_thread(self.store.prune, prune_list)
            result.pruned = len(prune_list)

        for subscription, outcome in failures:
            self._notify("endpoint_failed", owner_id, subscription, outcome)
        self._notify("dispatch_completed", owner_id, result, prune_list)
        return result

    async def _fan_out(
        self, subscriptions: Sequence[Subscription], payload: PushPayload, options: SendOptions
    ) -> List[Tuple[Subscription, SendOutcome]]:
        raw = await asyncio.gather(
            *(self.transport.send(subscription, payload, options) for subscription in subscriptions),
            return_exceptions=True,
        )
        outcomes: List[Tuple[Subscription, SendOutcome]] = []
        for subscription, outcome in zip(subscriptions, raw):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                outcome = TransientFailure(status=None, message=str(outcome))
            outcomes.append((subscription, outcome))
        return outcomes
