"""Dispatch lifecycle hooks."""
from __future__ import annotations

from typing import Any, Protocol, Sequence

from loguru import logger

from coach_push.push.models import DispatchResult, Notification, Subscription
from coach_push.push.transport import PermanentFailure, SendOutcome


def mask_endpoint(endpoint: str, keep: int = 48) -> str:
    """Shorten push endpoints for log output."""

    if len(endpoint) <= keep:
        return endpoint
    return f"{endpoint[:keep]}..."


class DispatchObserver(Protocol):
    """Receives structured events from :class:`PushDispatcher`."""

    def dispatch_started(
        self, owner_id: Any, notification: Notification, role: str, subscription_count: int
    ) -> None:  # pragma: no cover - interface definition
        ...

    def endpoint_failed(
        self, owner_id: Any, subscription: Subscription, outcome: SendOutcome
    ) -> None:  # pragma: no cover - interface definition
        ...

    def dispatch_completed(
        self, owner_id: Any, result: DispatchResult, pruned_endpoints: Sequence[str]
    ) -> None:  # pragma: no cover - interface definition
        ...

    def dispatch_failed(
        self, owner_id: Any, error: BaseException
    ) -> None:  # pragma: no cover - interface definition
        ...


class LoguruDispatchObserver:
    """Default observer writing structured loguru records."""

    def dispatch_started(
        self, owner_id: Any, notification: Notification, role: str, subscription_count: int
    ) -> None:
        logger.info(
            "Push dispatch started",
            owner_id=str(owner_id),
            notification_id=notification.id,
            notification_type=notification.type,
            role=role,
            subscriptions=subscription_count,
        )

    def endpoint_failed(self, owner_id: Any, subscription: Subscription, outcome: SendOutcome) -> None:
        permanent = isinstance(outcome, PermanentFailure)
        logger.warning(
            "Push delivery failed",
            owner_id=str(owner_id),
            endpoint=mask_endpoint(subscription.endpoint),
            status=getattr(outcome, "status", None),
            error=getattr(outcome, "message", None),
            permanent=permanent,
        )

    def dispatch_completed(
        self, owner_id: Any, result: DispatchResult, pruned_endpoints: Sequence[str]
    ) -> None:
        if pruned_endpoints:
            logger.info(
                "Removed invalid push subscriptions",
                owner_id=str(owner_id),
                pruned=len(pruned_endpoints),
            )
        logger.info(
            "Push dispatch completed",
            owner_id=str(owner_id),
            sent=result.sent,
            failed=result.failed,
        )

    def dispatch_failed(self, owner_id: Any, error: BaseException) -> None:
        logger.error("Push dispatch aborted", owner_id=str(owner_id), error=str(error))
