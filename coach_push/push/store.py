"""Subscription store contract and its SQLAlchemy implementations."""
from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Protocol, Sequence

from loguru import logger
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from coach_push.db.models.native_push_token import NativePushToken
from coach_push.db.models.push_subscription import PushSubscription
from coach_push.db.models.user import User
from coach_push.push.models import DEFAULT_ROLE, NATIVE_PLATFORMS, Platform, Subscription

WEB_PLATFORM = Platform.WEB.value


class SubscriptionStore(Protocol):
    """Narrow view of the registration table used by the dispatcher."""

    def list_subscriptions(self, owner_id: Any) -> List[Subscription]:  # pragma: no cover - interface definition
        """Return every registration for ``owner_id``; empty is valid."""

    def prune(self, endpoints: Sequence[str]) -> int:  # pragma: no cover - interface definition
        """Delete registrations by endpoint; unknown endpoints are ignored."""

    def resolve_owner_role(self, owner_id: Any) -> str:  # pragma: no cover - interface definition
        """Return the owner's role, ``client`` when the owner is unknown."""


def _coerce_uuid(value: Any) -> Optional[uuid.UUID]:
    """Parse an owner id; ``None`` when it cannot name a user row."""

    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class _OwnerRoleLookup:
    db: Session

    def resolve_owner_role(self, owner_id: Any) -> str:
        user_id = _coerce_uuid(owner_id)
        role = None
        if user_id is not None:
            role = self.db.scalar(select(User.role).where(User.id == user_id))
        if not role:
            logger.warning(
                "Push recipient not found, defaulting role",
                owner_id=str(owner_id),
                role=DEFAULT_ROLE.value,
            )
            return DEFAULT_ROLE.value
        return role


class SqlAlchemySubscriptionStore(_OwnerRoleLookup):
    """Reads and prunes ``push_subscriptions`` rows through a session."""

    def __init__(self, db: Session, platform: Optional[str] = WEB_PLATFORM) -> None:
        self.db = db
        self.platform = platform

    def list_subscriptions(self, owner_id: Any) -> List[Subscription]:
        user_id = _coerce_uuid(owner_id)
        if user_id is None:
            return []
        stmt = select(PushSubscription).where(PushSubscription.user_id == user_id)
        if self.platform == WEB_PLATFORM:
            stmt = stmt.where(
                or_(PushSubscription.platform == WEB_PLATFORM, PushSubscription.platform.is_(None))
            )
        elif self.platform is not None:
            stmt = stmt.where(PushSubscription.platform == self.platform)

        rows = self.db.scalars(stmt).all()
        return [
            Subscription(
                endpoint=row.endpoint,
                auth_secret=row.auth,
                p256dh_key=row.p256dh,
                owner_id=row.user_id,
                platform=row.platform,
            )
            for row in rows
        ]

    def prune(self, endpoints: Sequence[str]) -> int:
        unique = sorted(set(endpoints))
        if not unique:
            return 0
        result = self.db.execute(
            delete(PushSubscription).where(PushSubscription.endpoint.in_(unique))
        )
        self.db.commit()
        return result.rowcount or 0


class SqlAlchemyNativeTokenStore(_OwnerRoleLookup):
    """``native_push_tokens`` rows of one platform, exposed as subscriptions.

    The device token fills ``Subscription.endpoint`` so the dispatcher can
    prune rejected tokens the same way it prunes gone web endpoints.
    """

    def __init__(self, db: Session, platform: str) -> None:
        if platform not in NATIVE_PLATFORMS:
            raise ValueError(f"Unsupported native platform: {platform}")
        self.db = db
        self.platform = platform

    def list_subscriptions(self, owner_id: Any) -> List[Subscription]:
        user_id = _coerce_uuid(owner_id)
        if user_id is None:
            return []
        rows = self.db.scalars(
            select(NativePushToken).where(
                NativePushToken.user_id == user_id,
                NativePushToken.platform == self.platform,
            )
        ).all()
        return [
            Subscription(
                endpoint=row.token,
                owner_id=row.user_id,
                platform=row.platform,
                device_id=row.device_id,
            )
            for row in rows
        ]

    def prune(self, endpoints: Sequence[str]) -> int:
        unique = sorted(set(endpoints))
        if not unique:
            return 0
        result = self.db.execute(
            delete(NativePushToken).where(NativePushToken.token.in_(unique))
        )
        self.db.commit()
        return result.rowcount or 0


def count_native_tokens(db: Session, owner_id: Any) -> Dict[str, int]:
    """Number of native tokens per platform registered for ``owner_id``."""

    user_id = _coerce_uuid(owner_id)
    if user_id is None:
        return {}
    rows = db.execute(
        select(NativePushToken.platform, func.count(NativePushToken.id))
        .where(
            NativePushToken.user_id == user_id,
            NativePushToken.platform.in_(NATIVE_PLATFORMS),
        )
        .group_by(NativePushToken.platform)
    ).all()
    return {platform: count for platform, count in rows}
