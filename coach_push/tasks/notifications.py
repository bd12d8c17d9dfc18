"""Celery tasks for push notification delivery."""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from coach_push.celery_app import celery_app
from coach_push.db.session import SessionLocal
from coach_push.push.dispatcher import PushDispatcher
from coach_push.push.models import Notification
from coach_push.services.notification_service import NotificationService


@celery_app.task(name="coach_push.tasks.notifications.dispatch_push_notification", max_retries=0)
def dispatch_push_notification(owner_id: str, notification: dict[str, Any]) -> dict[str, Any]:
    """Fan a notification out to the owner's web and mobile devices, one attempt per device."""

    db = SessionLocal()
    try:
        service = NotificationService(db, dispatcher=PushDispatcher.from_settings(db))
        result = asyncio.run(service.send_notification(owner_id, Notification.from_dict(notification)))
        logger.info(
            "Push notification task finished",
            owner_id=owner_id,
            notification_id=notification.get("id"),
            **result.to_dict(),
        )
        return result.to_dict()
    finally:
        db.close()
