"""Service for handling push registrations and notifications."""
import asyncio
import uuid
from typing import Any, Dict, Mapping, Optional

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coach_push.db.models.native_push_token import NativePushToken
from coach_push.db.models.push_subscription import PushSubscription
from coach_push.push.dispatcher import PushDispatcher
from coach_push.push.models import DispatchResult, Notification
from coach_push.push.store import count_native_tokens
from coach_push.schemas.push import NativePushTokenCreate, PushSubscriptionCreate
from coach_push.utils.exceptions import PushConfigurationError, SubscriptionError

MESSAGE_PREVIEW_LENGTH = 50


def _preview(text: str, limit: int = MESSAGE_PREVIEW_LENGTH) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class NotificationService:
    def __init__(
        self,
        db: Session,
        dispatcher: Optional[PushDispatcher] = None,
        native_dispatchers: Optional[Mapping[str, PushDispatcher]] = None,
    ):
        self.db = db
        self._dispatcher = dispatcher
        self._native_dispatchers: Dict[str, PushDispatcher] = dict(native_dispatchers or {})

    @property
    def dispatcher(self) -> PushDispatcher:
        if self._dispatcher is None:
            self._dispatcher = PushDispatcher.from_settings(self.db)
        return self._dispatcher

    def native_dispatcher(self, platform: str) -> PushDispatcher:
        """Dispatcher for ``ios`` or ``android`` tokens, built on first use."""
        if platform not in self._native_dispatchers:
            self._native_dispatchers[platform] = PushDispatcher.from_settings(self.db, platform=platform)
        return self._native_dispatchers[platform]

    def subscribe(self, user_id, subscription: PushSubscriptionCreate, user_agent: str = None):
        """Register a push subscription, re-pointing a known endpoint to this user."""
        if not subscription.endpoint:
            raise SubscriptionError("Endpoint required")

        stmt = select(PushSubscription).where(PushSubscription.endpoint == subscription.endpoint)
        existing = self.db.scalars(stmt).first()
        if existing:
            existing.user_id = user_id
            existing.p256dh = subscription.keys.p256dh
            existing.auth = subscription.keys.auth
            existing.platform = subscription.platform
            existing.user_agent = user_agent or "unknown"
        else:
            self.db.add(
                PushSubscription(
                    user_id=user_id,
                    endpoint=subscription.endpoint,
                    p256dh=subscription.keys.p256dh,
                    auth=subscription.keys.auth,
                    platform=subscription.platform,
                    user_agent=user_agent or "unknown",
                )
            )

        self.db.commit()
        logger.info("Push subscription registered", user_id=str(user_id), updated=existing is not None)

    def unsubscribe(self, user_id, endpoint: str) -> int:
        """Remove the caller's registration for ``endpoint``."""
        if not endpoint:
            raise SubscriptionError("Endpoint required")
        result = self.db.execute(
            delete(PushSubscription).where(
                PushSubscription.endpoint == endpoint,
                PushSubscription.user_id == user_id,
            )
        )
        self.db.commit()
        return result.rowcount or 0

    def register_native_token(self, user_id, registration: NativePushTokenCreate) -> None:
        """Store an FCM/APNs token, replacing the device's previous token when known."""
        if not registration.token:
            raise SubscriptionError("Token required")

        existing = self.db.scalars(
            select(NativePushToken).where(NativePushToken.token == registration.token)
        ).first()
        action = "updated"
        if existing:
            existing.user_id = user_id
            existing.platform = registration.platform
            existing.device_id = registration.deviceId
        else:
            stmt = select(NativePushToken).where(
                NativePushToken.user_id == user_id,
                NativePushToken.platform == registration.platform,
            )
            if registration.deviceId:
                # FCM rotates tokens for the same installation
                stmt = stmt.where(NativePushToken.device_id == registration.deviceId)
            else:
                stmt = stmt.order_by(NativePushToken.updated_at.desc())
            previous = self.db.scalars(stmt).first()
            if previous:
                previous.token = registration.token
                previous.device_id = registration.deviceId
                action = "replaced"
            else:
                self.db.add(
                    NativePushToken(
                        user_id=user_id,
                        token=registration.token,
                        platform=registration.platform,
                        device_id=registration.deviceId,
                    )
                )
                action = "created"

        self.db.commit()
        logger.info(
            "Native push token registered",
            user_id=str(user_id),
            platform=registration.platform,
            action=action,
        )

    def unregister_native_token(self, user_id, token: str, platform: Optional[str] = None) -> int:
        """Remove the caller's native token, optionally only for ``platform``."""
        if not token:
            raise SubscriptionError("Token required")
        stmt = delete(NativePushToken).where(
            NativePushToken.token == token,
            NativePushToken.user_id == user_id,
        )
        if platform:
            stmt = stmt.where(NativePushToken.platform == platform)
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount or 0

    async def send_notification(self, user_id, notification: Notification) -> DispatchResult:
        """Send a push notification to all user devices.

        Each native platform the user holds tokens for is dispatched through
        its own transport, then web subscriptions; the results are summed.
        """
        result = DispatchResult()
        try:
            native_counts = await asyncio.to_thread(count_native_tokens, self.db, user_id)
        except SQLAlchemyError as exc:
            logger.error("Native token lookup failed", user_id=str(user_id), error=str(exc))
            native_counts = {}

        for platform, count in sorted(native_counts.items()):
            result = result.merge(await self._send_native(user_id, notification, platform, count))
        return result.merge(await self.dispatcher.dispatch(user_id, notification))

    async def _send_native(self, user_id, notification: Notification, platform: str, count: int) -> DispatchResult:
        try:
            dispatcher = self.native_dispatcher(platform)
        except PushConfigurationError as exc:
            logger.warning(
                "Native push not configured",
                platform=platform,
                user_id=str(user_id),
                missing=exc.details.get("missing"),
            )
            return DispatchResult(sent=0, failed=count, error=exc.message)
        return await dispatcher.dispatch(user_id, notification)

    async def _notify(
        self,
        user_id,
        type: str,
        title: str,
        message: str,
        data: Dict[str, Any],
        priority: str = "normal",
    ) -> DispatchResult:
        notification = Notification(
            id=str(uuid.uuid4()),
            title=title,
            message=message,
            type=type,
            priority=priority,
            data=data,
        )
        return await self.send_notification(user_id, notification)

    # Coach-facing events

    async def notify_client_signup(self, client_id, coach_id, client_name: str) -> DispatchResult:
        return await self._notify(
            coach_id,
            "client_signup",
            "New Client Signup",
            f"{client_name} has signed up and is ready to start their journey!",
            {"clientId": str(client_id), "clientName": client_name, "coachId": str(coach_id)},
            priority="high",
        )

    async def notify_task_completion(self, client_id, coach_id, client_name: str, task_title: str) -> DispatchResult:
        return await self._notify(
            coach_id,
            "task_completed",
            "Task Completed",
            f'{client_name} completed the task: "{task_title}"',
            {
                "clientId": str(client_id),
                "clientName": client_name,
                "taskTitle": task_title,
                "coachId": str(coach_id),
            },
        )

    async def notify_daily_checkin(self, client_id, coach_id, client_name: str) -> DispatchResult:
        return await self._notify(
            coach_id,
            "daily_checkin",
            "Daily Check-in",
            f"{client_name} completed their daily check-in",
            {"clientId": str(client_id), "clientName": client_name, "coachId": str(coach_id)},
        )

    async def notify_goal_achievement(self, client_id, coach_id, client_name: str, goal_title: str) -> DispatchResult:
        return await self._notify(
            coach_id,
            "goal_achieved",
            "Goal Achieved!",
            f'{client_name} achieved their goal: "{goal_title}"',
            {
                "clientId": str(client_id),
                "clientName": client_name,
                "goalTitle": goal_title,
                "coachId": str(coach_id),
            },
            priority="high",
        )

    async def notify_group_join_request(
        self,
        coach_id,
        group_id,
        group_name: str,
        client_id,
        client_name: str,
        client_email: str,
        message: Optional[str] = None,
    ) -> DispatchResult:
        return await self._notify(
            coach_id,
            "system",
            "New Group Join Request",
            f'{client_name} wants to join your group "{group_name}"',
            {
                "groupId": str(group_id),
                "groupName": group_name,
                "clientId": str(client_id),
                "clientName": client_name,
                "clientEmail": client_email,
                "message": message or "",
                "notificationType": "group_join_request",
            },
            priority="high",
        )

    async def notify_admin_task_assigned(self, coach_id, admin_id, admin_name: str, task_title: str, task_id) -> DispatchResult:
        return await self._notify(
            coach_id,
            "system",
            "New Task Assigned",
            f'{admin_name} assigned you a new task: "{task_title}"',
            {
                "adminId": str(admin_id),
                "adminName": admin_name,
                "taskTitle": task_title,
                "taskId": str(task_id),
                "notificationType": "admin_task_assigned",
            },
        )

    # Client-facing events; all but the session reminder travel as "system"
    # with a nested notificationType

    async def notify_session_reminder(self, user_id, session_title: str, session_time: str) -> DispatchResult:
        return await self._notify(
            user_id,
            "session_reminder",
            "Session Reminder",
            f'Your session "{session_title}" is starting in 15 minutes',
            {"sessionTitle": session_title, "sessionTime": session_time},
            priority="urgent",
        )

    async def notify_resource_shared(self, user_id, coach_id, coach_name: str, resource_title: str) -> DispatchResult:
        return await self._notify(
            user_id,
            "system",
            "New Resource Shared",
            f'{coach_name} shared a new resource: "{resource_title}"',
            {
                "userId": str(user_id),
                "coachId": str(coach_id),
                "coachName": coach_name,
                "resourceTitle": resource_title,
                "notificationType": "resource_shared",
            },
        )

    async def notify_task_created(self, user_id, coach_id, coach_name: str, task_title: str) -> DispatchResult:
        return await self._notify(
            user_id,
            "system",
            "New Task Assigned",
            f'{coach_name} assigned you a new task: "{task_title}"',
            {
                "userId": str(user_id),
                "coachId": str(coach_id),
                "coachName": coach_name,
                "taskTitle": task_title,
                "notificationType": "task_created",
            },
        )

    async def notify_note_created(self, user_id, coach_id, coach_name: str, note_title: str) -> DispatchResult:
        return await self._notify(
            user_id,
            "system",
            "New Note Added",
            f'{coach_name} added a note about you: "{note_title}"',
            {
                "userId": str(user_id),
                "coachId": str(coach_id),
                "coachName": coach_name,
                "noteTitle": note_title,
                "notificationType": "note_created",
            },
        )

    # Any role

    async def notify_new_message(
        self,
        recipient_id,
        sender_id,
        sender_name: str,
        sender_role: str,
        conversation_id,
        message_content: str,
        message_type: str = "text",
        client_id=None,
    ) -> DispatchResult:
        data: Dict[str, Any] = {
            "conversationId": str(conversation_id),
            "senderId": str(sender_id),
            "senderName": sender_name,
            "senderRole": sender_role,
            "messageContent": message_content,
            "messageType": message_type,
        }
        if client_id:
            data["clientId"] = str(client_id)
        return await self._notify(
            recipient_id,
            "new_message",
            "New Message",
            f"{sender_name}: {_preview(message_content)}",
            data,
        )

    async def notify_coach_task_completed(self, admin_id, coach_id, coach_name: str, task_title: str, task_id) -> DispatchResult:
        return await self._notify(
            admin_id,
            "system",
            "Task Completed",
            f'{coach_name} completed the task: "{task_title}"',
            {
                "adminId": str(admin_id),
                "coachId": str(coach_id),
                "coachName": coach_name,
                "taskTitle": task_title,
                "taskId": str(task_id),
                "notificationType": "coach_task_completed",
            },
        )
