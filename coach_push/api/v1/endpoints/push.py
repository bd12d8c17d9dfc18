import time

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from coach_push.api import deps
from coach_push.config import settings
from coach_push.db.models.user import User
from coach_push.push.dispatcher import PushDispatcher
from coach_push.push.models import Notification
from coach_push.schemas.push import (
    NativePushTokenCreate,
    NativePushTokenDelete,
    PushSubscriptionCreate,
    PushTestResponse,
    PushUnsubscribeRequest,
    VapidPublicKeyRead,
)
from coach_push.services.notification_service import NotificationService
from coach_push.utils.exceptions import (
    PushConfigurationError,
    SubscriptionError,
    handle_configuration_error,
    handle_subscription_error,
)

router = APIRouter(prefix="/push", tags=["push"])


@router.get("/vapid-public-key", response_model=VapidPublicKeyRead)
def get_vapid_public_key():
    if not settings.VAPID_PUBLIC_KEY:
        raise handle_configuration_error(PushConfigurationError("VAPID public key is not configured"))
    return {"publicKey": settings.VAPID_PUBLIC_KEY}


@router.post("/subscribe")
def subscribe(
    subscription: PushSubscriptionCreate,
    user_agent: str | None = Header(default=None),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    service = NotificationService(db)
    try:
        service.subscribe(current_user.id, subscription, user_agent)
    except SubscriptionError as exc:
        raise handle_subscription_error(exc) from exc
    return {"success": True}


@router.post("/unsubscribe")
def unsubscribe(
    request: PushUnsubscribeRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    service = NotificationService(db)
    try:
        service.unsubscribe(current_user.id, request.endpoint)
    except SubscriptionError as exc:
        raise handle_subscription_error(exc) from exc
    return {"success": True}


@router.post("/register-native")
def register_native(
    registration: NativePushTokenCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    service = NotificationService(db)
    try:
        service.register_native_token(current_user.id, registration)
    except SubscriptionError as exc:
        raise handle_subscription_error(exc) from exc
    return {"success": True, "message": "Token registered successfully"}


@router.post("/unregister-native")
def unregister_native(
    request: NativePushTokenDelete,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
):
    service = NotificationService(db)
    try:
        service.unregister_native_token(current_user.id, request.token, request.platform)
    except SubscriptionError as exc:
        raise handle_subscription_error(exc) from exc
    return {"success": True}


@router.post("/test", response_model=PushTestResponse, response_model_exclude_none=True)
async def test_notification(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
    dispatcher: PushDispatcher = Depends(deps.get_push_dispatcher),
):
    service = NotificationService(db, dispatcher=dispatcher)
    result = await service.send_notification(
        current_user.id,
        Notification(
            id=f"test-{int(time.time() * 1000)}",
            title="Test Notification",
            message="This is a test push notification",
            type="test",
            priority="normal",
        ),
    )
    return {
        "success": True,
        "result": result.to_dict(),
        "message": "Test notification sent. Check your browser for the notification.",
    }
