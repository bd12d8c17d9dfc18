"""Tests for subscription registration and typed notification helpers."""
from __future__ import annotations

import pytest

from coach_push.config import settings
from coach_push.db.models.native_push_token import NativePushToken
from coach_push.db.models.push_subscription import PushSubscription
from coach_push.push.dispatcher import PushDispatcher
from coach_push.push.models import Notification
from coach_push.schemas.push import NativePushTokenCreate, PushSubscriptionCreate
from coach_push.services.notification_service import NotificationService
from tests.stubs import (
    GONE,
    RecordingObserver,
    StubStore,
    StubTransport,
    make_native_token,
    make_subscription,
)


def subscription_payload(endpoint="https://push.example/device", p256dh="key", auth="secret"):
    return PushSubscriptionCreate(endpoint=endpoint, keys={"p256dh": p256dh, "auth": auth})


def service_with_role(db_session, role):
    transport = StubTransport()
    dispatcher = PushDispatcher(
        store=StubStore([make_subscription("https://push.example/device")], role=role),
        transport=transport,
        observer=RecordingObserver(),
    )
    return NotificationService(db_session, dispatcher=dispatcher), transport


def test_subscribe_creates_row(db_session, client_user):
    service = NotificationService(db_session)

    service.subscribe(client_user.id, subscription_payload(), "Mozilla/5.0")

    row = db_session.query(PushSubscription).one()
    assert row.user_id == client_user.id
    assert row.p256dh == "key"
    assert row.auth == "secret"
    assert row.user_agent == "Mozilla/5.0"


def test_subscribe_repoints_known_endpoint(db_session, client_user, coach_user):
    service = NotificationService(db_session)
    service.subscribe(client_user.id, subscription_payload())

    service.subscribe(coach_user.id, subscription_payload(p256dh="new-key", auth="new-secret"))

    rows = db_session.query(PushSubscription).all()
    assert len(rows) == 1
    assert rows[0].user_id == coach_user.id
    assert rows[0].p256dh == "new-key"
    assert rows[0].user_agent == "unknown"


def test_unsubscribe_only_removes_callers_row(db_session, client_user, coach_user):
    service = NotificationService(db_session)
    service.subscribe(client_user.id, subscription_payload())

    assert service.unsubscribe(coach_user.id, "https://push.example/device") == 0
    assert service.unsubscribe(client_user.id, "https://push.example/device") == 1
    assert db_session.query(PushSubscription).count() == 0


@pytest.mark.asyncio
async def test_resource_shared_routes_client_to_resources(db_session):
    service, transport = service_with_role(db_session, "client")

    result = await service.notify_resource_shared("client-1", "coach-1", "Dana", "Breathing guide")

    assert result.to_dict() == {"sent": 1, "failed": 0}
    payload = transport.calls[0][1]
    assert payload.title == "New Resource Shared"
    assert payload.data["type"] == "system"
    assert payload.data["notificationType"] == "resource_shared"
    assert payload.url == "/client/resources"


@pytest.mark.asyncio
async def test_daily_checkin_routes_coach_to_client_overview(db_session):
    service, transport = service_with_role(db_session, "coach")

    await service.notify_daily_checkin("client-9", "coach-1", "Sam")

    payload = transport.calls[0][1]
    assert payload.body == "Sam completed their daily check-in"
    assert payload.url == "/coach/clients/client-9?tab=overview"


@pytest.mark.asyncio
async def test_session_reminder_is_urgent(db_session):
    service, transport = service_with_role(db_session, "client")

    await service.notify_session_reminder("client-1", "Weekly check", "10:00")

    payload, options = transport.calls[0][1], transport.calls[0][2]
    assert payload.data["type"] == "session_reminder"
    assert "notificationType" not in payload.data
    assert payload.require_interaction is True
    assert options.urgency == "high"
    assert payload.url == "/client/sessions"


@pytest.mark.asyncio
async def test_new_message_preview_is_truncated(db_session):
    service, transport = service_with_role(db_session, "admin")

    await service.notify_new_message("admin-1", "coach-1", "Dana", "coach", "conv-1", "x" * 80)

    payload = transport.calls[0][1]
    assert payload.body == "Dana: " + "x" * 50 + "..."
    assert payload.data["messageContent"] == "x" * 80
    assert payload.url == "/admin/chat"


@pytest.mark.asyncio
async def test_coach_task_completed_opens_coach_for_admin(db_session):
    service, transport = service_with_role(db_session, "admin")

    await service.notify_coach_task_completed("admin-1", "coach-3", "Dana", "Quarterly review", "task-1")

    assert transport.calls[0][1].url == "/admin/coaches/coach-3"


@pytest.mark.asyncio
async def test_group_join_request_prefers_client_scope(db_session):
    service, transport = service_with_role(db_session, "coach")

    await service.notify_group_join_request("coach-1", "group-2", "Runners", "client-4", "Ana", "ana@example.com")

    payload = transport.calls[0][1]
    assert payload.data["message"] == ""
    assert payload.url == "/coach/clients/client-4"


def native_registration(token="fcm-token", platform="android", device_id=None):
    return NativePushTokenCreate(token=token, platform=platform, deviceId=device_id)


def test_register_native_token_creates_row(db_session, client_user):
    NotificationService(db_session).register_native_token(client_user.id, native_registration(device_id="pixel-8"))

    row = db_session.query(NativePushToken).one()
    assert row.user_id == client_user.id
    assert row.platform == "android"
    assert row.device_id == "pixel-8"


def test_register_known_token_repoints_owner(db_session, client_user, coach_user):
    service = NotificationService(db_session)
    service.register_native_token(client_user.id, native_registration())

    service.register_native_token(coach_user.id, native_registration())

    rows = db_session.query(NativePushToken).all()
    assert [(row.token, row.user_id) for row in rows] == [("fcm-token", coach_user.id)]


def test_rotated_token_replaces_same_device(db_session, client_user):
    service = NotificationService(db_session)
    service.register_native_token(client_user.id, native_registration("old", device_id="pixel-8"))
    service.register_native_token(client_user.id, native_registration("other", device_id="tablet"))

    service.register_native_token(client_user.id, native_registration("new", device_id="pixel-8"))

    tokens = sorted(row.token for row in db_session.query(NativePushToken).all())
    assert tokens == ["new", "other"]


def test_token_without_device_replaces_latest_for_platform(db_session, client_user):
    service = NotificationService(db_session)
    service.register_native_token(client_user.id, native_registration("ios-old", platform="ios"))

    service.register_native_token(client_user.id, native_registration("ios-new", platform="ios"))
    service.register_native_token(client_user.id, native_registration("fcm-1", platform="android"))

    tokens = sorted((row.platform, row.token) for row in db_session.query(NativePushToken).all())
    assert tokens == [("android", "fcm-1"), ("ios", "ios-new")]


def test_unregister_native_token_respects_owner_and_platform(db_session, client_user, coach_user):
    service = NotificationService(db_session)
    service.register_native_token(client_user.id, native_registration())

    assert service.unregister_native_token(coach_user.id, "fcm-token") == 0
    assert service.unregister_native_token(client_user.id, "fcm-token", platform="ios") == 0
    assert service.unregister_native_token(client_user.id, "fcm-token", platform="android") == 1
    assert db_session.query(NativePushToken).count() == 0


@pytest.mark.asyncio
async def test_send_notification_uses_transport_of_each_registered_platform(db_session, client_user):
    web_transport = StubTransport()
    android_store = StubStore([make_native_token("fcm-alive"), make_native_token("fcm-dead")])
    android_transport = StubTransport({"fcm-dead": GONE})
    ios_transport = StubTransport()
    service = NotificationService(
        db_session,
        dispatcher=PushDispatcher(
            store=StubStore([make_subscription("https://push.example/device")]),
            transport=web_transport,
            observer=RecordingObserver(),
        ),
        native_dispatchers={
            "android": PushDispatcher(store=android_store, transport=android_transport, observer=RecordingObserver()),
            "ios": PushDispatcher(
                store=StubStore([make_native_token("apns-1", "ios")]),
                transport=ios_transport,
                observer=RecordingObserver(),
            ),
        },
    )
    service.register_native_token(client_user.id, native_registration("fcm-dead"))

    result = await service.notify_session_reminder(client_user.id, "Weekly check", "10:00")

    assert result.to_dict() == {"sent": 2, "failed": 1}
    assert result.pruned == 1
    assert android_store.prune_calls == [["fcm-dead"]]
    assert sorted(call[0].token for call in android_transport.calls) == ["fcm-alive", "fcm-dead"]
    assert len(web_transport.calls) == 1
    # no ios token is registered for this user
    assert ios_transport.calls == []


@pytest.mark.asyncio
async def test_unconfigured_native_platform_counts_its_tokens_as_failed(db_session, client_user, monkeypatch):
    monkeypatch.setattr(settings, "APNS_KEY_ID", None)
    monkeypatch.setattr(settings, "APNS_TEAM_ID", None)
    web_transport = StubTransport()
    service = NotificationService(
        db_session,
        dispatcher=PushDispatcher(
            store=StubStore([make_subscription("https://push.example/device")]),
            transport=web_transport,
            observer=RecordingObserver(),
        ),
    )
    service.register_native_token(client_user.id, native_registration("apns-1", platform="ios"))

    result = await service.send_notification(client_user.id, Notification(id="n-1", title="Hello", message="World", type="test"))

    assert result.to_dict() == {"sent": 1, "failed": 1, "error": "APNs credentials are not configured"}
    assert len(web_transport.calls) == 1
