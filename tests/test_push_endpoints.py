"""Tests for the push registration endpoints."""
from __future__ import annotations

from fastapi.testclient import TestClient
from loguru import logger

from coach_push.api import deps
from coach_push.config import settings
from coach_push.db.models.native_push_token import NativePushToken
from coach_push.db.models.push_subscription import PushSubscription
from coach_push.main import create_app
from coach_push.push.dispatcher import PushDispatcher
from coach_push.utils.exceptions import PushConfigurationError, SubscriptionError
from tests.stubs import GONE, RecordingObserver, StubStore, StubTransport, make_subscription

SUBSCRIPTION = {
    "endpoint": "https://fcm.googleapis.com/fcm/send/abc123",
    "keys": {"p256dh": "BNc...", "auth": "tBH..."},
}


def auth_headers(user) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


def test_subscribe_requires_identity(client: TestClient) -> None:
    response = client.post("/api/v1/push/subscribe", json=SUBSCRIPTION)

    assert response.status_code == 401


def test_subscribe_and_unsubscribe(client: TestClient, db_session, client_user) -> None:
    response = client.post(
        "/api/v1/push/subscribe",
        json=SUBSCRIPTION,
        headers={**auth_headers(client_user), "User-Agent": "pytest-browser"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True}
    row = db_session.query(PushSubscription).one()
    assert row.endpoint == SUBSCRIPTION["endpoint"]
    assert row.user_agent == "pytest-browser"

    response = client.post(
        "/api/v1/push/unsubscribe",
        json={"endpoint": SUBSCRIPTION["endpoint"]},
        headers=auth_headers(client_user),
    )

    assert response.status_code == 200
    assert db_session.query(PushSubscription).count() == 0


def test_subscribe_rejects_missing_keys(client: TestClient, client_user) -> None:
    response = client.post(
        "/api/v1/push/subscribe",
        json={"endpoint": SUBSCRIPTION["endpoint"], "keys": {"p256dh": "BNc..."}},
        headers=auth_headers(client_user),
    )

    assert response.status_code == 422
    assert response.json()["message"] == "Validation failed"


def test_vapid_public_key(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", None)
    assert client.get("/api/v1/push/vapid-public-key").status_code == 503

    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", "BPublicKey")
    response = client.get("/api/v1/push/vapid-public-key")

    assert response.status_code == 200
    assert response.json() == {"publicKey": "BPublicKey"}


def test_test_notification_reports_aggregate(client: TestClient, client_user) -> None:
    store = StubStore(
        [make_subscription("https://push.example/a"), make_subscription("https://push.example/b")]
    )
    transport = StubTransport({"https://push.example/b": GONE})
    dispatcher = PushDispatcher(store=store, transport=transport, observer=RecordingObserver())
    client.app.dependency_overrides[deps.get_push_dispatcher] = lambda: dispatcher

    response = client.post("/api/v1/push/test", headers=auth_headers(client_user))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["result"] == {"sent": 1, "failed": 1}
    assert store.prune_calls == [["https://push.example/b"]]
    payload = transport.calls[0][1]
    assert payload.title == "Test Notification"
    assert payload.url == "/client/dashboard"


def test_test_notification_without_vapid_keys(client: TestClient, client_user, monkeypatch) -> None:
    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", None)
    monkeypatch.setattr(settings, "VAPID_PRIVATE_KEY", None)

    response = client.post("/api/v1/push/test", headers=auth_headers(client_user))

    assert response.status_code == 503


def test_register_and_unregister_native_token(client: TestClient, db_session, client_user) -> None:
    response = client.post(
        "/api/v1/push/register-native",
        json={"token": "fcm-token-abc", "platform": "android", "deviceId": "pixel-8"},
        headers=auth_headers(client_user),
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Token registered successfully"}
    row = db_session.query(NativePushToken).one()
    assert (row.token, row.platform, row.device_id) == ("fcm-token-abc", "android", "pixel-8")

    response = client.post(
        "/api/v1/push/unregister-native",
        json={"token": "fcm-token-abc"},
        headers=auth_headers(client_user),
    )

    assert response.status_code == 200
    assert db_session.query(NativePushToken).count() == 0


def test_register_native_rejects_unknown_platform(client: TestClient, client_user) -> None:
    response = client.post(
        "/api/v1/push/register-native",
        json={"token": "tok", "platform": "windows"},
        headers=auth_headers(client_user),
    )

    assert response.status_code == 422
    assert response.json()["message"] == "Validation failed"


def test_register_native_requires_identity(client: TestClient) -> None:
    response = client.post("/api/v1/push/register-native", json={"token": "tok", "platform": "ios"})

    assert response.status_code == 401


def test_health_reports_configured_channels(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", "pub")
    monkeypatch.setattr(settings, "VAPID_PRIVATE_KEY", "priv")
    monkeypatch.setattr(settings, "FIREBASE_PROJECT_ID", None)
    monkeypatch.setattr(settings, "APNS_KEY_ID", None)

    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "channels": {"web": True, "android": False, "ios": False}}


def test_push_errors_raised_by_routes_map_to_http_statuses() -> None:
    app = create_app()

    @app.get("/needs-vapid")
    def needs_vapid():
        raise PushConfigurationError("VAPID keys are not configured")

    @app.get("/bad-subscription")
    def bad_subscription():
        raise SubscriptionError("Endpoint required", details={"field": "endpoint"})

    with TestClient(app) as test_client:
        unavailable = test_client.get("/needs-vapid")
        bad_request = test_client.get("/bad-subscription")

    assert unavailable.status_code == 503
    assert unavailable.json() == {"detail": "Push notifications are not configured on this server."}
    assert bad_request.status_code == 400
    assert bad_request.json() == {"detail": {"message": "Endpoint required", "details": {"field": "endpoint"}}}


def test_startup_warns_about_disabled_channels(monkeypatch) -> None:
    monkeypatch.setattr(settings, "VAPID_PUBLIC_KEY", None)
    monkeypatch.setattr(settings, "VAPID_PRIVATE_KEY", None)
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="WARNING")
    try:
        with TestClient(create_app()):
            pass
    finally:
        logger.remove(sink_id)

    disabled = {r["extra"]["platform"]: r["extra"]["missing"] for r in records if r["message"] == "Push channel disabled"}
    assert disabled["web"] == ["VAPID_PUBLIC_KEY", "VAPID_PRIVATE_KEY"]
