import pytest

import lingosavor.callable_protocol as callable_protocol
from lingosavor import create_app

from conftest import FIXED_NOW


def _auth(uid):
    return {"Authorization": f"Bearer token-{uid}"}


@pytest.fixture()
def client(app_config, app_ctx):
    app = create_app(config=app_config, service_context=app_ctx)
    app.config["TESTING"] = True
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def disable_sentry(monkeypatch):
    monkeypatch.setattr(callable_protocol, "sentry_sdk", None)


def test_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_callable_without_token_is_unauthenticated(client):
    response = client.post("/callable/addGems", json={"data": {"gem": 5, "user_id": "u1"}})

    assert response.status_code == 401
    assert response.get_json()["error"]["status"] == "UNAUTHENTICATED"


@pytest.mark.parametrize("gem", [0, -3, "10", True, None])
def test_add_gems_rejects_invalid_amounts(client, db, gem):
    db.seed("users", "u1", {"gems": 10})

    response = client.post("/callable/addGems", json={"data": {"gem": gem, "user_id": "u1"}}, headers=_auth("u1"))

    assert response.status_code == 400
    assert response.get_json()["error"]["status"] == "INVALID_ARGUMENT"
    assert db.data("users", "u1")["gems"] == 10


def test_add_gems_from_ad_uses_one_ad_view(client, db):
    db.seed("users", "u1", {"gems": 10, "ad_views": 0})

    response = client.post(
        "/callable/addGems",
        json={"data": {"gem": 2.2, "user_id": "u1", "isAd": True}},
        headers=_auth("u1"),
    )

    assert response.status_code == 200
    result = response.get_json()["result"]
    assert result["success"] is True
    assert result["data"]["new_gems_total"] == 13
    assert result["data"]["new_ad_views"] == 0
    assert db.data("users", "u1") == {"gems": 13, "ad_views": 0}


def test_add_gems_for_someone_else_is_denied(client, db):
    db.seed("users", "u2", {"gems": 10})

    response = client.post("/callable/addGems", json={"data": {"gem": 5, "user_id": "u2"}}, headers=_auth("u1"))

    assert response.status_code == 403
    assert response.get_json()["error"]["status"] == "PERMISSION_DENIED"
    assert db.data("users", "u2")["gems"] == 10


def test_add_gems_for_missing_user_is_not_found(client):
    response = client.post("/callable/addGems", json={"data": {"gem": 5, "user_id": "ghost"}}, headers=_auth("ghost"))

    assert response.status_code == 404


def test_create_user_data_once(client, app_ctx, db):
    app_ctx.auth_module.add_user("u1", email="mia@example.com", display_name="Mia")

    first = client.post("/callable/createUserdata", json={"data": {}}, headers=_auth("u1"))
    second = client.post("/callable/createUserdata", json={"data": {}}, headers=_auth("u1"))

    created = first.get_json()["result"]
    assert created["success"] is True
    assert created["userData"]["gems"] == 200
    assert created["userData"]["ad_views"] == 10
    assert created["userData"]["plan"] == "free"
    assert len(created["userData"]["user_name"]) == 12
    assert "created_at" not in created["userData"]
    assert db.data("users", "u1")["email"] == "mia@example.com"
    assert second.get_json()["result"] == {"success": False, "message": "User data already exists"}


def test_save_fcm_token_merges_into_user(client, app_ctx, db):
    app_ctx.auth_module.add_user("u1")
    db.seed("users", "u1", {"gems": 3})

    response = client.post("/callable/saveFCMToken", json={"data": {"token": "  fcm-abc "}}, headers=_auth("u1"))

    assert response.status_code == 200
    stored = db.data("users", "u1")
    assert stored["fcmToken"] == "fcm-abc"
    assert stored["gems"] == 3
    assert stored["tokenUpdatedBy"] == "client_app"


def test_save_fcm_token_requires_token(client, app_ctx):
    app_ctx.auth_module.add_user("u1")

    response = client.post("/callable/saveFCMToken", json={"data": {"token": ""}}, headers=_auth("u1"))

    assert response.status_code == 400


def test_delete_account_removes_owned_documents(client, app_ctx, db):
    app_ctx.auth_module.add_user("u1")
    db.seed("users", "u1", {"user_id": "u1"})
    db.seed("user_words", "w1", {"user_id": "u1"})
    db.seed("user_words", "w2", {"user_id": "u2"})
    db.seed("messages", "m1", {"user_id": "u1", "room_id": "r1"})

    response = client.post("/callable/deleteAccount", json={"data": {}}, headers=_auth("u1"))

    assert response.status_code == 200
    assert response.get_json()["result"]["documentsDeleted"] == 3
    assert db.all("user_words") == {"w2": {"user_id": "u2"}}
    assert app_ctx.auth_module.deleted == ["u1"]


def test_delete_account_reports_auth_failure(client, app_ctx):
    app_ctx.auth_module.add_user("u1")
    app_ctx.auth_module.fail_delete = True

    response = client.post("/callable/deleteAccount", json={"data": {}}, headers=_auth("u1"))

    assert response.status_code == 500
    assert response.get_json()["error"]["status"] == "INTERNAL"


def test_generate_response_in_foreign_room_is_denied(client, db):
    db.seed("user_rooms", "room1", {"user_id": "owner"})

    response = client.post("/callable/generateResponse", json={"data": {"room_id": "room1"}}, headers=_auth("intruder"))

    assert response.status_code == 403


def test_generate_response_appends_model_message(client, app_ctx, db):
    db.seed("users", "u1", {"plan": "free"})
    db.seed("user_rooms", "room1", {"user_id": "u1"})
    db.seed("messages", "m1", {"user_id": "u1", "room_id": "room1", "role": "user", "content": "What does savor mean?", "created_at": FIXED_NOW})
    app_ctx.generation.on("What does savor mean?", "It means to enjoy something slowly.")

    response = client.post("/callable/generateResponse", json={"data": {"room_id": "room1"}}, headers=_auth("u1"))

    assert response.get_json()["result"]["response"] == "It means to enjoy something slowly."
    replies = [data for data in db.all("messages").values() if data["role"] == "model"]
    assert replies[0]["content"] == "It means to enjoy something slowly."
    assert replies[0]["room_id"] == "room1"


def test_generate_meanings_requires_word(client):
    response = client.post("/callable/generateMeanings", json={"data": {"sentence": "hi"}}, headers=_auth("u1"))

    assert response.status_code == 400


def test_send_notification_queues_pending_document(client, db):
    response = client.post(
        "/callable/sendNotificationManual",
        json={"data": {"userId": "u2", "title": "Hello", "body": "Time to review", "screen": "home"}},
        headers=_auth("admin"),
    )

    notification_id = response.get_json()["result"]["notificationId"]
    stored = db.data("notifications", notification_id)
    assert stored["status"] == "pending"
    assert stored["createdBy"] == "admin"
    assert stored["screen"] == "home"


def test_send_bulk_notification_validates_user_ids(client):
    response = client.post(
        "/callable/sendBulkNotification",
        json={"data": {"userIds": [], "title": "Hello", "body": "Hi"}},
        headers=_auth("admin"),
    )

    assert response.status_code == 400


def test_send_bulk_notification_reports_counts(client, db):
    response = client.post(
        "/callable/sendBulkNotification",
        json={"data": {"userIds": ["a", "b", "c"], "title": "Hello", "body": "Hi"}},
        headers=_auth("admin"),
    )

    result = response.get_json()["result"]
    assert result["queued"] == 3
    assert result["requested"] == 3
    assert len(db.all("notifications")) == 3
