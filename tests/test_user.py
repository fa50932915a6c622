from conftest import auth

import users
from database import CONVERSATIONS


def test_profile_requires_registration(client):
    assert client.get("/api/user/profile", headers=auth("alice-token")).status_code == 404


def test_get_and_update_profile(client, alice):
    r = client.put(
        "/api/user/profile",
        json={"displayName": "Alice L.", "avatarUrl": "https://img.test/a.png"},
        headers=auth("alice-token"),
    )
    assert r.json() == {"updated": True}
    profile = client.get("/api/user/profile", headers=auth("alice-token")).json()
    assert profile["displayName"] == "Alice L."
    assert profile["avatarUrl"] == "https://img.test/a.png"
    assert profile["uid"] == "alice"


def test_usage_reports_daily_limit(client, alice):
    client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]}, headers=auth("alice-token"))
    usage = client.get("/api/user/usage", headers=auth("alice-token")).json()
    assert usage["messagesUsedToday"] == 1
    assert usage["dailyLimit"] == 10
    assert usage["totalMessages"] == 1
    assert usage["tier"] == "free"
    assert "resetTime" in usage


def test_delete_account_removes_everything(client, db, identity, alice):
    client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]}, headers=auth("alice-token"))
    r = client.delete("/api/user/account", headers=auth("alice-token"))
    assert r.json() == {"deleted": True}
    assert users.get_profile(db, "alice") is None
    assert db[CONVERSATIONS].count_documents({"user_id": "alice"}) == 0
    assert identity.deleted == ["alice"]
