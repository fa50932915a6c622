import users
from database import SETTINGS, SYSTEM_SETTINGS_ID


def test_register_creates_profile(client, db):
    r = client.post("/api/auth/register", json={"idToken": "alice-token", "displayName": "Alice"})
    assert r.status_code == 201
    assert r.json() == {"success": True, "userId": "alice", "message": "User registered successfully"}
    profile = users.get_profile(db, "alice")
    assert profile.display_name == "Alice"
    assert profile.email == "alice@example.com"
    assert profile.tier == "free"


def test_register_again_keeps_usage(client, db):
    client.post("/api/auth/register", json={"idToken": "alice-token"})
    users.consume_message(db, "alice", 10)
    client.post("/api/auth/register", json={"idToken": "alice-token"})
    assert users.get_profile(db, "alice").messages_used_today == 1


def test_register_with_bad_token(client):
    assert client.post("/api/auth/register", json={"idToken": "forged"}).status_code == 401


def test_register_when_disabled(client, db):
    db[SETTINGS].insert_one({"_id": SYSTEM_SETTINGS_ID, "registration_enabled": False})
    r = client.post("/api/auth/register", json={"idToken": "alice-token"})
    assert r.status_code == 403
    assert users.get_profile(db, "alice") is None


def test_verify_token(client):
    r = client.post("/api/auth/verify", json={"idToken": "bob-token"})
    assert r.json() == {"valid": True, "uid": "bob", "email": "bob@example.com"}


def test_malformed_authorization_header(client):
    r = client.get("/api/user/profile", headers={"Authorization": "Token alice-token"})
    assert r.status_code == 401
