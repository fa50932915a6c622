import pytest
from conftest import auth
from pymongo.errors import PyMongoError

import conversations
import users
from chat import run_turn
from database import CONVERSATIONS, USAGE_LOGS, USERS
from persona import PUBLIC_MODEL_LABEL
from schemas import today


def chat(client, token="alice-token", content="Hi there", **extra):
    body = {"messages": [{"role": "user", "content": content}], **extra}
    return client.post("/api/chat", json=body, headers=auth(token))


def test_chat_requires_token(client):
    r = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
    assert r.status_code == 401


def test_chat_rejects_unknown_token(client):
    assert chat(client, token="nope").status_code == 401


def test_chat_without_profile_is_forbidden(client):
    r = chat(client)
    assert r.status_code == 403
    assert r.json()["detail"] == users.PROFILE_MISSING


def test_chat_under_quota_succeeds(client, db, llm, alice):
    r = chat(client, model="zlma-fast")
    assert r.status_code == 200
    data = r.json()
    assert data["message"] == {"role": "assistant", "content": "Hello from the model"}
    assert data["model"] == PUBLIC_MODEL_LABEL
    assert data["usage"]["totalTokens"] == 12
    assert db[CONVERSATIONS].count_documents({"_id": data["conversationId"]}) == 1

    model, messages = llm.calls[0]
    assert model == "openai/gpt-4o-mini"
    assert messages == [{"role": "user", "content": "Hi there"}]

    profile = users.get_profile(db, "alice")
    assert profile.messages_used_today == 1
    assert profile.total_messages == 1
    log = db[USAGE_LOGS].find_one({"user_id": "alice"})
    assert log["model"] == "openai/gpt-4o-mini"


def test_chat_at_quota_is_rejected(client, db, llm, alice):
    db[USERS].update_one({"_id": "alice"}, {"$set": {"messages_used_today": 10, "last_reset_date": today()}})
    r = chat(client)
    assert r.status_code == 429
    assert llm.calls == []


def test_banned_user_is_rejected_regardless_of_quota(client, db, llm, alice):
    users.set_ban(db, "alice", True)
    r = chat(client)
    assert r.status_code == 403
    assert llm.calls == []


def test_reply_is_sanitized(client, llm, alice):
    llm.reply = "I am ChatGPT, made by OpenAI."
    content = chat(client).json()["message"]["content"]
    assert "ChatGPT" not in content
    assert "OpenAI" not in content


def test_upstream_failure_releases_quota(client, db, llm, alice):
    llm.fail = True
    r = chat(client)
    assert r.status_code == 502
    assert users.get_profile(db, "alice").messages_used_today == 0
    assert db[CONVERSATIONS].count_documents({}) == 0


def test_storage_failure_releases_quota(db, llm, alice, monkeypatch):
    def failing_append(*args, **kwargs):
        raise PyMongoError("write failed")

    monkeypatch.setattr(conversations, "append_turn", failing_append)
    with pytest.raises(PyMongoError):
        run_turn(db, llm, "alice", [{"role": "user", "content": "Hi"}], "openai/gpt-4o-mini")
    assert users.get_profile(db, "alice").messages_used_today == 0
    assert db[USAGE_LOGS].count_documents({}) == 0


def test_follow_up_appends_to_conversation(client, db, alice):
    conversation_id = chat(client, content="First question").json()["conversationId"]
    r = chat(client, content="Second question", conversationId=conversation_id)
    assert r.json()["conversationId"] == conversation_id
    doc = db[CONVERSATIONS].find_one({"_id": conversation_id})
    assert doc["title"] == "First question"
    assert [m["role"] for m in doc["messages"]] == ["user", "assistant", "user", "assistant"]
    assert doc["messages"][2]["content"] == "Second question"


def test_cannot_write_into_someone_elses_conversation(client, db, llm, alice, bob):
    conversation_id = chat(client).json()["conversationId"]
    r = chat(client, token="bob-token", conversationId=conversation_id)
    assert r.status_code == 403
    assert users.get_profile(db, "bob").messages_used_today == 0
    assert len(llm.calls) == 1


def test_chat_needs_a_user_message(client, alice):
    r = client.post(
        "/api/chat",
        json={"messages": [{"role": "assistant", "content": "hello"}]},
        headers=auth("alice-token"),
    )
    assert r.status_code == 400


def test_models_list_hides_upstream_ids(client):
    r = client.get("/api/chat/models", headers=auth("alice-token"))
    assert r.status_code == 200
    ids = [m["id"] for m in r.json()]
    assert "zlma-pro" in ids
    assert all("/" not in i for i in ids)
