from conftest import auth


def start(client, token="alice-token", content="Tell me a joke"):
    r = client.post("/api/chat", json={"messages": [{"role": "user", "content": content}]}, headers=auth(token))
    assert r.status_code == 200
    return r.json()["conversationId"]


def test_list_and_get_own_conversation(client, alice):
    conversation_id = start(client)
    listing = client.get("/api/chat/conversations", headers=auth("alice-token")).json()
    assert [c["id"] for c in listing] == [conversation_id]
    assert listing[0]["messageCount"] == 2
    assert listing[0]["lastMessage"] == "Hello from the model"

    conversation = client.get(f"/api/chat/conversations/{conversation_id}", headers=auth("alice-token")).json()
    assert conversation["title"] == "Tell me a joke"
    assert conversation["model"] == "zlma-ai-v1"


def test_title_is_truncated(client, alice):
    conversation_id = start(client, content="x" * 80)
    conversation = client.get(f"/api/chat/conversations/{conversation_id}", headers=auth("alice-token")).json()
    assert conversation["title"] == "x" * 50


def test_other_users_conversation_is_forbidden(client, alice, bob):
    conversation_id = start(client)
    assert client.get(f"/api/chat/conversations/{conversation_id}", headers=auth("bob-token")).status_code == 403
    assert client.delete(f"/api/chat/conversations/{conversation_id}", headers=auth("bob-token")).status_code == 403


def test_missing_conversation_is_not_found(client, alice):
    assert client.get("/api/chat/conversations/nope", headers=auth("alice-token")).status_code == 404


def test_delete_removes_from_listing(client, alice):
    conversation_id = start(client)
    r = client.delete(f"/api/chat/conversations/{conversation_id}", headers=auth("alice-token"))
    assert r.json() == {"deleted": True}
    assert client.get("/api/chat/conversations", headers=auth("alice-token")).json() == []
    assert client.get(f"/api/chat/conversations/{conversation_id}", headers=auth("alice-token")).status_code == 404
