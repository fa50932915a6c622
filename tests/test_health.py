def test_root(client):
    assert client.get("/").json()["name"] == "Zlma AI API"


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"


def test_store_diagnostics(client, db):
    db["users"].insert_one({"_id": "x"})
    body = client.get("/test").json()
    assert body["connection_status"] == "Connected"
    assert "users" in body["collections"]
