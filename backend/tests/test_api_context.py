"""Tests for the context (memory) REST endpoints."""


def _add(client, content, scope_id=None):
    response = client.post("/api/context/", json={"content": content, "scope_id": scope_id})
    assert response.status_code == 200
    return response.json()["id"]


def test_list_context_empty(client):
    response = client.get("/api/context/")
    assert response.status_code == 200
    assert response.json() == []


def test_create_context_item(client):
    response = client.post("/api/context/", json={"content": "  Prefers metric units  "})
    assert response.status_code == 200
    assert response.json()["status"] == "saved"

    items = client.get("/api/context/").json()
    assert len(items) == 1
    assert items[0]["content"] == "Prefers metric units"
    assert items[0]["source"] == "manual"
    assert items[0]["scope_id"] is None


def test_create_duplicate_reuses_row(client):
    first = _add(client, "Lives in Lisbon")
    second = _add(client, "Lives in Lisbon")
    scoped = _add(client, "Lives in Lisbon", scope_id=3)

    assert first == second
    assert scoped != first
    assert len(client.get("/api/context/").json()) == 2


def test_create_empty_content_rejected(client):
    response = client.post("/api/context/", json={"content": "   "})
    assert response.status_code == 400


def test_general_and_scope_listing(client):
    _add(client, "Likes tea")
    _add(client, "Project uses Postgres", scope_id=7)
    _add(client, "Deadline is Friday", scope_id=8)

    general = client.get("/api/context/general").json()
    assert [i["content"] for i in general] == ["Likes tea"]

    scoped = client.get("/api/context/scope/7").json()
    assert [i["content"] for i in scoped] == ["Project uses Postgres"]


def test_replace_general_context(client):
    _add(client, "Old fact")
    _add(client, "Scoped fact", scope_id=1)

    response = client.put("/api/context/general", json={"facts": ["New fact", "  ", "Another fact"]})
    assert response.status_code == 200
    assert [i["content"] for i in response.json()] == ["New fact", "Another fact"]

    # Scoped facts are untouched
    assert [i["content"] for i in client.get("/api/context/scope/1").json()] == ["Scoped fact"]


def test_update_context_item(client):
    item_id = _add(client, "Works at Acme")

    response = client.patch(f"/api/context/{item_id}", json={"content": "Works at Globex", "scope_id": 2})
    assert response.status_code == 200
    data = response.json()
    assert data["content"] == "Works at Globex"
    assert data["scope_id"] == 2
    assert client.get("/api/context/general").json() == []


def test_update_context_item_validation(client):
    item_id = _add(client, "Something")

    assert client.patch(f"/api/context/{item_id}", json={"content": ""}).status_code == 400
    assert client.patch("/api/context/9999", json={"content": "x"}).status_code == 404


def test_delete_context_item(client):
    item_id = _add(client, "Temporary")

    response = client.delete(f"/api/context/{item_id}")
    assert response.status_code == 200
    assert client.get("/api/context/").json() == []

    assert client.delete(f"/api/context/{item_id}").status_code == 404
