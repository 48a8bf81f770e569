from __future__ import annotations

from sqlalchemy import select

from apps.safety_backend.models import AreaRow
from common_core.db import SafetySessionLocal


def _post(client, **body):
    return client.post("/api/areas", json=body)


def test_get_empty_list(client):
    r = client.get("/api/areas")
    assert r.status_code == 200
    assert r.json() == []


def test_create_echoes_fields(client):
    r = _post(client, area_id="A", name="Plant", machines=["Boiler"], parentId=None)
    assert r.status_code == 201
    body = r.json()
    assert body["message"] == "Area created successfully."
    assert body["area_id"] == "A"
    assert body["machines"] == ["Boiler"]
    assert body["parentId"] is None
    assert "X-Request-Id" in r.headers

    r = _post(client, area_id="B", name="Line1", parentId="A")
    assert r.status_code == 201

    rows = client.get("/api/areas").json()
    assert {row["area_id"]: row["parentId"] for row in rows} == {"A": None, "B": "A"}


def test_create_errors(client):
    assert _post(client, area_id="A", name="Plant").status_code == 201
    r = _post(client, area_id="A", name="Plant")
    assert r.status_code == 409
    assert r.json()["detail"] == "area_id_exists"

    r = _post(client, name="Ghost", parentId="missing")
    assert r.status_code == 404
    assert r.json()["detail"] == "parent_not_found"

    r = _post(client, name="  ")
    assert r.status_code == 400
    assert r.json()["detail"] == "name_required"


def test_create_rejects_id_taken_by_tree_route(client):
    r = _post(client, area_id="tree", name="Plant")
    assert r.status_code == 400
    assert r.json()["detail"] == "area_id_reserved"
    assert client.get("/api/areas").json() == []


def test_update_and_reparent_rejection(client):
    _post(client, area_id="A", name="Plant")
    _post(client, area_id="W", name="Warehouse")
    _post(client, area_id="B", name="Line1", parentId="A")

    r = client.put("/api/areas/B", json={"name": "Line 1", "machines": ["Press"]})
    assert r.status_code == 200
    assert r.json() == {"area_id": "B", "name": "Line 1", "machines": ["Press"], "parentId": "A"}

    r = client.put("/api/areas/B", json={"name": "Line 1", "parentId": "W"})
    assert r.status_code == 400
    assert r.json()["detail"] == "reparent_not_supported"

    assert client.put("/api/areas/nope", json={"name": "x"}).status_code == 404


def test_delete_cascades(client):
    _post(client, area_id="A", name="Plant")
    _post(client, area_id="B", name="Line1", parentId="A")
    _post(client, area_id="C", name="Station1", parentId="B")
    _post(client, area_id="W", name="Warehouse")

    r = client.delete("/api/areas/A")
    assert r.status_code == 200
    assert sorted(r.json()["deleted"]) == ["A", "B", "C"]

    db = SafetySessionLocal()
    try:
        assert db.execute(select(AreaRow.area_id)).scalars().all() == ["W"]
    finally:
        db.close()

    r = client.delete("/api/areas/A")
    assert r.status_code == 200
    assert r.json()["deleted"] == []
