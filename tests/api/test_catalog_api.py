from helpers import headers_for


def test_catalog_lists_every_node_kind(client, auth_headers):
    r = client.get("/api/v0/catalog/nodes", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    types = {item["type"] for item in body["items"]}
    assert types == {"inicio", "aprobacion", "condicion", "accion", "fin"}
    assert {"aprobar", "rechazar", "timeout", "si", "no", "siguiente"} <= set(body["edgeLabels"])
    assert ">=" in body["operators"]


def test_approval_ports_and_schema(client, auth_headers):
    items = client.get("/api/v0/catalog/nodes", headers=auth_headers).json()["items"]
    aprobacion = next(i for i in items if i["type"] == "aprobacion")
    ports = {p["name"]: p for p in aprobacion["ports"]["out"]}
    assert ports["aprobar"]["min"] == 1
    assert ports["timeout"]["min"] == 0
    assert aprobacion["autoAdvance"] is False
    assert "aprobador" in aprobacion["configSchema"]["properties"]


def test_catalog_requires_bearer(client):
    assert client.get("/api/v0/catalog/nodes").status_code == 401
    headers = headers_for("ana")
    headers.pop("X-Organization-Id")
    assert client.get("/api/v0/catalog/nodes", headers=headers).status_code == 401


def test_healthz_and_request_id(client):
    r = client.get("/api/v0/healthz", headers={"X-Request-Id": "req-123"})
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.headers["X-Request-Id"] == "req-123"
