from helpers import headers_for, simple_graph

BASE = "/api/v0/definitions"


def _create(client, headers, nodes=None, edges=None, **extra):
    if nodes is None:
        nodes, edges = simple_graph()
    body = {"entity_type": "orden_compra", "name": "Compras", "nodes": nodes, "edges": edges, **extra}
    r = client.post(BASE, json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_draft_publish_and_new_version(client, auth_headers):
    draft = _create(client, auth_headers)
    assert draft["status"] == "draft" and draft["version"] == 1

    r = client.put(f"{BASE}/{draft['id']}", json={"description": "Órdenes de compra"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["description"] == "Órdenes de compra"

    r = client.post(f"{BASE}/{draft['id']}:validate", headers=auth_headers)
    assert r.status_code == 200 and r.json()["valid"] is True

    r = client.post(f"{BASE}/{draft['id']}:publish", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "published"
    assert len(r.json()["checksum"]) == 64

    r = client.post(f"{BASE}/{draft['id']}:new-version", headers=auth_headers)
    assert r.status_code == 201
    assert r.json()["version"] == 2

    listing = client.get(BASE, params={"status": "published"}, headers=auth_headers).json()
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == draft["id"]


def test_published_definition_is_immutable(client, auth_headers):
    draft = _create(client, auth_headers)
    client.post(f"{BASE}/{draft['id']}:publish", headers=auth_headers)
    r = client.put(f"{BASE}/{draft['id']}", json={"name": "otro"}, headers=auth_headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "STATE"


def test_publish_invalid_graph_returns_violations(client, auth_headers):
    nodes, edges = simple_graph()
    draft = _create(client, auth_headers, nodes, edges[:1])
    r = client.post(f"{BASE}/{draft['id']}:publish", headers=auth_headers)
    assert r.status_code == 422
    error = r.json()["error"]
    assert error["code"] == "VALIDATION"
    assert any(d["code"] == "handle_faltante" for d in error["details"])


def test_other_organization_gets_404(client, auth_headers):
    draft = _create(client, auth_headers)
    r = client.get(f"{BASE}/{draft['id']}", headers=headers_for("solicitante", "org_2"))
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_bad_payload_is_rejected_by_fastapi(client, auth_headers):
    r = client.post(BASE, json={"name": "sin tipo"}, headers=auth_headers)
    assert r.status_code == 422


def test_delete_draft_then_published_is_protected(client, auth_headers):
    draft = _create(client, auth_headers)
    r = client.delete(f"{BASE}/{draft['id']}", headers=auth_headers)
    assert r.status_code == 204
    assert client.get(f"{BASE}/{draft['id']}", headers=auth_headers).status_code == 404

    other = _create(client, auth_headers)
    client.post(f"{BASE}/{other['id']}:publish", headers=auth_headers)
    r = client.delete(f"{BASE}/{other['id']}", headers=auth_headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "STATE"
