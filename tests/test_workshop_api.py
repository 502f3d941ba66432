"""Clientes, ordens de serviço, catálogo e orçamentos."""
import re

import pytest


def _client(c, name="Maria", phone="11988887777", **extra):
    resp = c.post("/api/clients/", json={"name": name, "phone": phone, **extra})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _order(c, client_id, **extra):
    resp = c.post("/api/service-orders/", json={"clientId": client_id, "problemDescription": "Motor falhando", **extra})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


# ----------------------------
# Clientes
# ----------------------------
def test_client_crud(dono):
    c = _client(dono, email="maria@cliente.com")
    assert dono.get(f"/api/clients/{c['id']}").get_json()["email"] == "maria@cliente.com"

    resp = dono.post(f"/api/clients/{c['id']}", json={"notes": "Prefere contato por WhatsApp"})
    assert resp.status_code == 200
    assert resp.get_json()["name"] == "Maria"
    assert resp.get_json()["notes"] == "Prefere contato por WhatsApp"

    assert dono.post(f"/api/clients/{c['id']}/delete").status_code == 200
    assert dono.get(f"/api/clients/{c['id']}").status_code == 404
    assert dono.get("/api/clients/").get_json() == []


def test_client_requires_name_and_phone(dono):
    resp = dono.post("/api/clients/", json={"name": "Sem telefone"})
    assert resp.status_code == 400
    assert "phone" in resp.get_json()["fields"]


def test_client_rejects_bad_email(dono):
    resp = dono.post("/api/clients/", json={"name": "X", "phone": "1", "email": "nao-e-email"})
    assert resp.status_code == 400
    assert "email" in resp.get_json()["fields"]


def test_clients_are_tenant_scoped(dono, dono_b):
    c = _client(dono)
    assert dono_b.get("/api/clients/").get_json() == []
    assert dono_b.get(f"/api/clients/{c['id']}").status_code == 404
    assert dono_b.post(f"/api/clients/{c['id']}", json={"name": "Invasor"}).status_code == 404
    assert dono.get(f"/api/clients/{c['id']}").get_json()["name"] == "Maria"


def test_plain_member_can_use_workshop_features(client_as):
    mecanico = client_as("mecanico@oficina.com")
    c = _client(mecanico)
    assert _order(mecanico, c["id"])["status"] == "OPEN"


def test_workshop_features_require_active_org(client_as):
    avulso = client_as("avulso@oficina.com")
    resp = avulso.get("/api/clients/")
    assert resp.status_code == 403
    assert "organização ativa" in resp.get_json()["error"]


# ----------------------------
# Ordens de serviço
# ----------------------------
def test_service_order_status_flow(dono):
    c = _client(dono)
    so = _order(dono, c["id"], estimatedValue="350,50")
    assert so["estimatedValue"] == "350.50"
    assert so["client"]["name"] == "Maria"

    resp = dono.post(f"/api/service-orders/{so['id']}", json={"status": "FINISHED"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Não é possível mudar o status de OPEN para FINISHED."

    resp = dono.post(f"/api/service-orders/{so['id']}", json={"status": "IN_PROGRESS", "servicesPerformed": "Troca de velas"})
    assert resp.status_code == 200
    assert resp.get_json()["closedAt"] is None

    resp = dono.post(f"/api/service-orders/{so['id']}", json={"status": "FINISHED", "finalValue": 400})
    body = resp.get_json()
    assert body["status"] == "FINISHED"
    assert body["finalValue"] == "400.00"
    assert body["closedAt"] is not None

    resp = dono.post(f"/api/service-orders/{so['id']}", json={"status": "OPEN"})
    assert resp.status_code == 400


def test_service_order_list_filters_by_status(dono):
    c = _client(dono)
    a = _order(dono, c["id"])
    b = _order(dono, c["id"])
    dono.post(f"/api/service-orders/{b['id']}", json={"status": "IN_PROGRESS"})

    open_ids = [o["id"] for o in dono.get("/api/service-orders/?status=OPEN").get_json()]
    assert open_ids == [a["id"]]
    assert dono.get("/api/service-orders/?status=BROKEN").status_code == 400


def test_service_order_needs_client_in_tenant(dono, dono_b):
    c = _client(dono)
    resp = dono_b.post("/api/service-orders/", json={"clientId": c["id"], "problemDescription": "x"})
    assert resp.status_code == 404


def test_service_order_values_must_be_positive(dono):
    c = _client(dono)
    resp = dono.post("/api/service-orders/", json={"clientId": c["id"], "problemDescription": "x", "estimatedValue": "0"})
    assert resp.status_code == 400


# ----------------------------
# Catálogo
# ----------------------------
def test_catalog_active_and_all(dono):
    a = dono.post("/api/service-items/", json={"name": "Alinhamento", "defaultPrice": "80.00"}).get_json()
    b = dono.post("/api/service-items/", json={"name": "Balanceamento", "defaultPrice": 60}).get_json()
    assert a["defaultPrice"] == "80.00"

    resp = dono.post(f"/api/service-items/{b['id']}", json={"active": False})
    assert resp.status_code == 200
    assert resp.get_json()["active"] is False
    assert resp.get_json()["name"] == "Balanceamento"

    assert [i["id"] for i in dono.get("/api/service-items/").get_json()] == [a["id"]]
    assert {i["id"] for i in dono.get("/api/service-items/all").get_json()} == {a["id"], b["id"]}

    assert dono.post(f"/api/service-items/{a['id']}/delete").status_code == 200
    assert dono.get(f"/api/service-items/{a['id']}").status_code == 404


def test_catalog_rejects_negative_price(dono):
    resp = dono.post("/api/service-items/", json={"name": "X", "defaultPrice": "-1"})
    assert resp.status_code == 400


# ----------------------------
# Orçamentos
# ----------------------------
def test_budget_totals_and_number(dono):
    c = _client(dono)
    item = dono.post("/api/service-items/", json={"name": "Óleo 5W30", "defaultPrice": "45.90"}).get_json()
    resp = dono.post("/api/budgets/", json={
        "clientId": c["id"],
        "notes": "Validade de 10 dias",
        "items": [
            {"serviceItemId": item["id"], "description": "Óleo 5W30", "quantity": 4, "unitPrice": "45.90"},
            {"description": "Mão de obra", "quantity": 1, "unitPrice": 120},
        ],
    })
    assert resp.status_code == 201, resp.get_json()
    b = resp.get_json()
    assert re.match(r"^ORC-\d{8}-0001$", b["number"])
    assert [i["totalPrice"] for i in b["items"]] == ["183.60", "120.00"]
    assert b["totalAmount"] == "303.60"

    second = dono.post("/api/budgets/", json={
        "clientId": c["id"], "items": [{"description": "Diagnóstico", "quantity": 1, "unitPrice": "50"}],
    }).get_json()
    assert second["number"].endswith("-0002")

    got = dono.get(f"/api/budgets/{b['id']}").get_json()
    assert [i["description"] for i in got["items"]] == ["Óleo 5W30", "Mão de obra"]
    assert len(dono.get("/api/budgets/").get_json()) == 2


@pytest.mark.parametrize("items", [
    [],
    [{"description": "x", "quantity": 0, "unitPrice": "1"}],
    [{"description": "x", "quantity": 1}],
    [{"description": "", "quantity": 1, "unitPrice": "1"}],
])
def test_budget_rejects_bad_items(dono, items):
    c = _client(dono)
    resp = dono.post("/api/budgets/", json={"clientId": c["id"], "items": items})
    assert resp.status_code == 400


def test_budget_references_must_be_in_tenant(dono, dono_b):
    c_a = _client(dono)
    item_a = dono.post("/api/service-items/", json={"name": "Filtro", "defaultPrice": "30"}).get_json()
    c_b = _client(dono_b)

    resp = dono_b.post("/api/budgets/", json={"clientId": c_a["id"], "items": [{"description": "x", "quantity": 1, "unitPrice": "1"}]})
    assert resp.status_code == 404
    resp = dono_b.post("/api/budgets/", json={
        "clientId": c_b["id"],
        "items": [{"serviceItemId": item_a["id"], "description": "Filtro", "quantity": 1, "unitPrice": "30"}],
    })
    assert resp.status_code == 404
