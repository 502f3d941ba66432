from types import SimpleNamespace

import pytest

from oficina import create_app
from oficina.extensions import db
from oficina.core.models import Member, MemberRole, Organization, User

SENHA = "senha123"


def _user(name, email, role="user"):
    u = User(name=name, email=email, role=role)
    u.set_password(SENHA)
    db.session.add(u)
    db.session.flush()
    return u


def _member(user, org, role="member", extras=()):
    m = Member(user_id=user.id, organization_id=org.id, role=role)
    for r in extras:
        m.extra_roles.append(MemberRole(role=r))
    db.session.add(m)
    db.session.flush()
    return m


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def seed(app):
    """Duas oficinas e um usuário para cada combinação de papel relevante."""
    with app.app_context():
        org_a = Organization(name="Oficina A", slug="oficina-a")
        org_b = Organization(name="Oficina B", slug="oficina-b")
        db.session.add_all([org_a, org_b])
        db.session.flush()

        admin = _user("Admin", "admin@oficina.com", role="admin")
        dono = _user("Dono A", "dono@oficina.com")
        gestor = _user("Gestor A", "gestor@oficina.com")
        financeiro = _user("Financeiro A", "financeiro@oficina.com")
        mecanico = _user("Mecânico A", "mecanico@oficina.com")
        dono_b = _user("Dono B", "dono.b@oficina.com")
        avulso = _user("Sem Oficina", "avulso@oficina.com")

        _member(admin, org_a, "admin")
        _member(dono, org_a, "owner")
        _member(gestor, org_a, "admin")
        fin_member = _member(financeiro, org_a, "member", extras=("financeiro",))
        mec_member = _member(mecanico, org_a, "member")
        _member(dono_b, org_b, "owner")
        db.session.commit()

        return SimpleNamespace(
            org_a=org_a.id,
            org_b=org_b.id,
            admin=admin.id,
            dono=dono.id,
            gestor=gestor.id,
            financeiro=financeiro.id,
            mecanico=mecanico.id,
            dono_b=dono_b.id,
            avulso=avulso.id,
            fin_member=fin_member.id,
            mec_member=mec_member.id,
        )


def login(client, email, password=SENHA):
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def client_as(app, seed):
    """Fábrica de test clients já logados: client_as("dono@oficina.com")."""
    def _make(email):
        return login(app.test_client(), email)
    return _make


@pytest.fixture
def dono(client_as):
    return client_as("dono@oficina.com")


@pytest.fixture
def dono_b(client_as):
    return client_as("dono.b@oficina.com")


@pytest.fixture
def finished_order(dono):
    """Cliente + OS finalizada na Oficina A; devolve (client_id, service_order_id)."""
    c = dono.post("/api/clients/", json={"name": "João", "phone": "11999990000"}).get_json()
    so = dono.post("/api/service-orders/", json={"clientId": c["id"], "problemDescription": "Barulho no freio"}).get_json()
    dono.post(f"/api/service-orders/{so['id']}", json={"status": "IN_PROGRESS"})
    resp = dono.post(f"/api/service-orders/{so['id']}", json={"status": "FINISHED", "finalValue": "450,00"})
    assert resp.status_code == 200, resp.get_json()
    return c["id"], so["id"]
