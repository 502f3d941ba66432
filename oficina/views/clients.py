# oficina/views/clients.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from oficina.auth.routes import contexto_atual
from oficina.core import services
from oficina.core.forms import CLIENT_MAP, ClientForm, ClientUpdateForm
from oficina.core.serializers import client_json
from oficina.core.services import transaction

bp = Blueprint("clients", __name__)


@bp.get("/")
@login_required
def list_():
    ctx = contexto_atual()
    return jsonify([client_json(c) for c in services.listar_clientes(ctx)])


@bp.get("/<int:client_id>")
@login_required
def get(client_id: int):
    ctx = contexto_atual()
    return jsonify(client_json(services.obter_cliente(ctx, client_id)))


@bp.post("/")
@login_required
def create():
    ctx = contexto_atual()
    form = ClientForm.load().validate_or_raise()
    with transaction(ctx.session):
        c = services.criar_cliente(ctx, form.changes(CLIENT_MAP))
    return jsonify(client_json(c)), 201


@bp.post("/<int:client_id>")
@login_required
def update(client_id: int):
    ctx = contexto_atual()
    form = ClientUpdateForm.load().validate_or_raise()
    with transaction(ctx.session):
        c = services.atualizar_cliente(ctx, client_id, form.changes(CLIENT_MAP))
    return jsonify(client_json(c))


@bp.post("/<int:client_id>/delete")
@login_required
def delete(client_id: int):
    ctx = contexto_atual()
    with transaction(ctx.session):
        services.excluir_cliente(ctx, client_id)
    return jsonify(ok=True)
