# oficina/views/service_items.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from oficina.auth.routes import contexto_atual
from oficina.core import services
from oficina.core.forms import SERVICE_ITEM_MAP, ServiceItemForm, ServiceItemUpdateForm
from oficina.core.serializers import service_item_json
from oficina.core.services import transaction

bp = Blueprint("service_items", __name__)


@bp.get("/")
@login_required
def list_():
    ctx = contexto_atual()
    return jsonify([service_item_json(i) for i in services.listar_itens(ctx)])


@bp.get("/all")
@login_required
def list_all():
    ctx = contexto_atual()
    return jsonify([service_item_json(i) for i in services.listar_itens(ctx, incluir_inativos=True)])


@bp.get("/<int:item_id>")
@login_required
def get(item_id: int):
    ctx = contexto_atual()
    return jsonify(service_item_json(services.obter_item(ctx, item_id)))


@bp.post("/")
@login_required
def create():
    ctx = contexto_atual()
    form = ServiceItemForm.load().validate_or_raise()
    with transaction(ctx.session):
        item = services.criar_item(
            ctx,
            name=form.name.data,
            default_price=form.defaultPrice.data,
            description=form.description.data,
        )
    return jsonify(service_item_json(item)), 201


@bp.post("/<int:item_id>")
@login_required
def update(item_id: int):
    ctx = contexto_atual()
    form = ServiceItemUpdateForm.load().validate_or_raise()
    with transaction(ctx.session):
        item = services.atualizar_item(ctx, item_id, form.changes(SERVICE_ITEM_MAP))
    return jsonify(service_item_json(item))


@bp.post("/<int:item_id>/delete")
@login_required
def delete(item_id: int):
    ctx = contexto_atual()
    with transaction(ctx.session):
        services.excluir_item(ctx, item_id)
    return jsonify(ok=True)
