# oficina/views/service_orders.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from oficina.auth.routes import contexto_atual
from oficina.core import services
from oficina.core.forms import SERVICE_ORDER_MAP, ServiceOrderForm, ServiceOrderUpdateForm
from oficina.core.serializers import service_order_json
from oficina.core.services import transaction

bp = Blueprint("service_orders", __name__)


@bp.get("/")
@login_required
def list_():
    ctx = contexto_atual()
    status = (request.args.get("status") or "").strip() or None
    return jsonify([service_order_json(so) for so in services.listar_ordens(ctx, status)])


@bp.get("/<int:service_order_id>")
@login_required
def get(service_order_id: int):
    ctx = contexto_atual()
    return jsonify(service_order_json(services.obter_ordem(ctx, service_order_id)))


@bp.post("/")
@login_required
def create():
    ctx = contexto_atual()
    form = ServiceOrderForm.load().validate_or_raise()
    with transaction(ctx.session):
        so = services.criar_ordem(
            ctx,
            client_id=form.clientId.data,
            problem_description=form.problemDescription.data,
            estimated_value=form.estimatedValue.data,
        )
    return jsonify(service_order_json(so)), 201


@bp.post("/<int:service_order_id>")
@login_required
def update(service_order_id: int):
    ctx = contexto_atual()
    form = ServiceOrderUpdateForm.load().validate_or_raise()
    with transaction(ctx.session):
        so = services.atualizar_ordem(ctx, service_order_id, form.changes(SERVICE_ORDER_MAP))
    return jsonify(service_order_json(so))
