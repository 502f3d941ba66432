# oficina/views/budgets.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from oficina.auth.routes import contexto_atual
from oficina.core import services
from oficina.core.forms import BudgetForm
from oficina.core.serializers import budget_json
from oficina.core.services import transaction

bp = Blueprint("budgets", __name__)


@bp.get("/")
@login_required
def list_():
    ctx = contexto_atual()
    return jsonify([budget_json(b) for b in services.listar_orcamentos(ctx)])


@bp.get("/<int:budget_id>")
@login_required
def get(budget_id: int):
    ctx = contexto_atual()
    return jsonify(budget_json(services.obter_orcamento(ctx, budget_id)))


@bp.post("/")
@login_required
def create():
    ctx = contexto_atual()
    form = BudgetForm.load().validate_or_raise()
    with transaction(ctx.session):
        b = services.criar_orcamento(
            ctx,
            client_id=form.clientId.data,
            items=form.items.data,
            notes=form.notes.data,
            service_order_id=form.serviceOrderId.data,
        )
    return jsonify(budget_json(b)), 201
