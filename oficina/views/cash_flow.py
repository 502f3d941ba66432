# oficina/views/cash_flow.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from oficina.auth.routes import contexto_atual
from oficina.core import cashflow
from oficina.core.forms import (
    CashFlowCreateForm, CashFlowPaidAtForm, CashFlowQueryForm, CashFlowSummaryForm,
)
from oficina.core.permissions import require_cash_flow_access
from oficina.core.serializers import cash_flow_json
from oficina.core.services import transaction

bp = Blueprint("cash_flow", __name__)


def _contexto_financeiro():
    # acesso antes da validação: sem permissão é 403 mesmo com corpo inválido
    return require_cash_flow_access(contexto_atual())


# ----------------------------
# Consultas
# ----------------------------
@bp.get("/")
@login_required
def list_():
    ctx = _contexto_financeiro()
    form = CashFlowQueryForm.load().validate_or_raise()
    items = cashflow.listar_lancamentos(
        ctx,
        tab=form.tab.data,
        date_from=form.dateFrom.data,
        date_to=form.dateTo.data,
        client_id=form.clientId.data,
    )
    return jsonify([cash_flow_json(cf) for cf in items])


@bp.get("/summary/month")
@login_required
def summary_by_month():
    ctx = _contexto_financeiro()
    form = CashFlowSummaryForm.load().validate_or_raise()
    result = cashflow.resumo_por_mes(ctx, form.dateFrom.data, form.dateTo.data, form.mode.data)
    return jsonify(result.to_dict())


@bp.get("/summary/day")
@login_required
def summary_by_day():
    ctx = _contexto_financeiro()
    form = CashFlowSummaryForm.load().validate_or_raise()
    result = cashflow.resumo_por_dia(ctx, form.dateFrom.data, form.dateTo.data, form.mode.data)
    return jsonify(result.to_dict())


# ----------------------------
# Escrita
# ----------------------------
@bp.post("/")
@login_required
def create():
    ctx = _contexto_financeiro()
    form = CashFlowCreateForm.load().validate_or_raise()
    with transaction(ctx.session):
        entries = cashflow.criar_lancamento(
            ctx,
            type=form.type.data,
            description=form.description.data,
            value=form.value.data,
            date=form.date.data,
            service_order_id=form.serviceOrderId.data,
            installments_count=form.installmentsCount.data,
            first_due_date=form.firstDueDate.data,
        )
    first = entries[0]
    return jsonify({
        **cash_flow_json(first),
        "installments": [cash_flow_json(e) for e in entries],
    }), 201


@bp.post("/<int:cash_flow_id>/paid-at")
@login_required
def set_paid_at(cash_flow_id: int):
    ctx = _contexto_financeiro()
    form = CashFlowPaidAtForm.load().validate_or_raise()
    with transaction(ctx.session):
        entry = cashflow.definir_pagamento(ctx, cash_flow_id, form.paidAt.data)
    return jsonify(cash_flow_json(entry))


@bp.post("/<int:cash_flow_id>/delete")
@login_required
def delete(cash_flow_id: int):
    ctx = _contexto_financeiro()
    with transaction(ctx.session):
        cashflow.excluir_lancamento(ctx, cash_flow_id)
    return jsonify(ok=True)
