# oficina/core/cashflow.py
"""
Fluxo de caixa: parcelamento, abas de consulta e tabela pivot.

Todas as operações recebem um :class:`CallerContext` e checam a permissão do
financeiro antes de qualquer leitura ou escrita. Os lançamentos são sempre
filtrados pela organização ativa do chamador.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from flask import current_app

from oficina.core import dates
from oficina.core.context import CallerContext
from oficina.core.errors import BusinessRuleError, NotFoundError, ValidationError
from oficina.core.models import CASH_FLOW_TYPES, CENT, CashFlow, ServiceOrder, _as_money
from oficina.core.permissions import require_cash_flow_access
from oficina.core.services import FINISHED, get_scoped, to_money

logger = logging.getLogger(__name__)

MAX_INSTALLMENTS = 24
MAX_SUMMARY_MONTHS = 120
MAX_SUMMARY_DAYS = 366

ZERO = Decimal("0.00")


# =============================================================================
# Abas de consulta
# =============================================================================

class CashFlowTab(str, Enum):
    ALL = "all"
    IN = "IN"
    OUT = "OUT"
    RECEIVABLE = "receivable"
    PAYABLE = "payable"
    RECEIVED = "received"
    PAID = "paid"
    PENDING = "pending"

    @classmethod
    def parse(cls, value) -> "CashFlowTab":
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.ALL
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("Aba inválida.", {"tab": "Aba inválida"})


@dataclass(frozen=True)
class TabFilter:
    type: Optional[str] = None
    paid: Optional[bool] = None     # True: paid_at preenchido, False: vazio, None: tanto faz
    date_field: str = "date"        # coluna usada pelo período e pela ordenação
    min_date: Optional[date] = None

    @property
    def sort_desc_by_paid_at(self) -> bool:
        return self.date_field == "paid_at"


# tipo, situação do pagamento, coluna de data
_TAB_RULES: Dict[CashFlowTab, Tuple[Optional[str], Optional[bool], str]] = {
    CashFlowTab.ALL: (None, None, "date"),
    CashFlowTab.IN: ("IN", None, "date"),
    CashFlowTab.OUT: ("OUT", None, "date"),
    CashFlowTab.RECEIVABLE: ("IN", False, "date"),
    CashFlowTab.PAYABLE: ("OUT", False, "date"),
    CashFlowTab.RECEIVED: ("IN", True, "paid_at"),
    CashFlowTab.PAID: ("OUT", True, "paid_at"),
    CashFlowTab.PENDING: (None, None, "date"),
}


def tab_filter(tab, today: date) -> TabFilter:
    tab = CashFlowTab.parse(tab)
    type_, paid, date_field = _TAB_RULES[tab]
    min_date = today if tab is CashFlowTab.PENDING else None
    return TabFilter(type=type_, paid=paid, date_field=date_field, min_date=min_date)


def listar_lancamentos(
    ctx: CallerContext,
    tab="all",
    date_from=None,
    date_to=None,
    client_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[CashFlow]:
    require_cash_flow_access(ctx)
    org_id = ctx.require_org()

    f = tab_filter(tab, today or date.today())
    d_from = dates.parse_optional_day(date_from, "dateFrom")
    d_to = dates.parse_optional_day(date_to, "dateTo")
    if d_from and d_to and d_from > d_to:
        raise ValidationError("A data inicial deve ser anterior à final.", {"dateFrom": "Período inválido"})

    q = ctx.session.query(CashFlow).filter(
        CashFlow.organization_id == org_id,
        CashFlow.deleted_at.is_(None),
    )
    if f.type:
        q = q.filter(CashFlow.type == f.type)
    if f.paid is True:
        q = q.filter(CashFlow.paid_at.isnot(None))
    elif f.paid is False:
        q = q.filter(CashFlow.paid_at.is_(None))
    if f.min_date:
        q = q.filter(CashFlow.date >= f.min_date)

    # Período explícito só estreita o que a aba já filtra
    col = getattr(CashFlow, f.date_field)
    if d_from:
        q = q.filter(col >= d_from)
    if d_to:
        q = q.filter(col <= d_to)

    if client_id:
        q = q.join(ServiceOrder, CashFlow.service_order_id == ServiceOrder.id).filter(
            ServiceOrder.client_id == client_id,
            ServiceOrder.organization_id == org_id,
        )

    if f.sort_desc_by_paid_at:
        q = q.order_by(CashFlow.paid_at.desc().nulls_last(), CashFlow.id.desc())
    else:
        q = q.order_by(CashFlow.date.desc(), CashFlow.id.desc())
    return q.all()


def obter_lancamento(ctx: CallerContext, cash_flow_id: int) -> CashFlow:
    return get_scoped(ctx, CashFlow, cash_flow_id, "Lançamento não encontrado.")


def definir_pagamento(ctx: CallerContext, cash_flow_id: int, paid_at) -> CashFlow:
    """Marca (YYYY-MM-DD) ou desmarca ("") a data de pagamento de um lançamento."""
    require_cash_flow_access(ctx)
    novo = dates.parse_optional_day(paid_at, "paidAt")
    entry = obter_lancamento(ctx, cash_flow_id)
    entry.paid_at = novo
    logger.info("Pagamento do lançamento %s (org=%s) definido para %s", entry.id, entry.organization_id, novo)
    return entry


def excluir_lancamento(ctx: CallerContext, cash_flow_id: int) -> CashFlow:
    require_cash_flow_access(ctx)
    entry = obter_lancamento(ctx, cash_flow_id)
    entry.deleted_at = datetime.utcnow()
    logger.info("Lançamento %s (org=%s) excluído", entry.id, entry.organization_id)
    return entry


# =============================================================================
# Parcelamento
# =============================================================================

def split_amount(total, count: int, exact: bool = False) -> List[Decimal]:
    """
    Divide o total em ``count`` parcelas.

    Padrão: todas as parcelas valem round(total / count, 2), e a soma pode
    diferir do total em alguns centavos. Com ``exact=True`` as primeiras
    parcelas são truncadas no centavo e a última fica com o restante, de modo
    que a soma bate exatamente com o total.
    """
    total = _as_money(total)
    if count < 1:
        raise ValidationError("Quantidade de parcelas inválida.", {"installmentsCount": "Mínimo de 1 parcela"})
    if not exact:
        per = (total / count).quantize(CENT, rounding=ROUND_HALF_UP)
        return [per] * count
    base = ((total * 100) / count).to_integral_value(rounding=ROUND_FLOOR) / 100
    base = base.quantize(CENT)
    last = total - base * (count - 1)
    return [base] * (count - 1) + [last]


def build_installments(description: str, amounts: Sequence[Decimal], first_due: date) -> List[dict]:
    n = len(amounts)
    if n == 1:
        return [{
            "description": description,
            "amount": amounts[0],
            "date": first_due,
            "cash_flow_group_id": None,
            "installment_index": None,
        }]
    group_id = str(uuid.uuid4())
    rows = []
    for i, amount in enumerate(amounts, start=1):
        rows.append({
            "description": f"{description} ({i}/{n})",
            "amount": amount,
            "date": dates.add_months(first_due, i - 1, "firstDueDate"),
            "cash_flow_group_id": group_id,
            "installment_index": i,
        })
    return rows


def _validar_contagem(installments_count) -> int:
    ok = isinstance(installments_count, int) and not isinstance(installments_count, bool)
    if not ok or not 1 <= installments_count <= MAX_INSTALLMENTS:
        raise ValidationError(
            f"Número de parcelas deve estar entre 1 e {MAX_INSTALLMENTS}.",
            {"installmentsCount": f"Entre 1 e {MAX_INSTALLMENTS}"},
        )
    return installments_count


def criar_lancamento(
    ctx: CallerContext,
    type: str,
    description: str,
    value,
    date=None,
    service_order_id: Optional[int] = None,
    installments_count: int = 1,
    first_due_date=None,
    exact: Optional[bool] = None,
    today=None,
) -> List[CashFlow]:
    """
    Cria um lançamento, ou N parcelas mensais quando ``installments_count > 1``.

    As linhas só são adicionadas à sessão depois de todas as validações; o
    chamador grava tudo num único commit (ver ``services.transaction``).
    Retorna os lançamentos criados, o primeiro é o representativo.
    """
    require_cash_flow_access(ctx)
    org_id = ctx.require_org()

    if type not in CASH_FLOW_TYPES:
        raise ValidationError("Tipo inválido, use IN ou OUT.", {"type": "Tipo inválido"})
    description = (description or "").strip()
    if not description:
        raise ValidationError("Descrição é obrigatória", {"description": "Descrição é obrigatória"})
    total = to_money(value, "value", positive=True)
    n = _validar_contagem(installments_count)

    single_date = dates.parse_optional_day(date, "date")
    first_due = dates.parse_optional_day(first_due_date, "firstDueDate")
    today = today or _today()
    if n == 1:
        start = single_date or first_due or today
    else:
        start = first_due or single_date or today

    if service_order_id:
        order = ctx.session.query(ServiceOrder).filter(
            ServiceOrder.id == service_order_id,
            ServiceOrder.organization_id == org_id,
            ServiceOrder.deleted_at.is_(None),
        ).first()
        if order is None:
            raise NotFoundError("Ordem de serviço não encontrada.")
        if order.status != FINISHED:
            raise BusinessRuleError("Só é possível vincular um lançamento a uma OS finalizada.")

    if exact is None:
        exact = bool(current_app.config.get("CASH_FLOW_EXACT_INSTALLMENTS", False))
    amounts = split_amount(total, n, exact=exact)
    if min(amounts) <= 0:
        raise ValidationError("Valor de cada parcela deve ser de pelo menos R$ 0,01.", {"value": "Valor muito baixo para o parcelamento"})

    entries = [
        CashFlow(organization_id=org_id, type=type, service_order_id=service_order_id or None, **row)
        for row in build_installments(description, amounts, start)
    ]
    ctx.session.add_all(entries)
    if n > 1:
        logger.info("Parcelamento criado: org=%s grupo=%s parcelas=%s total=%s",
                    org_id, entries[0].cash_flow_group_id, n, total)
    return entries


def _today() -> date:
    return date.today()


# =============================================================================
# Pivot (previsão x realizado)
# =============================================================================

class PivotMode(str, Enum):
    PREVISAO = "previsao"
    REALIZADO = "realizado"

    @classmethod
    def parse(cls, value) -> "PivotMode":
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.PREVISAO
        try:
            return cls(value)
        except ValueError:
            raise ValidationError("Modo inválido, use previsao ou realizado.", {"mode": "Modo inválido"})

    @property
    def date_field(self) -> str:
        return "date" if self is PivotMode.PREVISAO else "paid_at"


PIVOT_ROWS = ("recebimentos", "pagamentos", "geracao_caixa", "saldo_inicial", "saldo_final")


@dataclass
class PivotResult:
    periods: List[str]
    recebimentos: List[Decimal] = field(default_factory=list)
    pagamentos: List[Decimal] = field(default_factory=list)
    geracao_caixa: List[Decimal] = field(default_factory=list)
    saldo_inicial: List[Decimal] = field(default_factory=list)
    saldo_final: List[Decimal] = field(default_factory=list)

    def to_dict(self) -> dict:
        rows = {name: [str(v) for v in getattr(self, name)] for name in PIVOT_ROWS}
        by_period = {
            p: {name: str(getattr(self, name)[i]) for name in PIVOT_ROWS}
            for i, p in enumerate(self.periods)
        }
        return {"periods": list(self.periods), "rows": rows, "byPeriod": by_period}


def pivot_scan(periods: Sequence[str], totals: Dict[str, Tuple[Decimal, Decimal]],
               opening: Decimal = ZERO) -> PivotResult:
    """
    Varredura da esquerda para a direita: o saldo final de um período é o
    saldo inicial do seguinte. Período sem movimento entra zerado.
    """
    out = PivotResult(periods=list(periods))
    saldo = _as_money(opening)
    for p in periods:
        rec, pag = totals.get(p, (ZERO, ZERO))
        rec, pag = _as_money(rec), _as_money(pag)
        geracao = rec - pag
        out.recebimentos.append(rec)
        out.pagamentos.append(pag)
        out.geracao_caixa.append(geracao)
        out.saldo_inicial.append(saldo)
        saldo = saldo + geracao
        out.saldo_final.append(saldo)
    return out


def _totais_por_periodo(ctx: CallerContext, start: date, end: date, mode: PivotMode,
                        key: Callable[[date], str]) -> Dict[str, Tuple[Decimal, Decimal]]:
    col = getattr(CashFlow, mode.date_field)
    rows = ctx.session.query(col, CashFlow.type, CashFlow.amount).filter(
        CashFlow.organization_id == ctx.organization_id,
        CashFlow.deleted_at.is_(None),
        col.isnot(None),
        col >= start,
        col <= end,
    ).all()

    buckets: Dict[str, List[Decimal]] = {}
    for ref, type_, amount in rows:
        b = buckets.setdefault(key(ref), [ZERO, ZERO])
        if type_ == "IN":
            b[0] += _as_money(amount)
        else:
            b[1] += _as_money(amount)
    return {k: (v[0], v[1]) for k, v in buckets.items()}


def resumo_por_mes(ctx: CallerContext, date_from: str, date_to: str, mode="previsao") -> PivotResult:
    require_cash_flow_access(ctx)
    ctx.require_org()
    mode = PivotMode.parse(mode)
    start = dates.parse_month(date_from, "dateFrom")
    end = dates.parse_month(date_to, "dateTo")
    if start > end:
        raise ValidationError("O mês inicial deve ser anterior ao final.", {"dateFrom": "Período inválido"})
    if dates.months_between(start, end) > MAX_SUMMARY_MONTHS:
        raise ValidationError(f"Período máximo de {MAX_SUMMARY_MONTHS} meses.", {"dateTo": "Período muito longo"})
    periods = dates.month_keys(start, end)
    totals = _totais_por_periodo(ctx, start, dates.month_end(end), mode, dates.month_key)
    return pivot_scan(periods, totals)


def resumo_por_dia(ctx: CallerContext, date_from: str, date_to: str, mode="previsao") -> PivotResult:
    require_cash_flow_access(ctx)
    ctx.require_org()
    mode = PivotMode.parse(mode)
    start = dates.parse_day(date_from, "dateFrom")
    end = dates.parse_day(date_to, "dateTo")
    if start > end:
        raise ValidationError("A data inicial deve ser anterior à final.", {"dateFrom": "Período inválido"})
    if (end - start).days + 1 > MAX_SUMMARY_DAYS:
        raise ValidationError(f"Período máximo de {MAX_SUMMARY_DAYS} dias.", {"dateTo": "Período muito longo"})
    periods = dates.day_keys(start, end)
    totals = _totais_por_periodo(ctx, start, end, mode, dates.day_key)
    return pivot_scan(periods, totals)
