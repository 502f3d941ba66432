# oficina/core/services.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from oficina.extensions import db
from oficina.core.context import CallerContext
from oficina.core.errors import (
    ServiceError, ValidationError, BusinessRuleError, NotFoundError,
    ConflictError, InfrastructureError,
)
from oficina.core.models import (
    _as_money, Client, ServiceOrder, ServiceItem, Budget, BudgetItem,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Transação e utilidades
# =============================================================================

def _ensure(cond, msg: str, exc: Type[ServiceError] = ValidationError, **fields):
    if not cond:
        raise exc(msg, fields or None)

@contextmanager
def transaction(session=None):
    session = session or db.session
    try:
        yield session
        session.commit()
    except ServiceError:
        session.rollback()
        raise
    except IntegrityError as ie:
        session.rollback()
        raise ConflictError("Violação de integridade: registro duplicado ou inválido.") from ie
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Falha no banco de dados")
        raise InfrastructureError("Falha ao acessar o banco de dados. Tente novamente.") from e
    except Exception:
        session.rollback()
        raise

def get_scoped(ctx: CallerContext, model, obj_id, msg: str, include_deleted: bool = False):
    """
    Busca por id sempre filtrando pela organização ativa.
    Registro de outra organização é tratado como inexistente.
    """
    org_id = ctx.require_org()
    q = ctx.session.query(model).filter(model.id == obj_id, model.organization_id == org_id)
    if not include_deleted and hasattr(model, "deleted_at"):
        q = q.filter(model.deleted_at.is_(None))
    obj = q.first()
    if obj is None:
        raise NotFoundError(msg)
    return obj

def to_money(value, field: str = "value", positive: bool = False, allow_zero: bool = True) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("Valor numérico inválido", {field: "Valor numérico inválido"})
    try:
        v = _as_money(value if not isinstance(value, str) else value.replace(",", "."))
    except (InvalidOperation, ValueError):
        raise ValidationError("Valor numérico inválido", {field: "Valor numérico inválido"})
    if positive:
        _ensure(v > 0, "Valor deve ser positivo", **{field: "Valor deve ser positivo"})
    elif not allow_zero:
        _ensure(v != 0, "Valor não pode ser zero", **{field: "Valor não pode ser zero"})
    else:
        _ensure(v >= 0, "Valor deve ser >= 0", **{field: "Valor deve ser >= 0"})
    return v

def _apply(obj, dados: Dict[str, Any], campos: Iterable[str]):
    for k in campos:
        if k in dados:
            setattr(obj, k, dados[k])

# =============================================================================
# Clientes
# =============================================================================

CLIENT_FIELDS = ("name", "phone", "email", "document", "notes")

def listar_clientes(ctx: CallerContext) -> List[Client]:
    org_id = ctx.require_org()
    return (
        ctx.session.query(Client)
        .filter(Client.organization_id == org_id, Client.deleted_at.is_(None))
        .order_by(Client.name.asc())
        .all()
    )

def obter_cliente(ctx: CallerContext, client_id: int) -> Client:
    return get_scoped(ctx, Client, client_id, "Cliente não encontrado.")

def criar_cliente(ctx: CallerContext, dados: Dict[str, Any]) -> Client:
    org_id = ctx.require_org()
    _ensure((dados.get("name") or "").strip(), "Nome é obrigatório", name="Nome é obrigatório")
    _ensure((dados.get("phone") or "").strip(), "Telefone é obrigatório", phone="Telefone é obrigatório")
    c = Client(organization_id=org_id)
    _apply(c, dados, CLIENT_FIELDS)
    c.name = c.name.strip()
    ctx.session.add(c)
    return c

def atualizar_cliente(ctx: CallerContext, client_id: int, dados: Dict[str, Any]) -> Client:
    c = obter_cliente(ctx, client_id)
    if "name" in dados:
        _ensure((dados["name"] or "").strip(), "Nome é obrigatório", name="Nome é obrigatório")
    if "phone" in dados:
        _ensure((dados["phone"] or "").strip(), "Telefone é obrigatório", phone="Telefone é obrigatório")
    _apply(c, dados, CLIENT_FIELDS)
    return c

def excluir_cliente(ctx: CallerContext, client_id: int) -> Client:
    c = obter_cliente(ctx, client_id)
    c.deleted_at = datetime.utcnow()
    return c

# =============================================================================
# Ordens de serviço
# =============================================================================

FINISHED = "FINISHED"

# Transições permitidas de status
STATUS_TRANSITIONS = {
    "OPEN": ("IN_PROGRESS",),
    "IN_PROGRESS": ("FINISHED",),
    "FINISHED": (),
}

def listar_ordens(ctx: CallerContext, status: Optional[str] = None) -> List[ServiceOrder]:
    org_id = ctx.require_org()
    q = ctx.session.query(ServiceOrder).filter(
        ServiceOrder.organization_id == org_id, ServiceOrder.deleted_at.is_(None)
    )
    if status:
        _ensure(status in STATUS_TRANSITIONS, "Status inválido", status="Status inválido")
        q = q.filter(ServiceOrder.status == status)
    return q.order_by(ServiceOrder.opened_at.desc(), ServiceOrder.id.desc()).all()

def obter_ordem(ctx: CallerContext, service_order_id: int) -> ServiceOrder:
    return get_scoped(ctx, ServiceOrder, service_order_id, "Ordem de serviço não encontrada.")

def criar_ordem(ctx: CallerContext, client_id: int, problem_description: str,
                estimated_value: Optional[Decimal] = None) -> ServiceOrder:
    org_id = ctx.require_org()
    _ensure((problem_description or "").strip(), "Descrição do problema é obrigatória",
            problemDescription="Descrição do problema é obrigatória")
    obter_cliente(ctx, client_id)
    so = ServiceOrder(
        organization_id=org_id,
        client_id=client_id,
        problem_description=problem_description.strip(),
        services_performed="",
        parts_used="",
        estimated_value=to_money(estimated_value, "estimatedValue", positive=True) if estimated_value is not None else None,
        status="OPEN",
    )
    ctx.session.add(so)
    return so

def atualizar_ordem(ctx: CallerContext, service_order_id: int, dados: Dict[str, Any]) -> ServiceOrder:
    so = obter_ordem(ctx, service_order_id)
    status = dados.get("status")

    if status and status != so.status:
        _ensure(status in STATUS_TRANSITIONS, "Status inválido", status="Status inválido")
        if status not in STATUS_TRANSITIONS.get(so.status, ()):
            raise BusinessRuleError(f"Não é possível mudar o status de {so.status} para {status}.")

    for campo in ("services_performed", "parts_used"):
        if campo in dados and dados[campo] is not None:
            setattr(so, campo, dados[campo])
    for campo, nome in (("estimated_value", "estimatedValue"), ("final_value", "finalValue")):
        if campo in dados:
            v = dados[campo]
            setattr(so, campo, None if v is None else to_money(v, nome, positive=True))

    if status and status != so.status:
        so.status = status
        if status == FINISHED:
            so.closed_at = datetime.utcnow()
    return so

# =============================================================================
# Catálogo de itens / serviços
# =============================================================================

def listar_itens(ctx: CallerContext, incluir_inativos: bool = False) -> List[ServiceItem]:
    org_id = ctx.require_org()
    q = ctx.session.query(ServiceItem).filter(
        ServiceItem.organization_id == org_id, ServiceItem.deleted_at.is_(None)
    )
    if not incluir_inativos:
        q = q.filter(ServiceItem.active.is_(True))
    return q.order_by(ServiceItem.name.asc()).all()

def obter_item(ctx: CallerContext, item_id: int) -> ServiceItem:
    return get_scoped(ctx, ServiceItem, item_id, "Item não encontrado.")

def criar_item(ctx: CallerContext, name: str, default_price, description: Optional[str] = None) -> ServiceItem:
    org_id = ctx.require_org()
    _ensure((name or "").strip(), "Nome é obrigatório", name="Nome é obrigatório")
    item = ServiceItem(
        organization_id=org_id,
        name=name.strip(),
        description=(description or "").strip() or None,
        default_price=to_money(default_price, "defaultPrice"),
        active=True,
    )
    ctx.session.add(item)
    return item

def atualizar_item(ctx: CallerContext, item_id: int, dados: Dict[str, Any]) -> ServiceItem:
    item = obter_item(ctx, item_id)
    if "name" in dados:
        _ensure((dados["name"] or "").strip(), "Nome é obrigatório", name="Nome é obrigatório")
        item.name = dados["name"].strip()
    if "description" in dados:
        item.description = dados["description"]
    if "default_price" in dados:
        item.default_price = to_money(dados["default_price"], "defaultPrice")
    if "active" in dados:
        item.active = bool(dados["active"])
    return item

def excluir_item(ctx: CallerContext, item_id: int) -> ServiceItem:
    item = obter_item(ctx, item_id)
    item.deleted_at = datetime.utcnow()
    return item

# =============================================================================
# Orçamentos
# =============================================================================

def gerar_numero_orcamento(ctx: CallerContext, hoje: Optional[datetime] = None) -> str:
    """Número sequencial por organização e dia: ORC-YYYYMMDD-XXXX."""
    hoje = hoje or datetime.now()
    prefix = f"ORC-{hoje:%Y%m%d}"
    count = ctx.session.query(Budget).filter(
        Budget.organization_id == ctx.organization_id,
        Budget.number.like(f"{prefix}-%"),
    ).count()
    return f"{prefix}-{count + 1:04d}"

def listar_orcamentos(ctx: CallerContext) -> List[Budget]:
    org_id = ctx.require_org()
    return (
        ctx.session.query(Budget)
        .filter(Budget.organization_id == org_id, Budget.deleted_at.is_(None))
        .order_by(Budget.issued_at.desc(), Budget.id.desc())
        .all()
    )

def obter_orcamento(ctx: CallerContext, budget_id: int) -> Budget:
    return get_scoped(ctx, Budget, budget_id, "Orçamento não encontrado.")

def _validar_item_orcamento(ctx: CallerContext, idx: int, raw: Dict[str, Any]) -> Dict[str, Any]:
    prefix = f"items.{idx}"
    desc = (raw.get("description") or "").strip()
    _ensure(desc, "Descrição é obrigatória", **{f"{prefix}.description": "Descrição é obrigatória"})

    qty = raw.get("quantity")
    ok_qty = isinstance(qty, int) and not isinstance(qty, bool) and qty > 0
    _ensure(ok_qty, "Quantidade deve ser positiva", **{f"{prefix}.quantity": "Quantidade deve ser positiva"})

    _ensure(raw.get("unitPrice") is not None, "Preço unitário é obrigatório",
            **{f"{prefix}.unitPrice": "Preço unitário é obrigatório"})
    unit = to_money(raw.get("unitPrice"), f"{prefix}.unitPrice")

    service_item_id = raw.get("serviceItemId")
    if service_item_id:
        obter_item(ctx, service_item_id)

    return {
        "description": desc,
        "quantity": qty,
        "unit_price": unit,
        "total_price": _as_money(unit * qty),
        "service_item_id": service_item_id or None,
    }

def criar_orcamento(ctx: CallerContext, client_id: int, items: List[Dict[str, Any]],
                    notes: Optional[str] = None, service_order_id: Optional[int] = None) -> Budget:
    org_id = ctx.require_org()
    _ensure(isinstance(items, list) and len(items) > 0, "Adicione pelo menos um item",
            items="Adicione pelo menos um item")
    obter_cliente(ctx, client_id)
    if service_order_id:
        obter_ordem(ctx, service_order_id)

    linhas = [_validar_item_orcamento(ctx, i, raw or {}) for i, raw in enumerate(items)]
    total = sum((l["total_price"] for l in linhas), Decimal("0.00"))

    budget = Budget(
        organization_id=org_id,
        number=gerar_numero_orcamento(ctx),
        client_id=client_id,
        service_order_id=service_order_id or None,
        total_amount=_as_money(total),
        notes=(notes or "").strip() or None,
        issued_at=datetime.utcnow(),
    )
    for order, l in enumerate(linhas):
        budget.items.append(BudgetItem(order=order, **l))
    ctx.session.add(budget)
    return budget
