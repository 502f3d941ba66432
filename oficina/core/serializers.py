# oficina/core/serializers.py
"""Dicionários JSON da API. Dinheiro vai como string com 2 casas, datas em ISO."""
from __future__ import annotations

from typing import Optional

from oficina.core.models import (
    _as_money, Budget, CashFlow, Client, Invitation, Member, Organization, ServiceItem, ServiceOrder, User,
)


def _money(v) -> Optional[str]:
    return None if v is None else str(_as_money(v))

def _iso(v) -> Optional[str]:
    return None if v is None else v.isoformat()


def cash_flow_json(cf: CashFlow) -> dict:
    return {
        "id": cf.id,
        "organizationId": cf.organization_id,
        "type": cf.type,
        "description": cf.description,
        "amount": _money(cf.amount),
        "date": _iso(cf.date),
        "paidAt": _iso(cf.paid_at),
        "serviceOrderId": cf.service_order_id,
        "cashFlowGroupId": cf.cash_flow_group_id,
        "installmentIndex": cf.installment_index,
        "createdAt": _iso(cf.created_at),
    }

def client_json(c: Client) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "phone": c.phone,
        "email": c.email,
        "document": c.document,
        "notes": c.notes,
        "createdAt": _iso(c.created_at),
    }

def service_order_json(so: ServiceOrder, with_client: bool = True) -> dict:
    out = {
        "id": so.id,
        "clientId": so.client_id,
        "status": so.status,
        "problemDescription": so.problem_description,
        "servicesPerformed": so.services_performed,
        "partsUsed": so.parts_used,
        "estimatedValue": _money(so.estimated_value),
        "finalValue": _money(so.final_value),
        "openedAt": _iso(so.opened_at),
        "closedAt": _iso(so.closed_at),
    }
    if with_client and so.client is not None:
        out["client"] = {"id": so.client.id, "name": so.client.name, "phone": so.client.phone}
    return out

def service_item_json(item: ServiceItem) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "defaultPrice": _money(item.default_price),
        "active": bool(item.active),
    }

def budget_json(b: Budget) -> dict:
    return {
        "id": b.id,
        "number": b.number,
        "clientId": b.client_id,
        "client": {"id": b.client.id, "name": b.client.name} if b.client else None,
        "serviceOrderId": b.service_order_id,
        "totalAmount": _money(b.total_amount),
        "notes": b.notes,
        "issuedAt": _iso(b.issued_at),
        "items": [
            {
                "id": it.id,
                "serviceItemId": it.service_item_id,
                "description": it.description,
                "quantity": it.quantity,
                "unitPrice": _money(it.unit_price),
                "totalPrice": _money(it.total_price),
            }
            for it in b.items
        ],
    }

def organization_json(org: Organization) -> dict:
    return {"id": org.id, "name": org.name, "slug": org.slug, "createdAt": _iso(org.created_at)}

def user_json(u: User, with_memberships: bool = False) -> dict:
    out = {
        "id": u.id,
        "name": u.name,
        "username": u.username,
        "email": u.email,
        "role": u.role,
        "banned": bool(u.banned),
        "banReason": u.ban_reason,
        "createdAt": _iso(u.created_at),
    }
    if with_memberships:
        out["memberships"] = [
            {"organizationId": m.organization_id, "organizationName": m.organization.name, "role": m.role}
            for m in u.memberships
        ]
    return out

def member_json(m: Member) -> dict:
    return {
        "id": m.id,
        "userId": m.user_id,
        "organizationId": m.organization_id,
        "role": m.role,
        "extraRoles": m.extra_role_names,
        "user": {"id": m.user.id, "name": m.user.name, "email": m.user.email},
        "createdAt": _iso(m.created_at),
    }

def invitation_json(inv: Invitation) -> dict:
    return {
        "id": inv.id,
        "organizationId": inv.organization_id,
        "email": inv.email,
        "role": inv.role,
        "status": inv.status,
        "expiresAt": _iso(inv.expires_at),
        "inviterId": inv.inviter_id,
    }
