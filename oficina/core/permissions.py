# oficina/core/permissions.py
"""
Regras de acesso.

O financeiro (fluxo de caixa) é liberado para o admin global e, na
organização ativa, para proprietário, gestor ou quem tem o papel extra
``financeiro``. A decisão em si é uma função pura
(:func:`can_access_cash_flow`); de onde vem o vínculo do usuário com a
organização é responsabilidade de uma :class:`PermissionSource`, escolhida
pela configuração ``PERMISSION_SOURCE``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import FrozenSet, Iterable, Optional

from flask import current_app

from oficina.core.context import CallerContext
from oficina.core.errors import ForbiddenError
from oficina.core.models import Member, MemberRole, UserRole

logger = logging.getLogger(__name__)

# Papéis de Member que liberam o fluxo de caixa
CASH_FLOW_MEMBER_ROLES = ("owner", "admin")
# Papéis extras que liberam o fluxo de caixa
CASH_FLOW_EXTRA_ROLES = ("financeiro",)


@dataclass(frozen=True)
class MembershipInfo:
    role: str
    extra_roles: FrozenSet[str] = frozenset()

    @classmethod
    def of(cls, role: str, extra_roles: Iterable[str] = ()) -> "MembershipInfo":
        return cls(role=role, extra_roles=frozenset(extra_roles))


def can_access_cash_flow(
    global_role: Optional[str],
    membership: Optional[MembershipInfo],
    active_organization_id,
) -> bool:
    if global_role == "admin":
        return True
    if not active_organization_id:
        return False
    if membership is None:
        return False
    if membership.role in CASH_FLOW_MEMBER_ROLES:
        return True
    return any(r in membership.extra_roles for r in CASH_FLOW_EXTRA_ROLES)


# =============================================================================
# Fontes de vínculo (adapters)
# =============================================================================

class PermissionSource:
    """Resolve o vínculo de um usuário com uma organização."""

    name = "base"

    def __init__(self, session):
        self.session = session

    def membership_for(self, user_id: int, organization_id: int) -> Optional[MembershipInfo]:
        raise NotImplementedError


class MemberRolePermissionSource(PermissionSource):
    """Member.role + papéis extras em MemberRole (modelo atual)."""

    name = "member"

    def membership_for(self, user_id, organization_id):
        member = self.session.query(Member).filter_by(user_id=user_id, organization_id=organization_id).first()
        if member is None:
            return None
        extras = [r.role for r in self.session.query(MemberRole).filter_by(member_id=member.id)]
        return MembershipInfo.of(member.role, extras)


class UserRolePermissionSource(PermissionSource):
    """Member.role + tabela plana UserRole (modelo antigo, papéis valem em todas as orgs)."""

    name = "user_role"

    def membership_for(self, user_id, organization_id):
        member = self.session.query(Member).filter_by(user_id=user_id, organization_id=organization_id).first()
        if member is None:
            return None
        extras = [r.role for r in self.session.query(UserRole).filter_by(user_id=user_id)]
        return MembershipInfo.of(member.role, extras)


PERMISSION_SOURCES = {
    MemberRolePermissionSource.name: MemberRolePermissionSource,
    UserRolePermissionSource.name: UserRolePermissionSource,
}


def permission_source(session, name: Optional[str] = None) -> PermissionSource:
    name = name or current_app.config.get("PERMISSION_SOURCE", "member")
    try:
        cls = PERMISSION_SOURCES[name]
    except KeyError:
        raise RuntimeError(f"PERMISSION_SOURCE desconhecida: {name!r}")
    return cls(session)


# =============================================================================
# Checagens sobre o contexto do chamador
# =============================================================================

def membership_of(ctx: CallerContext) -> Optional[MembershipInfo]:
    if not ctx.organization_id:
        return None
    return permission_source(ctx.session).membership_for(ctx.user_id, ctx.organization_id)


def caller_can_access_cash_flow(ctx: CallerContext) -> bool:
    if ctx.is_admin or ctx.cash_flow_checked:
        return True
    return can_access_cash_flow(ctx.global_role, membership_of(ctx), ctx.organization_id)


def require_cash_flow_access(ctx: CallerContext) -> CallerContext:
    """Barra quem não tem acesso ao financeiro; devolve o contexto já marcado como liberado."""
    if not caller_can_access_cash_flow(ctx):
        logger.warning("Acesso ao fluxo de caixa negado: user=%s org=%s", ctx.user_id, ctx.organization_id)
        raise ForbiddenError("Acesso restrito: você não tem permissão para acessar o fluxo de caixa.")
    if ctx.cash_flow_checked:
        return ctx
    return replace(ctx, cash_flow_checked=True)


def is_org_owner(session, user_id: int, organization_id: int) -> bool:
    return session.query(Member).filter_by(
        user_id=user_id, organization_id=organization_id, role="owner"
    ).first() is not None


def require_admin(ctx: CallerContext) -> None:
    if not ctx.is_admin:
        raise ForbiddenError("Apenas administradores podem realizar esta ação.")


def require_org_owner_or_admin(ctx: CallerContext, organization_id: int) -> None:
    if ctx.is_admin:
        return
    if not is_org_owner(ctx.session, ctx.user_id, organization_id):
        raise ForbiddenError(
            "Apenas o proprietário da organização ou um administrador pode realizar esta ação."
        )
