# oficina/auth/routes.py
from __future__ import annotations

from typing import Optional

from flask import Blueprint, jsonify, session
from flask_login import login_user, logout_user, login_required, current_user

from oficina.extensions import db
from oficina.core.context import CallerContext
from oficina.core.errors import NotFoundError, UnauthorizedError
from oficina.core.forms import ActiveOrganizationForm, LoginForm
from oficina.core.models import Organization
from oficina.core.orgs import autenticar, membro_de, oldest_membership
from oficina.core.permissions import caller_can_access_cash_flow
from oficina.core.serializers import organization_json, user_json

bp = Blueprint("auth", __name__)

ACTIVE_ORG_KEY = "active_organization_id"


def set_active_organization(org_id: Optional[int]) -> None:
    if org_id:
        session[ACTIVE_ORG_KEY] = int(org_id)
    else:
        session.pop(ACTIVE_ORG_KEY, None)


def contexto_atual() -> CallerContext:
    """
    Monta o contexto do chamador a partir da sessão.
    A organização ativa só vale se o usuário ainda for membro dela (admin global vale sempre).
    """
    if not getattr(current_user, "is_authenticated", False):
        raise UnauthorizedError("Você precisa estar logado.")
    if current_user.banned:
        logout_user()
        raise UnauthorizedError("Usuário bloqueado. Fale com o administrador.")

    org_id = session.get(ACTIVE_ORG_KEY)
    if org_id:
        if current_user.is_admin:
            if db.session.get(Organization, org_id) is None:
                org_id = None
        elif membro_de(db.session, current_user.id, org_id) is None:
            org_id = None

    return CallerContext(
        user_id=current_user.id,
        global_role=current_user.role,
        organization_id=org_id,
        session=db.session,
        user_name=current_user.name,
        user_email=current_user.email,
    )


def _me_payload(ctx: CallerContext) -> dict:
    org = db.session.get(Organization, ctx.organization_id) if ctx.organization_id else None
    member = membro_de(db.session, ctx.user_id, ctx.organization_id) if org else None
    return {
        "user": user_json(current_user),
        "activeOrganization": organization_json(org) if org else None,
        "membership": {"role": member.role, "extraRoles": member.extra_role_names} if member else None,
        "canAccessCashFlow": caller_can_access_cash_flow(ctx),
    }


@bp.post("/login")
def login():
    form = LoginForm.load().validate_or_raise()
    user = autenticar(db.session, form.email.data, form.password.data)
    login_user(user, remember=bool(form.remember.data))

    first = oldest_membership(db.session, user.id)
    set_active_organization(first.organization_id if first else None)
    return jsonify(_me_payload(contexto_atual()))


@bp.post("/logout")
@login_required
def logout():
    logout_user()
    set_active_organization(None)
    return jsonify(ok=True)


@bp.get("/me")
@login_required
def me():
    return jsonify(_me_payload(contexto_atual()))


@bp.post("/active-organization")
@login_required
def active_organization():
    ctx = contexto_atual()
    form = ActiveOrganizationForm.load().validate_or_raise()
    org_id = form.organizationId.data

    # org de que não é membro responde igual a id inexistente
    org = db.session.get(Organization, org_id)
    if org is None or (not ctx.is_admin and membro_de(db.session, ctx.user_id, org_id) is None):
        raise NotFoundError("Organização não encontrada.")

    set_active_organization(org_id)
    return jsonify(_me_payload(contexto_atual()))
