# oficina/views/organizations.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from oficina.extensions import db
from oficina.auth.routes import contexto_atual, set_active_organization
from oficina.core import orgs
from oficina.core.forms import InviteForm, MemberAddForm, MemberRoleForm, OrganizationForm
from oficina.core.serializers import (
    invitation_json, member_json, organization_json, user_json,
)
from oficina.core.services import transaction

bp = Blueprint("organizations", __name__)


# ----------------------------
# Organizações
# ----------------------------
@bp.get("/")
@login_required
def list_():
    ctx = contexto_atual()
    return jsonify([organization_json(o) for o in orgs.listar_organizacoes(ctx)])


@bp.get("/<int:org_id>")
@login_required
def get(org_id: int):
    ctx = contexto_atual()
    return jsonify(organization_json(orgs.obter_organizacao(ctx, org_id)))


@bp.post("/")
@login_required
def create():
    ctx = contexto_atual()
    form = OrganizationForm.load().validate_or_raise()
    with transaction(ctx.session):
        org = orgs.criar_organizacao(ctx, form.name.data, form.slug.data)
    return jsonify(organization_json(org)), 201


@bp.post("/<int:org_id>")
@login_required
def update(org_id: int):
    ctx = contexto_atual()
    form = OrganizationForm.load().validate_or_raise()
    with transaction(ctx.session):
        org = orgs.atualizar_organizacao(ctx, org_id, form.name.data, form.slug.data)
    return jsonify(organization_json(org))


@bp.post("/<int:org_id>/delete")
@login_required
def delete(org_id: int):
    ctx = contexto_atual()
    with transaction(ctx.session):
        orgs.excluir_organizacao(ctx, org_id)
    return jsonify(ok=True)


# ----------------------------
# Membros
# ----------------------------
@bp.get("/<int:org_id>/members")
@login_required
def list_members(org_id: int):
    ctx = contexto_atual()
    return jsonify([member_json(m) for m in orgs.listar_membros(ctx, org_id)])


@bp.get("/<int:org_id>/available-users")
@login_required
def available_users(org_id: int):
    ctx = contexto_atual()
    return jsonify([user_json(u) for u in orgs.usuarios_disponiveis(ctx, org_id)])


@bp.post("/<int:org_id>/members")
@login_required
def add_member(org_id: int):
    ctx = contexto_atual()
    form = MemberAddForm.load().validate_or_raise()
    with transaction(ctx.session):
        m = orgs.adicionar_membro(ctx, org_id, form.userId.data, form.role.data)
    return jsonify(member_json(m)), 201


@bp.post("/members/<int:member_id>/role")
@login_required
def update_member_role(member_id: int):
    ctx = contexto_atual()
    form = MemberRoleForm.load().validate_or_raise()
    with transaction(ctx.session):
        m = orgs.atualizar_papel_membro(ctx, member_id, form.role.data, form.extraRoles.data)
    return jsonify(member_json(m))


@bp.post("/members/<int:member_id>/delete")
@login_required
def remove_member(member_id: int):
    ctx = contexto_atual()
    with transaction(ctx.session):
        orgs.remover_membro(ctx, member_id)
    return jsonify(ok=True)


# ----------------------------
# Convites
# ----------------------------
@bp.get("/<int:org_id>/invitations")
@login_required
def list_invitations(org_id: int):
    ctx = contexto_atual()
    return jsonify([invitation_json(i) for i in orgs.listar_convites(ctx, org_id)])


@bp.post("/<int:org_id>/invitations")
@login_required
def invite_member(org_id: int):
    ctx = contexto_atual()
    form = InviteForm.load().validate_or_raise()
    with transaction(ctx.session):
        inv = orgs.convidar_membro(ctx, org_id, form.email.data, form.role.data)
    return jsonify(invitation_json(inv)), 201


@bp.post("/invitations/<invitation_id>/cancel")
@login_required
def cancel_invitation(invitation_id: str):
    ctx = contexto_atual()
    with transaction(ctx.session):
        inv = orgs.cancelar_convite(ctx, invitation_id)
    return jsonify(invitation_json(inv))


@bp.get("/invitations/<invitation_id>")
def get_invitation(invitation_id: str):
    return jsonify(orgs.obter_convite_publico(db.session, invitation_id))


@bp.post("/invitations/<invitation_id>/accept")
@login_required
def accept_invitation(invitation_id: str):
    ctx = contexto_atual()
    with transaction(ctx.session):
        inv = orgs.aceitar_convite(ctx.session, current_user, invitation_id)
        org_id = inv.organization_id
    if not ctx.organization_id:
        set_active_organization(org_id)
    return jsonify(ok=True, organizationId=org_id)
