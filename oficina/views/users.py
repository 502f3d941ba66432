# oficina/views/users.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from oficina.auth.routes import contexto_atual
from oficina.core import orgs
from oficina.core.forms import USER_MAP, BanForm, SetPasswordForm, UserCreateForm, UserEditForm
from oficina.core.serializers import user_json
from oficina.core.services import transaction

bp = Blueprint("users", __name__)


@bp.get("/")
@login_required
def list_():
    ctx = contexto_atual()
    limit = request.args.get("limit", default=100, type=int)
    items = orgs.listar_usuarios(ctx, limit=max(1, min(limit, 500)))
    return jsonify([user_json(u, with_memberships=True) for u in items])


@bp.post("/")
@login_required
def create():
    ctx = contexto_atual()
    form = UserCreateForm.load().validate_or_raise()
    with transaction(ctx.session):
        u = orgs.criar_usuario(
            ctx,
            name=form.name.data,
            username=form.username.data,
            email=form.email.data,
            password=form.password.data,
            role=form.role.data or "user",
        )
    return jsonify(user_json(u, with_memberships=True)), 201


@bp.post("/<int:uid>")
@login_required
def update(uid: int):
    ctx = contexto_atual()
    form = UserEditForm.load().validate_or_raise()
    dados = {k: v for k, v in form.changes(USER_MAP).items() if v is not None}
    with transaction(ctx.session):
        u = orgs.atualizar_usuario(ctx, uid, dados)
    return jsonify(user_json(u))


@bp.post("/<int:uid>/password")
@login_required
def set_password(uid: int):
    ctx = contexto_atual()
    form = SetPasswordForm.load().validate_or_raise()
    with transaction(ctx.session):
        orgs.definir_senha(ctx, uid, form.newPassword.data)
    return jsonify(ok=True)


@bp.post("/<int:uid>/ban")
@login_required
def ban(uid: int):
    ctx = contexto_atual()
    form = BanForm.load().validate_or_raise()
    with transaction(ctx.session):
        u = orgs.banir_usuario(ctx, uid, form.reason.data)
    return jsonify(user_json(u))


@bp.post("/<int:uid>/unban")
@login_required
def unban(uid: int):
    ctx = contexto_atual()
    with transaction(ctx.session):
        u = orgs.desbanir_usuario(ctx, uid)
    return jsonify(user_json(u))


@bp.post("/<int:uid>/delete")
@login_required
def remove(uid: int):
    ctx = contexto_atual()
    with transaction(ctx.session):
        orgs.remover_usuario(ctx, uid)
    return jsonify(ok=True)
