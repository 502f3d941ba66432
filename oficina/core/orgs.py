# oficina/core/orgs.py
"""Organizações, membros, convites e usuários."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from flask import current_app
from flask_mail import Message

from oficina.extensions import mail
from oficina.core.context import CallerContext
from oficina.core.errors import (
    BusinessRuleError, ConflictError, NotFoundError, UnauthorizedError, ValidationError,
)
from oficina.core.models import (
    EXTRA_ROLES, GLOBAL_ROLES, MEMBER_ROLES, SLUG_RE,
    Invitation, Member, MemberRole, Organization, User,
)
from oficina.core.permissions import require_admin, require_org_owner_or_admin

logger = logging.getLogger(__name__)

ORG_NAO_ENCONTRADA = "Organização não encontrada."


def _exigir_gestao(ctx: CallerContext, org_id: int, not_found: str = ORG_NAO_ENCONTRADA) -> Organization:
    """
    Organização que o chamador pode gerenciar.
    Quem não é membro recebe o mesmo 404 de um id inexistente; membro sem
    ser proprietário recebe 403.
    """
    org = ctx.session.get(Organization, org_id)
    if org is None or not (ctx.is_admin or membro_de(ctx.session, ctx.user_id, org_id)):
        raise NotFoundError(not_found)
    require_org_owner_or_admin(ctx, org_id)
    return org


# =============================================================================
# Organizações
# =============================================================================

def _validar_org(name: str, slug: str):
    fields = {}
    if not (name or "").strip():
        fields["name"] = "Nome é obrigatório"
    if not slug:
        fields["slug"] = "Slug é obrigatório"
    elif not SLUG_RE.match(slug):
        fields["slug"] = "Slug deve conter apenas letras minúsculas, números e hífens"
    if fields:
        raise ValidationError(next(iter(fields.values())), fields)

def listar_organizacoes(ctx: CallerContext) -> List[Organization]:
    """Admin vê todas; proprietário vê apenas as suas."""
    q = ctx.session.query(Organization)
    if not ctx.is_admin:
        owned = ctx.session.query(Member.organization_id).filter(
            Member.user_id == ctx.user_id, Member.role == "owner"
        )
        q = q.filter(Organization.id.in_(owned))
    return q.order_by(Organization.created_at.desc(), Organization.id.desc()).all()

def obter_organizacao(ctx: CallerContext, org_id: int) -> Organization:
    return _exigir_gestao(ctx, org_id)

def criar_organizacao(ctx: CallerContext, name: str, slug: str) -> Organization:
    require_admin(ctx)
    _validar_org(name, slug)
    if ctx.session.query(Organization).filter_by(slug=slug).first():
        raise ConflictError("Já existe uma organização com este slug.")
    org = Organization(name=name.strip(), slug=slug)
    ctx.session.add(org)
    logger.info("Organização criada: %s por user=%s", slug, ctx.user_id)
    return org

def atualizar_organizacao(ctx: CallerContext, org_id: int, name: str, slug: str) -> Organization:
    org = obter_organizacao(ctx, org_id)
    _validar_org(name, slug)
    existing = ctx.session.query(Organization).filter_by(slug=slug).first()
    if existing and existing.id != org.id:
        raise ConflictError("Já existe outra organização com este slug.")
    org.name = name.strip()
    org.slug = slug
    return org

def excluir_organizacao(ctx: CallerContext, org_id: int) -> None:
    require_admin(ctx)
    if org_id == ctx.organization_id:
        raise BusinessRuleError("Você não pode excluir a organização ativa.")
    # delete em massa: o banco remove em cascata os dados da organização
    n = ctx.session.query(Organization).filter(Organization.id == org_id).delete(synchronize_session=False)
    if not n:
        raise NotFoundError(ORG_NAO_ENCONTRADA)
    logger.info("Organização %s excluída por user=%s", org_id, ctx.user_id)

# =============================================================================
# Membros
# =============================================================================

def listar_membros(ctx: CallerContext, org_id: int) -> List[Member]:
    _exigir_gestao(ctx, org_id)
    return (
        ctx.session.query(Member)
        .filter(Member.organization_id == org_id)
        .order_by(Member.created_at.asc(), Member.id.asc())
        .all()
    )

def adicionar_membro(ctx: CallerContext, org_id: int, user_id: int, role: str = "member") -> Member:
    _exigir_gestao(ctx, org_id)
    if role not in MEMBER_ROLES:
        raise ValidationError("Papel inválido.", {"role": "Papel inválido"})
    if ctx.session.get(User, user_id) is None:
        raise NotFoundError("Usuário não encontrado.")
    if ctx.session.query(Member).filter_by(user_id=user_id, organization_id=org_id).first():
        raise ConflictError("Este usuário já é membro desta organização.")
    m = Member(user_id=user_id, organization_id=org_id, role=role)
    ctx.session.add(m)
    return m

def _obter_membro(ctx: CallerContext, member_id: int) -> Member:
    m = ctx.session.get(Member, member_id)
    if m is None:
        raise NotFoundError("Membro não encontrado.")
    _exigir_gestao(ctx, m.organization_id, "Membro não encontrado.")
    return m

def atualizar_papel_membro(ctx: CallerContext, member_id: int, role: str,
                           extra_roles: Optional[Iterable[str]] = None) -> Member:
    """Troca o papel base e substitui por completo os papéis extras."""
    m = _obter_membro(ctx, member_id)
    if role not in MEMBER_ROLES:
        raise ValidationError("Papel inválido.", {"role": "Papel inválido"})
    extras = sorted(set(extra_roles or ()))
    invalid = [r for r in extras if r not in EXTRA_ROLES]
    if invalid:
        raise ValidationError("Papel extra inválido.", {"extraRoles": ", ".join(invalid)})

    m.role = role
    m.extra_roles.clear()
    ctx.session.flush()
    for r in extras:
        m.extra_roles.append(MemberRole(role=r))
    logger.info("Papel do membro %s alterado para %s %s por user=%s", m.id, role, extras, ctx.user_id)
    return m

def remover_membro(ctx: CallerContext, member_id: int) -> None:
    m = _obter_membro(ctx, member_id)
    if m.user_id == ctx.user_id and m.organization_id == ctx.organization_id:
        raise BusinessRuleError("Você não pode se remover da organização ativa.")
    ctx.session.delete(m)

def usuarios_disponiveis(ctx: CallerContext, org_id: int) -> List[User]:
    _exigir_gestao(ctx, org_id)
    member_ids = ctx.session.query(Member.user_id).filter(Member.organization_id == org_id)
    return (
        ctx.session.query(User)
        .filter(User.id.notin_(member_ids), User.banned.is_(False))
        .order_by(User.name.asc())
        .all()
    )

def oldest_membership(session, user_id: int) -> Optional[Member]:
    return (
        session.query(Member)
        .filter(Member.user_id == user_id)
        .order_by(Member.created_at.asc(), Member.id.asc())
        .first()
    )

# =============================================================================
# Convites
# =============================================================================

def _enviar_email_convite(invitation: Invitation, org: Organization, inviter_name: str) -> None:
    base = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    link = f"{base}/convite/{invitation.id}"
    msg = Message(
        subject=f"Convite para {org.name}",
        recipients=[invitation.email],
        body=(
            f"{inviter_name} convidou você para participar de {org.name} "
            f"como {invitation.role}.\n\n"
            f"Aceite o convite em: {link}\n"
            f"O link expira em {invitation.expires_at:%d/%m/%Y %H:%M} (UTC)."
        ),
    )
    mail.send(msg)

def convidar_membro(ctx: CallerContext, org_id: int, email: str, role: str = "member") -> Invitation:
    org = _exigir_gestao(ctx, org_id)
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("Email inválido", {"email": "Email inválido"})
    if role not in MEMBER_ROLES:
        raise ValidationError("Papel inválido.", {"role": "Papel inválido"})

    ja_membro = (
        ctx.session.query(Member)
        .join(User, User.id == Member.user_id)
        .filter(Member.organization_id == org_id, User.email == email)
        .first()
    )
    if ja_membro:
        raise ConflictError("Este usuário já é membro desta organização.")
    pendente = ctx.session.query(Invitation).filter_by(
        organization_id=org_id, email=email, status="pending"
    ).first()
    if pendente:
        raise ConflictError("Já existe um convite pendente para este email.")

    ttl = int(current_app.config.get("INVITATION_TTL_HOURS", 48))
    inv = Invitation(
        organization_id=org_id,
        email=email,
        role=role,
        inviter_id=ctx.user_id,
        status="pending",
        expires_at=datetime.utcnow() + timedelta(hours=ttl),
    )
    ctx.session.add(inv)
    ctx.session.flush()
    logger.info("Convite %s criado para org=%s", inv.id, org_id)

    # envio best-effort: o link também aparece na tela de convites
    try:
        _enviar_email_convite(inv, org, ctx.user_name or ctx.user_email or "Admin")
    except Exception as e:  # noqa: BLE001
        logger.warning("Email do convite %s não enviado: %s", inv.id, e)
    return inv

def listar_convites(ctx: CallerContext, org_id: int) -> List[Invitation]:
    _exigir_gestao(ctx, org_id)
    return (
        ctx.session.query(Invitation)
        .filter_by(organization_id=org_id, status="pending")
        .order_by(Invitation.created_at.desc())
        .all()
    )

def cancelar_convite(ctx: CallerContext, invitation_id: str) -> Invitation:
    inv = ctx.session.get(Invitation, invitation_id)
    if inv is None or inv.status != "pending":
        raise NotFoundError("Convite não encontrado ou já processado.")
    _exigir_gestao(ctx, inv.organization_id, "Convite não encontrado ou já processado.")
    inv.status = "canceled"
    return inv

def obter_convite_publico(session, invitation_id: str) -> Dict:
    inv = session.get(Invitation, invitation_id)
    if inv is None:
        raise NotFoundError("Convite não encontrado.")
    inviter = inv.inviter
    return {
        "id": inv.id,
        "email": inv.email,
        "role": inv.role,
        "status": inv.status,
        "expiresAt": inv.expires_at.isoformat(),
        "organizationName": inv.organization.name,
        "organizationSlug": inv.organization.slug,
        "inviterName": (inviter.name or inviter.email) if inviter else "Desconhecido",
    }

_STATUS_PT = {"accepted": "aceito", "rejected": "rejeitado", "canceled": "cancelado"}

def aceitar_convite(session, user: Optional[User], invitation_id: str, now: Optional[datetime] = None) -> Invitation:
    """
    Aceita o convite para o usuário logado.
    Convite de proprietário rebaixa o proprietário atual para gestor.
    Retorna o convite; o chamador define a organização ativa se ainda não houver uma.
    """
    if user is None:
        raise UnauthorizedError("Você precisa estar logado para aceitar um convite.")
    inv = session.get(Invitation, invitation_id)
    if inv is None:
        raise NotFoundError("Convite não encontrado.")
    if inv.status != "pending":
        raise BusinessRuleError(f"Este convite já foi {_STATUS_PT.get(inv.status, inv.status)}.")
    if inv.expires_at < (now or datetime.utcnow()):
        raise BusinessRuleError("Este convite expirou.")

    existente = session.query(Member).filter_by(user_id=user.id, organization_id=inv.organization_id).first()
    if existente:
        inv.status = "accepted"
        return inv

    if inv.role == "owner":
        atual = session.query(Member).filter_by(organization_id=inv.organization_id, role="owner").first()
        if atual:
            atual.role = "admin"
    session.add(Member(user_id=user.id, organization_id=inv.organization_id, role=inv.role))
    inv.status = "accepted"
    logger.info("Convite %s aceito por user=%s", inv.id, user.id)
    return inv

# =============================================================================
# Usuários (admin global)
# =============================================================================

def listar_usuarios(ctx: CallerContext, limit: int = 100) -> List[User]:
    require_admin(ctx)
    return ctx.session.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(limit).all()

def _obter_usuario(ctx: CallerContext, user_id: int) -> User:
    u = ctx.session.get(User, user_id)
    if u is None:
        raise NotFoundError("Usuário não encontrado.")
    return u

def criar_usuario(ctx: CallerContext, name: str, username: str, email: str, password: str,
                  role: str = "user") -> User:
    """Cria o usuário e já o adiciona à organização ativa."""
    require_admin(ctx)
    if role not in GLOBAL_ROLES:
        raise ValidationError("Perfil inválido.", {"role": "Perfil inválido"})
    email = email.strip().lower()
    if ctx.session.query(User).filter_by(email=email).first():
        raise ConflictError("E-mail já cadastrado.")
    if username and ctx.session.query(User).filter_by(username=username).first():
        raise ConflictError("Usuário já cadastrado.")

    u = User(name=name.strip(), username=username or None, email=email, role=role)
    try:
        u.set_password(password)
    except ValueError as e:
        raise ValidationError(str(e), {"password": str(e)})
    ctx.session.add(u)
    ctx.session.flush()

    if ctx.organization_id:
        ctx.session.add(Member(
            user_id=u.id,
            organization_id=ctx.organization_id,
            role="admin" if role == "admin" else "member",
        ))
    return u

def atualizar_usuario(ctx: CallerContext, user_id: int, dados: Dict) -> User:
    require_admin(ctx)
    u = _obter_usuario(ctx, user_id)
    if "email" in dados:
        email = dados["email"].strip().lower()
        other = ctx.session.query(User).filter(User.email == email, User.id != u.id).first()
        if other:
            raise ConflictError("E-mail já cadastrado.")
        u.email = email
    if "name" in dados:
        u.name = dados["name"].strip()
    if "role" in dados:
        if dados["role"] not in GLOBAL_ROLES:
            raise ValidationError("Perfil inválido.", {"role": "Perfil inválido"})
        u.role = dados["role"]
    return u

def definir_senha(ctx: CallerContext, user_id: int, new_password: str) -> User:
    require_admin(ctx)
    u = _obter_usuario(ctx, user_id)
    try:
        u.set_password(new_password)
    except ValueError as e:
        raise ValidationError(str(e), {"newPassword": str(e)})
    return u

def banir_usuario(ctx: CallerContext, user_id: int, reason: Optional[str] = None) -> User:
    require_admin(ctx)
    u = _obter_usuario(ctx, user_id)
    if u.id == ctx.user_id:
        raise BusinessRuleError("Você não pode bloquear sua própria conta.")
    u.banned = True
    u.ban_reason = reason or "Bloqueado pelo administrador"
    return u

def desbanir_usuario(ctx: CallerContext, user_id: int) -> User:
    require_admin(ctx)
    u = _obter_usuario(ctx, user_id)
    u.banned = False
    u.ban_reason = None
    return u

def remover_usuario(ctx: CallerContext, user_id: int) -> None:
    require_admin(ctx)
    if user_id == ctx.user_id:
        raise BusinessRuleError("Você não pode excluir sua própria conta.")
    n = ctx.session.query(User).filter(User.id == user_id).delete(synchronize_session=False)
    if not n:
        raise NotFoundError("Usuário não encontrado.")

# =============================================================================
# Login
# =============================================================================

def autenticar(session, email: str, password: str) -> User:
    user = session.query(User).filter(User.email == (email or "").strip().lower()).first()
    if not user or not user.check_password(password):
        raise UnauthorizedError("Usuário ou senha incorretos")
    if user.banned:
        raise UnauthorizedError("Usuário bloqueado. Fale com o administrador.")
    return user

def membro_de(session, user_id: int, org_id: int) -> Optional[Member]:
    return session.query(Member).filter_by(user_id=user_id, organization_id=org_id).first()


