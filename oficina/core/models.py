# oficina/core/models.py
from __future__ import annotations

import os
import re
import uuid
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from sqlalchemy import (
    CheckConstraint, Column, Integer, String, DateTime, Date, Text,
    Boolean, ForeignKey, UniqueConstraint, Numeric, Enum, Index, func
)
from sqlalchemy.orm import relationship, backref, validates, declared_attr
from werkzeug.security import generate_password_hash as _wzh, check_password_hash as _wzc

from oficina.extensions import db  # type: ignore


# =============================================================================
# Utilidades e Mixins
# =============================================================================

MONEY = Numeric(12, 2)   # 9.999.999.999,99 máx
CENT = Decimal("0.01")

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

def _as_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)

def _new_uuid() -> str:
    return str(uuid.uuid4())

class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

class SoftDeleteMixin:
    deleted_at = Column(DateTime, nullable=True, index=True)

    @property
    def deleted(self) -> bool:
        return self.deleted_at is not None

class OrgScopedMixin:
    @declared_attr
    def organization_id(cls):
        return Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)


# =============================================================================
# Enums
# =============================================================================

GLOBAL_ROLES = ("user", "admin")
MEMBER_ROLES = ("owner", "admin", "member")
EXTRA_ROLES = ("financeiro",)
INVITATION_STATUSES = ("pending", "accepted", "rejected", "canceled")
SERVICE_ORDER_STATUSES = ("OPEN", "IN_PROGRESS", "FINISHED")
CASH_FLOW_TYPES = ("IN", "OUT")

GlobalRoleEnum = Enum(*GLOBAL_ROLES, name="global_role_enum")
MemberRoleEnum = Enum(*MEMBER_ROLES, name="member_role_enum")
InvitationStatusEnum = Enum(*INVITATION_STATUSES, name="invitation_status_enum")
ServiceOrderStatusEnum = Enum(*SERVICE_ORDER_STATUSES, name="service_order_status_enum")
CashFlowTypeEnum = Enum(*CASH_FLOW_TYPES, name="cash_flow_type_enum")


# =============================================================================
# Organizações, usuários e papéis
# =============================================================================

class Organization(db.Model, TimestampMixin):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    slug = Column(String(80), nullable=False, unique=True, index=True)

    @validates("slug")
    def _val_slug(self, key, value):
        if not value or not SLUG_RE.match(value):
            raise ValueError("Slug deve conter apenas letras minúsculas, números e hífens")
        return value

    def __repr__(self):
        return f"<Organization {self.id} {self.slug}>"


class User(db.Model, UserMixin, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    username = Column(String(30), nullable=True, unique=True, index=True)
    email = Column(String(180), nullable=False, unique=True, index=True)
    _password_hash = Column("password_hash", String(255), nullable=False)
    role = Column(GlobalRoleEnum, nullable=False, default="user", index=True)
    banned = Column(Boolean, default=False, nullable=False)
    ban_reason = Column(String(200), nullable=True)

    @property
    def is_active(self):
        return not self.banned

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def set_password(self, raw: str):
        if not raw or len(raw) < 6:
            raise ValueError("Senha deve ter pelo menos 6 caracteres")
        self._password_hash = _wzh(raw, method="pbkdf2:sha256", salt_length=16)

    def check_password(self, raw: str) -> bool:
        if not self._password_hash or not raw:
            return False
        return _wzc(self._password_hash, raw)

    @validates("email")
    def _val_email(self, key, value):
        if not value or "@" not in value:
            raise ValueError("Email inválido")
        return value.strip().lower()

    def __repr__(self):
        return f"<User {self.id} {self.email} {self.role}>"


class Member(db.Model, TimestampMixin, OrgScopedMixin):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(MemberRoleEnum, nullable=False, default="member")

    user = relationship("User", backref=backref("memberships", lazy="dynamic", passive_deletes=True))
    organization = relationship("Organization", backref=backref("members", lazy="dynamic", passive_deletes=True))
    extra_roles = relationship("MemberRole", cascade="all, delete-orphan", passive_deletes=True, backref="member")

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="uq_members_user_org"),
    )

    @property
    def extra_role_names(self):
        return sorted(r.role for r in self.extra_roles)


class MemberRole(db.Model):
    """Papel adicional de um membro (ex.: financeiro). Soma ao papel base."""
    __tablename__ = "member_roles"

    id = Column(Integer, primary_key=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(40), nullable=False)

    __table_args__ = (
        UniqueConstraint("member_id", "role", name="uq_member_roles_member_role"),
    )


class UserRole(db.Model):
    """Variante antiga: papéis planos por usuário, sem vínculo com organização."""
    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(40), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )


class Invitation(db.Model, TimestampMixin, OrgScopedMixin):
    __tablename__ = "invitations"

    id = Column(String(36), primary_key=True, default=_new_uuid)
    email = Column(String(180), nullable=False, index=True)
    role = Column(MemberRoleEnum, nullable=False, default="member")
    inviter_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(InvitationStatusEnum, nullable=False, default="pending", index=True)
    expires_at = Column(DateTime, nullable=False)

    organization = relationship("Organization")
    inviter = relationship("User")


# =============================================================================
# Cadastros da oficina
# =============================================================================

class Client(db.Model, TimestampMixin, SoftDeleteMixin, OrgScopedMixin):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    name = Column(String(180), nullable=False)
    phone = Column(String(40), nullable=False)
    email = Column(String(180), nullable=True)
    document = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Client {self.id} {self.name}>"


class ServiceOrder(db.Model, TimestampMixin, SoftDeleteMixin, OrgScopedMixin):
    __tablename__ = "service_orders"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(ServiceOrderStatusEnum, nullable=False, default="OPEN", index=True)
    problem_description = Column(Text, nullable=False)
    services_performed = Column(Text, nullable=False, default="")
    parts_used = Column(Text, nullable=False, default="")
    estimated_value = Column(MONEY, nullable=True)
    final_value = Column(MONEY, nullable=True)
    opened_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    closed_at = Column(DateTime, nullable=True)

    client = relationship("Client", backref=backref("service_orders", lazy="dynamic"))

    __table_args__ = (
        CheckConstraint("estimated_value IS NULL OR estimated_value > 0", name="ck_service_orders_estimado"),
        CheckConstraint("final_value IS NULL OR final_value > 0", name="ck_service_orders_final"),
    )

    @validates("estimated_value", "final_value")
    def _val_money(self, key, value):
        return None if value is None else _as_money(value)


class ServiceItem(db.Model, TimestampMixin, SoftDeleteMixin, OrgScopedMixin):
    __tablename__ = "service_items"

    id = Column(Integer, primary_key=True)
    name = Column(String(180), nullable=False)
    description = Column(Text, nullable=True)
    default_price = Column(MONEY, nullable=False, default=Decimal("0.00"))
    active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("default_price >= 0", name="ck_service_items_preco"),
    )

    @validates("default_price")
    def _val_money(self, key, value):
        return _as_money(value)


class Budget(db.Model, TimestampMixin, SoftDeleteMixin, OrgScopedMixin):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True)
    number = Column(String(30), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    service_order_id = Column(Integer, ForeignKey("service_orders.id", ondelete="SET NULL"), nullable=True, index=True)
    total_amount = Column(MONEY, nullable=False, default=Decimal("0.00"))
    notes = Column(Text, nullable=True)
    issued_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    client = relationship("Client")
    service_order = relationship("ServiceOrder")
    items = relationship("BudgetItem", cascade="all, delete-orphan", backref="budget", order_by="BudgetItem.order")

    __table_args__ = (
        UniqueConstraint("organization_id", "number", name="uq_budgets_org_number"),
        CheckConstraint("total_amount >= 0", name="ck_budgets_total"),
    )


class BudgetItem(db.Model):
    __tablename__ = "budget_items"

    id = Column(Integer, primary_key=True)
    budget_id = Column(Integer, ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False, index=True)
    service_item_id = Column(Integer, ForeignKey("service_items.id", ondelete="SET NULL"), nullable=True)
    order = Column(Integer, nullable=False, default=0)
    description = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_budget_items_qtd"),
        CheckConstraint("unit_price >= 0", name="ck_budget_items_preco"),
    )

    @validates("unit_price", "total_price")
    def _val_money(self, key, value):
        return _as_money(value)


# =============================================================================
# Fluxo de caixa
# =============================================================================

class CashFlow(db.Model, TimestampMixin, SoftDeleteMixin, OrgScopedMixin):
    __tablename__ = "cash_flows"

    id = Column(Integer, primary_key=True)
    type = Column(CashFlowTypeEnum, nullable=False, index=True)
    description = Column(String(255), nullable=False)
    amount = Column(MONEY, nullable=False)
    date = Column(Date, nullable=False, index=True)         # vencimento / previsão
    paid_at = Column(Date, nullable=True, index=True)       # quando o dinheiro de fato entrou/saiu
    service_order_id = Column(Integer, ForeignKey("service_orders.id", ondelete="SET NULL"), nullable=True, index=True)
    cash_flow_group_id = Column(String(36), nullable=True, index=True)
    installment_index = Column(Integer, nullable=True)

    service_order = relationship("ServiceOrder")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cash_flows_amount_positivo"),
        CheckConstraint(
            "(cash_flow_group_id IS NULL AND installment_index IS NULL)"
            " OR (cash_flow_group_id IS NOT NULL AND installment_index >= 1)",
            name="ck_cash_flows_parcela",
        ),
        UniqueConstraint("cash_flow_group_id", "installment_index", name="uq_cash_flows_group_index"),
        Index("ix_cash_flows_org_date", "organization_id", "date"),
        Index("ix_cash_flows_org_paid_at", "organization_id", "paid_at"),
    )

    @validates("amount")
    def _val_amount(self, key, value):
        v = _as_money(value)
        if v <= 0:
            raise ValueError("Valor deve ser positivo")
        return v

    def __repr__(self):
        return f"<CashFlow {self.id} {self.type} {self.amount} {self.date}>"


# =============================================================================
# Índices
# =============================================================================

Index("ix_clients_name_lower", func.lower(Client.name))
Index("ix_service_items_name_lower", func.lower(ServiceItem.name))


# =============================================================================
# Seeds e utilidades
# =============================================================================

def ensure_admin():
    """
    Cria a organização padrão e o admin dono dela, se não existirem.
    Usa variáveis de ambiente ADMIN_EMAIL e ADMIN_PASS.
    """
    admin_email = os.getenv("ADMIN_EMAIL", "admin@oficina.com.br").lower()
    admin_pass = os.getenv("ADMIN_PASS", "admin123")

    org = Organization.query.filter_by(slug="minha-oficina").first()
    if not org:
        org = Organization(name="Minha Oficina", slug="minha-oficina")
        db.session.add(org)
        db.session.flush()

    user = User.query.filter_by(email=admin_email).first()
    if not user:
        user = User(name="Administrador", email=admin_email, role="admin")
        user.set_password(admin_pass)
        db.session.add(user)
        db.session.flush()

    if not Member.query.filter_by(user_id=user.id, organization_id=org.id).first():
        db.session.add(Member(user_id=user.id, organization_id=org.id, role="owner"))

    db.session.commit()
